"""SymbolCodec: the narrow encode/decode seam between QR libraries and the rest of qrlogo."""

from abc import ABC, abstractmethod

import numpy as np

from qrlogo import generator, scanner
from qrlogo.errors import DecodeError
from qrlogo.generator import ECCLevel, ModuleMatrix


class SymbolCodec(ABC):
    """Text <-> module matrix for one 2-D symbology.

    Implementations hold no per-call state, so one instance can serve
    concurrent callers.
    """

    @abstractmethod
    def encode(self, text: str, ecc: "str | ECCLevel" = ECCLevel.H, margin: int = 2,
               character_encoding: str = "utf-8") -> ModuleMatrix:
        """Encode *text*; raises EncodingError subclasses."""

    @abstractmethod
    def decode(self, luminance: np.ndarray) -> str:
        """Decode a luminance grid; raises DecodeError subclasses."""

    def try_decode(self, luminance: np.ndarray, expected_data: str | None = None) -> scanner.ScanResult:
        """Non-raising decode."""
        try:
            data = self.decode(luminance)
        except DecodeError as e:
            return scanner.ScanResult(success=False, error=str(e), failure=type(e).__name__,
                                      decoder=type(self).__name__, attempts=e.attempts)
        if expected_data is not None and data != expected_data:
            return scanner.ScanResult(success=False, decoded_data=data, decoder=type(self).__name__,
                                      error=f"Data mismatch: got {data!r}, expected {expected_data!r}",
                                      failure="Mismatch")
        return scanner.ScanResult(success=True, decoded_data=data, decoder=type(self).__name__)


class QRSymbolCodec(SymbolCodec):
    """QR codec: ``qrcode`` for encoding, OpenCV and ZBar for decoding."""

    def __init__(self, decoders: tuple[str, ...] = scanner.DEFAULT_DECODERS):
        unknown = [name for name in decoders if name not in scanner.SCANNERS]
        if unknown or not decoders:
            raise ValueError(f"Unknown or empty decoder list {decoders!r}; available: {sorted(scanner.SCANNERS)}")
        self._decoders = tuple(decoders)

    @property
    def decoders(self) -> tuple[str, ...]:
        return self._decoders

    def encode(self, text, ecc=ECCLevel.H, margin=2, character_encoding="utf-8"):
        return generator.encode(text, ecc=ecc, margin=margin, character_encoding=character_encoding)

    def decode(self, luminance):
        return scanner.decode(luminance, decoders=self._decoders)

    def try_decode(self, luminance, expected_data=None):
        return scanner.try_decode(luminance, expected_data=expected_data, decoders=self._decoders)

    def __repr__(self):
        return f"QRSymbolCodec(decoders={self._decoders!r})"


DEFAULT_CODEC = QRSymbolCodec()
