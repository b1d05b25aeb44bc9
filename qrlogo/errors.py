"""Exception taxonomy for QR-Logo."""


class QRLogoError(Exception):
    """Base class for every error raised by qrlogo itself."""


class EncodingError(QRLogoError):
    """Text could not be turned into a QR symbol."""


class ContentNotRepresentable(EncodingError, ValueError):
    """Text contains characters the requested character encoding cannot represent."""

    def __init__(self, encoding: str, reason: str):
        super().__init__(f"Content is not representable in {encoding}: {reason}")
        self.encoding = encoding


class EncodingCapacityExceeded(EncodingError):
    """Encoded content does not fit the largest QR version at the requested ECC level."""

    def __init__(self, byte_length: int, ecc: str):
        super().__init__(
            f"{byte_length} bytes exceed the capacity of QR version 40 at ECC level {ecc}"
        )
        self.byte_length = byte_length
        self.ecc = ecc


class DecodeError(QRLogoError):
    """Decode failed.

    ``symbol_present`` tells "no symbol in the image" apart from
    "symbol located but unreadable".
    """

    symbol_present = False

    def __init__(self, detail: str = "", attempts: list | None = None):
        message = f"Decode failed: {detail}" if detail else "Decode failed"
        super().__init__(message)
        self.detail = detail
        self.attempts = attempts or []


class SymbolNotFound(DecodeError):
    """No QR finder patterns could be located."""


class FormatInvalid(DecodeError):
    """A symbol was located but neither copy of its format information is valid."""

    symbol_present = True


class DataCorrupted(DecodeError):
    """A symbol was located but holds more errors than its ECC level can repair."""

    symbol_present = True
