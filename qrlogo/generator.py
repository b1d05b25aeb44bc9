"""QR symbol encoding: text -> module matrix, plus the fixed-structure map of a symbol."""

from dataclasses import dataclass
from enum import Enum

import numpy as np
import qrcode
import qrcode.constants
import qrcode.exceptions
import qrcode.util

from qrlogo.errors import ContentNotRepresentable, EncodingCapacityExceeded
from qrlogo.logging import audit, get_logger, trace

log = get_logger("generator")

MAX_VERSION = 40


class ECCLevel(Enum):
    L = qrcode.constants.ERROR_CORRECT_L  # 7%
    M = qrcode.constants.ERROR_CORRECT_M  # 15%
    Q = qrcode.constants.ERROR_CORRECT_Q  # 25%
    H = qrcode.constants.ERROR_CORRECT_H  # 30%


ECC_NAMES = {"L": ECCLevel.L, "M": ECCLevel.M, "Q": ECCLevel.Q, "H": ECCLevel.H}


def parse_ecc(ecc: "str | ECCLevel") -> ECCLevel:
    """Accept an ECCLevel or its letter (case-insensitive)."""
    if isinstance(ecc, ECCLevel):
        return ecc
    try:
        return ECC_NAMES[str(ecc).upper()]
    except KeyError:
        raise ValueError(f"Unknown error correction level {ecc!r}; expected one of L/M/Q/H") from None


def symbol_dimension(version: int) -> int:
    return version * 4 + 17


@dataclass(frozen=True)
class ModuleMatrix:
    """An encoded QR symbol.

    ``modules`` is a read-only square bool array (True = dark) without the
    quiet zone; ``margin`` is the quiet zone requested at encode time.
    """

    modules: np.ndarray
    version: int
    ecc: ECCLevel
    margin: int = 0

    def __post_init__(self):
        modules = np.array(self.modules, dtype=bool)
        if modules.ndim != 2 or modules.shape[0] != modules.shape[1]:
            raise ValueError(f"Module matrix must be square, got shape {modules.shape}")
        modules.setflags(write=False)
        object.__setattr__(self, "modules", modules)

    @property
    def dimension(self) -> int:
        return self.modules.shape[0]

    def with_quiet_zone(self, margin: int | None = None) -> np.ndarray:
        """Modules padded with ``margin`` light modules on every side."""
        margin = self.margin if margin is None else margin
        return np.pad(self.modules, margin, mode="constant", constant_values=False)

    def replace_modules(self, modules: np.ndarray) -> "ModuleMatrix":
        """A new matrix with the same version/ECC/margin and different module values."""
        return ModuleMatrix(modules=modules, version=self.version, ecc=self.ecc, margin=self.margin)


@trace
def encode(
    text: str,
    ecc: "str | ECCLevel" = ECCLevel.H,
    margin: int = 2,
    character_encoding: str = "utf-8",
) -> ModuleMatrix:
    """Encode text into the smallest QR symbol that holds it.

    Args:
        text: Content to encode.
        ecc: Error correction level (L/M/Q/H).
        margin: Quiet zone in modules, recorded on the matrix for rendering.
        character_encoding: Codec used to turn the text into bytes.

    Raises:
        ContentNotRepresentable: The text cannot be encoded with *character_encoding*.
        EncodingCapacityExceeded: The bytes do not fit version 40 at this level.
    """
    ecc_level = parse_ecc(ecc)
    if margin < 0:
        raise ValueError(f"margin must be >= 0, got {margin}")

    try:
        payload = text.encode(character_encoding)
    except UnicodeEncodeError as e:
        raise ContentNotRepresentable(character_encoding, str(e)) from e

    qr = qrcode.QRCode(
        version=None,
        error_correction=ecc_level.value,
        box_size=1,
        border=0,
    )
    qr.add_data(payload)
    try:
        qr.make(fit=True)
    # qrcode 8 rejects the would-be version 41 with ValueError before DataOverflowError
    except (qrcode.exceptions.DataOverflowError, ValueError) as e:
        raise EncodingCapacityExceeded(len(payload), ecc_level.name) from e

    matrix = ModuleMatrix(modules=qr.modules, version=qr.version, ecc=ecc_level, margin=margin)
    size = matrix.dimension
    audit("qr.encoded", logger=log,
          data=text[:80], bytes=len(payload), version=matrix.version,
          size=f"{size}x{size}", ecc=ecc_level.name, margin=margin)
    return matrix


# ---------------------------------------------------------------------------
# Fixed structure: function patterns and format information
# ---------------------------------------------------------------------------

def function_pattern_mask(version: int) -> np.ndarray:
    """Bool array marking every non-data module of a symbol.

    Covers finder patterns with separators, timing patterns, alignment
    patterns, both format-information strips, the dark module and (V7+)
    the version-information blocks.
    """
    size = symbol_dimension(version)
    fixed = np.zeros((size, size), dtype=bool)

    # Finders + separators (8x8 at three corners)
    fixed[:8, :8] = True
    fixed[:8, size - 8:] = True
    fixed[size - 8:, :8] = True

    # Timing patterns
    fixed[6, :] = True
    fixed[:, 6] = True

    # Alignment patterns, skipping the three that would sit on a finder
    centers = list(qrcode.util.pattern_position(version))
    if centers:
        first, last = centers[0], centers[-1]
        on_finder = {(first, first), (first, last), (last, first)}
        for r in centers:
            for c in centers:
                if (r, c) not in on_finder:
                    fixed[r - 2:r + 3, c - 2:c + 3] = True

    # Format information (both copies) and the dark module
    vertical, horizontal = format_positions(size)
    for r, c in vertical + horizontal:
        fixed[r, c] = True
    fixed[size - 8, 8] = True

    if version >= 7:
        fixed[:6, size - 11:size - 8] = True
        fixed[size - 11:size - 8, :6] = True

    return fixed


def format_positions(size: int) -> tuple[list[tuple[int, int]], list[tuple[int, int]]]:
    """(row, col) of format bit i (LSB first) for the two copies of format information."""
    vertical = []
    for i in range(15):
        if i < 6:
            vertical.append((i, 8))
        elif i < 8:
            vertical.append((i + 1, 8))
        else:
            vertical.append((size - 15 + i, 8))

    horizontal = []
    for i in range(15):
        if i < 8:
            horizontal.append((8, size - i - 1))
        elif i < 9:
            horizontal.append((8, 15 - i))
        else:
            horizontal.append((8, 15 - i - 1))
    return vertical, horizontal


def format_codewords() -> dict[int, tuple[ECCLevel, int]]:
    """All 32 valid masked format codewords mapped to (ECC level, mask pattern)."""
    table = {}
    for level in ECCLevel:
        for mask in range(8):
            table[qrcode.util.BCH_type_info((level.value << 3) | mask)] = (level, mask)
    return table
