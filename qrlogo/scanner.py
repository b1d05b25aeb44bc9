"""QR symbol decoding: luminance grid -> text, with failure classification.

Decoding itself is delegated to OpenCV's QR detector and ZBar (via pyzbar).
When every decoder gives up, the image is inspected once more to tell a
missing symbol apart from one whose format information or data is damaged.
"""

import time
from dataclasses import dataclass, field

import cv2
import numpy as np
from pyzbar.pyzbar import ZBarSymbol
from pyzbar.pyzbar import decode as pyzbar_decode

from qrlogo.errors import DataCorrupted, DecodeError, FormatInvalid, SymbolNotFound
from qrlogo.generator import (
    MAX_VERSION,
    ECCLevel,
    format_codewords,
    format_positions,
    symbol_dimension,
)
from qrlogo.logging import audit, get_logger, trace

log = get_logger("scanner")

DEFAULT_DECODERS = ("opencv", "pyzbar")

# Side of the rectified symbol used for format sampling
RECTIFIED_PX = 512

# BCH(15,5) has minimum distance 7: up to 3 bit errors are correctable
FORMAT_MAX_ERRORS = 3

_FORMAT_CODEWORDS = format_codewords()


@dataclass
class ScanResult:
    """Outcome of a decode attempt."""
    success: bool
    decoded_data: str | None = None
    decode_time_ms: float = 0.0
    decoder: str = ""
    error: str | None = None
    failure: str | None = None
    attempts: list["ScanResult"] = field(default_factory=list, repr=False)


# ---------------------------------------------------------------------------
# Individual decoders
# ---------------------------------------------------------------------------

def scan_pyzbar(gray: np.ndarray) -> ScanResult:
    """Scan with ZBar. ZBar hands back its text as UTF-8 bytes."""
    start = time.perf_counter()
    try:
        results = pyzbar_decode(gray, symbols=[ZBarSymbol.QRCODE])
        elapsed = (time.perf_counter() - start) * 1000
        if results:
            data = results[0].data.decode("utf-8")
            return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder="pyzbar")
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="pyzbar",
                          error="No QR code detected")
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.decoder_error", logger=log, decoder="pyzbar", error=str(e))
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="pyzbar", error=str(e))


def scan_opencv(gray: np.ndarray) -> ScanResult:
    """Scan with OpenCV's built-in QR detector."""
    start = time.perf_counter()
    try:
        detector = cv2.QRCodeDetector()
        data, _points, _ = detector.detectAndDecode(gray)
        elapsed = (time.perf_counter() - start) * 1000
        if data:
            return ScanResult(success=True, decoded_data=data, decode_time_ms=elapsed, decoder="opencv")
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="opencv",
                          error="No QR code detected")
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        audit("scan.decoder_error", logger=log, decoder="opencv", error=str(e))
        return ScanResult(success=False, decode_time_ms=elapsed, decoder="opencv", error=str(e))


SCANNERS = {
    "opencv": scan_opencv,
    "pyzbar": scan_pyzbar,
}


# ---------------------------------------------------------------------------
# Grid preparation
# ---------------------------------------------------------------------------

def _as_gray(luminance) -> np.ndarray:
    gray = np.asarray(luminance)
    if gray.ndim != 2:
        raise ValueError(f"Luminance grid must be 2-D, got shape {gray.shape}")
    if gray.dtype != np.uint8:
        gray = np.clip(gray, 0, 255).astype(np.uint8)
    return np.ascontiguousarray(gray)


def pad_quiet_zone(gray: np.ndarray) -> np.ndarray:
    """Surround the grid with white so symbols rendered without a margin still localise."""
    pad = max(8, min(gray.shape) // 10)
    return cv2.copyMakeBorder(gray, pad, pad, pad, pad, cv2.BORDER_CONSTANT, value=255)


def binarize(gray: np.ndarray) -> np.ndarray:
    """Adaptive (local-mean) binarization; the window is ~1/8 of the short side."""
    block = max(3, (min(gray.shape) // 8) | 1)
    return cv2.adaptiveThreshold(
        gray, 255, cv2.ADAPTIVE_THRESH_GAUSSIAN_C, cv2.THRESH_BINARY, block, 10,
    )


# ---------------------------------------------------------------------------
# Failure classification
# ---------------------------------------------------------------------------

def locate(gray: np.ndarray) -> np.ndarray | None:
    """Corner points (4x2, TL/TR/BR/BL) of a QR symbol, or None if no finder patterns are found.

    OpenCV's detector is asked first, on the raw and the binarized grid. It
    misses some clean symbols, so a direct search for the three finder
    patterns decides before the symbol is declared missing.
    """
    for grid in (gray, binarize(gray)):
        try:
            found, points = cv2.QRCodeDetector().detect(grid)
        except cv2.error as e:
            audit("scan.locate_error", logger=log, error=str(e))
            continue
        if found and points is not None:
            return _order_corners(points)
    return _locate_by_finders(gray)


def _finder_boxes(gray: np.ndarray) -> list[tuple[int, int, int, int]]:
    """Bounding boxes of dark squares that hold a light ring around a dark core."""
    _, dark = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY_INV + cv2.THRESH_OTSU)
    contours, hierarchy = cv2.findContours(dark, cv2.RETR_TREE, cv2.CHAIN_APPROX_SIMPLE)
    if hierarchy is None:
        return []
    hierarchy = hierarchy[0]

    boxes = []
    for i, contour in enumerate(contours):
        hole = hierarchy[i][2]
        if hole < 0 or hierarchy[hole][2] < 0:
            continue
        x, y, w, h = cv2.boundingRect(contour)
        if w < 7 or h < 7 or not 0.8 <= w / h <= 1.25:
            continue
        # 7:5:3 proportions of ring, gap and core
        hole_w = cv2.boundingRect(contours[hole])[2]
        core_w = cv2.boundingRect(contours[hierarchy[hole][2]])[2]
        if 0.55 <= hole_w / w <= 0.9 and 0.25 <= core_w / w <= 0.6:
            boxes.append((x, y, w, h))
    return boxes


def _locate_by_finders(gray: np.ndarray) -> np.ndarray | None:
    """Symbol corners spanned by three equal-sized finder squares (upright symbols)."""
    candidates = sorted(_finder_boxes(gray), key=lambda b: b[2], reverse=True)
    boxes = None
    for anchor in candidates:
        similar = [b for b in candidates if anchor[2] / 1.5 <= b[2] <= anchor[2]]
        if len(similar) >= 3:
            boxes = similar[:3]
            break
    if boxes is None:
        return None

    x0 = min(b[0] for b in boxes)
    y0 = min(b[1] for b in boxes)
    x1 = max(b[0] + b[2] for b in boxes) - 1
    y1 = max(b[1] + b[3] for b in boxes) - 1
    if not 0.8 <= (x1 - x0 + 1) / (y1 - y0 + 1) <= 1.25:
        return None
    return np.array([[x0, y0], [x1, y0], [x1, y1], [x0, y1]], dtype=np.float32)


def _order_corners(points) -> np.ndarray:
    pts = np.asarray(points, dtype=np.float32).reshape(-1, 2)
    s = pts.sum(axis=1)
    d = pts[:, 1] - pts[:, 0]
    return np.array(
        [pts[np.argmin(s)], pts[np.argmin(d)], pts[np.argmax(s)], pts[np.argmax(d)]],
        dtype=np.float32,
    )


def _rectify(gray: np.ndarray, corners: np.ndarray) -> np.ndarray:
    """Warp the located symbol to a square and return its dark-module mask."""
    s = RECTIFIED_PX
    dst = np.array([[0, 0], [s - 1, 0], [s - 1, s - 1], [0, s - 1]], dtype=np.float32)
    transform = cv2.getPerspectiveTransform(corners, dst)
    warped = cv2.warpPerspective(gray, transform, (s, s), flags=cv2.INTER_LINEAR, borderValue=255)
    _, bw = cv2.threshold(warped, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return bw == 0


def _finder_pitch(dark: np.ndarray) -> tuple[int, float] | None:
    """(origin, module pitch) measured along the diagonal of the top-left finder (1:1:3:1:1).

    ``origin`` is the first dark pixel on the diagonal, i.e. the symbol's
    top-left corner even when the located corners include some quiet zone.
    """
    diag = np.diagonal(dark)
    idx = np.flatnonzero(diag)
    if idx.size == 0 or idx[0] > len(diag) // 8:
        return None
    origin = int(idx[0])

    runs = []
    current, length = True, 0
    for value in diag[origin:]:
        if value == current:
            length += 1
            continue
        runs.append(length)
        if len(runs) == 5:
            break
        current, length = value, 1
    if len(runs) < 5:
        return None

    pitch = sum(runs) / 7.0
    for run, expected in zip(runs, (1, 1, 3, 1, 1)):
        if abs(run - expected * pitch) > 0.75 * pitch:
            return None
    return origin, pitch


def _sample(dark: np.ndarray, origin: int, cell: float, row: int, col: int) -> bool:
    y = int(origin + (row + 0.5) * cell)
    x = int(origin + (col + 0.5) * cell)
    window = dark[max(0, y - 1):y + 2, max(0, x - 1):x + 2]
    return bool(window.size and window.mean() > 0.5)


def _closest_format(bits: int) -> tuple[int, tuple[ECCLevel, int]]:
    return min(
        ((bin(bits ^ cw).count("1"), info) for cw, info in _FORMAT_CODEWORDS.items()),
        key=lambda item: item[0],
    )


def _inspect(gray: np.ndarray) -> tuple[str, tuple[ECCLevel, int] | None]:
    """Classify a located-or-not symbol: ("missing" | "unmeasured" | "invalid" | "valid", format)."""
    corners = locate(gray)
    if corners is None:
        return "missing", None

    dark = _rectify(gray, corners)
    measured = _finder_pitch(dark)
    if measured is None:
        return "unmeasured", None

    # Quiet zone, if any, is assumed equal on both sides
    origin, pitch = measured
    extent = dark.shape[0] - 2 * origin
    version = round((extent / pitch - 17) / 4)
    version = min(max(version, 1), MAX_VERSION)
    size = symbol_dimension(version)
    cell = extent / size

    best = None
    for copy in format_positions(size):
        bits = 0
        for i, (r, c) in enumerate(copy):
            if _sample(dark, origin, cell, r, c):
                bits |= 1 << i
        distance, info = _closest_format(bits)
        if distance <= FORMAT_MAX_ERRORS and (best is None or distance < best[0]):
            best = (distance, info)

    audit("scan.format_inspected", logger=log,
          version=version, valid=best is not None,
          distance=best[0] if best else None)
    if best is None:
        return "invalid", None
    return "valid", best[1]


def read_format_info(luminance) -> tuple[ECCLevel, int] | None:
    """ECC level and mask pattern read from a symbol's format information, if readable."""
    status, info = _inspect(pad_quiet_zone(_as_gray(luminance)))
    return info if status == "valid" else None


# ---------------------------------------------------------------------------
# Public decode API
# ---------------------------------------------------------------------------

def decode(luminance, decoders: tuple[str, ...] = DEFAULT_DECODERS) -> str:
    """Decode a luminance grid to text.

    Each decoder is tried on the raw grid, then on an adaptively binarized
    copy; the first success wins.

    Raises:
        SymbolNotFound: No finder patterns in the image.
        FormatInvalid: Symbol located, format information unreadable.
        DataCorrupted: Symbol located, data beyond the ECC budget.
    """
    unknown = [name for name in decoders if name not in SCANNERS]
    if unknown:
        raise ValueError(f"Unknown decoder(s) {unknown}; available: {sorted(SCANNERS)}")

    gray = pad_quiet_zone(_as_gray(luminance))
    attempts = []
    for label, grid in (("raw", gray), ("binarized", binarize(gray))):
        for name in decoders:
            result = SCANNERS[name](grid)
            result.decoder = f"{name}/{label}"
            attempts.append(result)
            if result.success:
                audit("scan.decoded", logger=log,
                      decoder=result.decoder, time_ms=round(result.decode_time_ms, 1),
                      data=result.decoded_data[:80])
                return result.decoded_data

    status, _ = _inspect(gray)
    audit("scan.failed", logger=log, status=status, attempts=len(attempts))
    if status == "missing":
        raise SymbolNotFound("no QR symbol located", attempts)
    if status == "invalid":
        raise FormatInvalid("format information failed its BCH check", attempts)
    raise DataCorrupted("symbol located but data could not be recovered", attempts)


@trace
def try_decode(luminance, expected_data: str | None = None,
               decoders: tuple[str, ...] = DEFAULT_DECODERS) -> ScanResult:
    """Decode without raising on failure; a decode failure is an ordinary outcome.

    With *expected_data*, a successful decode of different text counts as a failure.
    """
    start = time.perf_counter()
    try:
        data = decode(luminance, decoders=decoders)
    except DecodeError as e:
        return ScanResult(
            success=False,
            decode_time_ms=(time.perf_counter() - start) * 1000,
            decoder="+".join(decoders),
            error=str(e),
            failure=type(e).__name__,
            attempts=e.attempts,
        )

    result = ScanResult(
        success=True,
        decoded_data=data,
        decode_time_ms=(time.perf_counter() - start) * 1000,
        decoder="+".join(decoders),
    )
    if expected_data is not None and data != expected_data:
        result.success = False
        result.error = f"Data mismatch: got {data!r}, expected {expected_data!r}"
        result.failure = "Mismatch"
    return result
