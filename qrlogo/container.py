"""Image container I/O: encode/decode images to JPEG/PNG bytes and files."""

import io
from pathlib import Path

from PIL import Image

from qrlogo.logging import audit, get_logger

log = get_logger("container")

DEFAULT_FORMAT = "JPEG"
DEFAULT_JPEG_QUALITY = 90

_SUFFIX_FORMATS = {
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".png": "PNG",
    ".bmp": "BMP",
}


def format_for_path(path: "str | Path", default: str | None = DEFAULT_FORMAT) -> str | None:
    """Container format implied by a file suffix; unknown suffixes get *default*."""
    return _SUFFIX_FORMATS.get(Path(path).suffix.lower(), default)


def save(image: Image.Image, fmt: str = DEFAULT_FORMAT, quality: int = DEFAULT_JPEG_QUALITY) -> bytes:
    """Serialise an image; JPEG output is always RGB."""
    fmt = fmt.upper()
    if fmt == "JPG":
        fmt = "JPEG"
    buf = io.BytesIO()
    if fmt == "JPEG":
        image.convert("RGB").save(buf, format=fmt, quality=quality)
    else:
        image.save(buf, format=fmt)
    data = buf.getvalue()
    audit("image.saved", logger=log, format=fmt, size=f"{image.size[0]}x{image.size[1]}", bytes=len(data))
    return data


def flatten_alpha(image: Image.Image, background=(255, 255, 255)) -> Image.Image:
    """RGB copy of *image* with any transparency composited onto *background*."""
    if image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info:
        rgba = image.convert("RGBA")
        flat = Image.new("RGBA", rgba.size, tuple(background) + (255,))
        flat.alpha_composite(rgba)
        return flat.convert("RGB")
    return image.convert("RGB")


def load(data: bytes) -> Image.Image:
    """Decode container bytes into an RGB image fully held in memory."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return flatten_alpha(img)


def write_file(image: Image.Image, path: "str | Path", fmt: str | None = None,
               quality: int = DEFAULT_JPEG_QUALITY) -> Path:
    """Write an image to *path*; the format defaults to the one implied by the suffix."""
    path = Path(path)
    data = save(image, fmt or format_for_path(path), quality=quality)
    with open(path, "wb") as fh:
        fh.write(data)
    return path


def read_file(path: "str | Path") -> Image.Image:
    """Read an image file as RGB. I/O and format errors propagate unchanged."""
    with open(path, "rb") as fh:
        return load(fh.read())


def read_logo(path: "str | Path") -> Image.Image:
    """Read a logo keeping its alpha channel (RGBA)."""
    with Image.open(path) as img:
        img.load()
        return img.convert("RGBA")
