"""End-to-end entry points: text -> image bytes/files, logo overlay, and file decoding."""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import BinaryIO

from PIL import Image

from qrlogo import container
from qrlogo.codec import DEFAULT_CODEC, SymbolCodec
from qrlogo.generator import ECCLevel, ModuleMatrix, parse_ecc
from qrlogo.logging import audit, get_logger, trace
from qrlogo.overlay import apply_logo, compute_geometry, estimate_occlusion
from qrlogo.raster import RenderConfig, extract_luminance, render
from qrlogo.scanner import ScanResult

log = get_logger("pipeline")


@dataclass(frozen=True)
class PipelineConfig:
    """Fixed parameters of the encode/decode entry points."""

    render: RenderConfig = field(default_factory=lambda: RenderConfig(400, 400, margin_modules=2))
    ecc: ECCLevel = ECCLevel.H
    image_format: str = "JPEG"
    jpeg_quality: int = container.DEFAULT_JPEG_QUALITY
    codec: SymbolCodec = DEFAULT_CODEC

    @property
    def margin(self) -> int:
        return 2 if self.render.margin_modules is None else self.render.margin_modules

    def with_overrides(self, *, ecc=None, margin=None, size=None, image_format=None) -> "PipelineConfig":
        """Copy with CLI-style overrides applied; None leaves a value unchanged."""
        render_cfg = self.render
        if margin is not None:
            render_cfg = replace(render_cfg, margin_modules=margin)
        if size is not None:
            render_cfg = replace(render_cfg, width_px=size, height_px=size)
        return replace(
            self,
            render=render_cfg,
            ecc=self.ecc if ecc is None else parse_ecc(ecc),
            image_format=image_format or self.image_format,
        )


DEFAULT_CONFIG = PipelineConfig()


def _encode_matrix(content: str, config: PipelineConfig, ecc: ECCLevel | None = None) -> ModuleMatrix:
    return config.codec.encode(
        content,
        ecc=ecc or config.ecc,
        margin=config.margin,
        character_encoding=config.render.character_encoding,
    )


def encode_image(content: str, config: PipelineConfig = DEFAULT_CONFIG) -> Image.Image:
    """Encode and rasterize *content* (no container)."""
    return render(_encode_matrix(content, config), config.render)


@trace
def encode_to_stream(content: str, stream: BinaryIO | None = None,
                     config: PipelineConfig = DEFAULT_CONFIG) -> bytes:
    """Encode *content* into container bytes; also written to *stream* when given."""
    data = container.save(encode_image(content, config), config.image_format, quality=config.jpeg_quality)
    if stream is not None:
        stream.write(data)
    audit("pipeline.encoded_stream", logger=log, data=content[:80], bytes=len(data),
          format=config.image_format)
    return data


@trace
def encode_to_file(content: str, output_path: "str | Path",
                   config: PipelineConfig = DEFAULT_CONFIG) -> Path:
    """Encode *content* to an image file (format from config, not from the suffix)."""
    path = container.write_file(encode_image(content, config), output_path,
                                fmt=config.image_format, quality=config.jpeg_quality)
    audit("pipeline.encoded_file", logger=log, data=content[:80], path=str(path))
    return path


@trace
def add_logo(output_path: "str | Path", symbol_path: "str | Path", logo_path: "str | Path",
             config: PipelineConfig = DEFAULT_CONFIG) -> Path:
    """Read a symbol image and a logo, composite, and write the result to *output_path*.

    *output_path* may equal *symbol_path*: the symbol is fully read before
    anything is written.
    """
    symbol = container.read_file(symbol_path)
    logo = container.read_logo(logo_path)
    composited = apply_logo(symbol, logo, background=config.render.background)
    path = container.write_file(composited, output_path,
                                fmt=config.image_format, quality=config.jpeg_quality)
    audit("pipeline.logo_added", logger=log, symbol=str(symbol_path), logo=str(logo_path), path=str(path))
    return path


@trace
def encode_with_logo(content: str, output_path: "str | Path", logo_path: "str | Path",
                     config: PipelineConfig = DEFAULT_CONFIG) -> Path:
    """Encode *content* at ECC level H to *output_path*, then overlay the logo in place."""
    if config.ecc is not ECCLevel.H:
        log.warning("Logo overlay requires ECC level H; overriding configured level %s", config.ecc.name)
        config = replace(config, ecc=ECCLevel.H)

    matrix = _encode_matrix(content, config)
    symbol = render(matrix, config.render)
    path = container.write_file(symbol, output_path, fmt=config.image_format, quality=config.jpeg_quality)

    with Image.open(logo_path) as logo:
        geometry = compute_geometry(symbol.size, logo.size)
    budget = estimate_occlusion(matrix, geometry, config.render)
    if not budget.safe:
        log.warning("Logo hides %d data modules, %.0f%% of what ECC level H can repair",
                    budget.covered_data_modules, budget.budget_used_pct)

    return add_logo(path, path, logo_path, config)


def decode_image(image: Image.Image, config: PipelineConfig = DEFAULT_CONFIG) -> str:
    """Decode a loaded image; raises DecodeError subclasses."""
    return config.codec.decode(extract_luminance(image))


@trace
def decode_file(input_path: "str | Path", config: PipelineConfig = DEFAULT_CONFIG) -> str:
    """Read an image file and decode its QR symbol.

    Raises:
        DecodeError: SymbolNotFound, FormatInvalid or DataCorrupted.
        OSError / PIL.UnidentifiedImageError: unreadable file, unchanged.
    """
    return decode_image(container.read_file(input_path), config)


def try_decode_file(input_path: "str | Path", expected_data: str | None = None,
                    config: PipelineConfig = DEFAULT_CONFIG) -> ScanResult:
    """Like decode_file, but a decode failure comes back as an unsuccessful ScanResult."""
    image = container.read_file(input_path)
    return config.codec.try_decode(extract_luminance(image), expected_data=expected_data)
