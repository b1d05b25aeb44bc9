"""Rasterizer: module matrix -> pixel image, and pixel image -> luminance grid."""

from dataclasses import dataclass
from typing import NamedTuple

import cv2
import numpy as np
from PIL import Image

from qrlogo.container import flatten_alpha
from qrlogo.generator import ModuleMatrix
from qrlogo.logging import audit, get_logger, trace

log = get_logger("raster")


@dataclass(frozen=True)
class RenderConfig:
    """Target raster for a symbol.

    ``margin_modules=None`` uses the quiet zone recorded on the matrix.
    """

    width_px: int = 400
    height_px: int = 400
    margin_modules: int | None = None
    character_encoding: str = "utf-8"
    foreground: tuple[int, int, int] = (0, 0, 0)
    background: tuple[int, int, int] = (255, 255, 255)

    def __post_init__(self):
        if self.width_px < 1 or self.height_px < 1:
            raise ValueError(f"Target size must be positive, got {self.width_px}x{self.height_px}")
        if self.margin_modules is not None and self.margin_modules < 0:
            raise ValueError(f"margin_modules must be >= 0, got {self.margin_modules}")


class ModuleLayout(NamedTuple):
    module_px: int
    offset_x: int
    offset_y: int
    width: int
    height: int
    margin: int


def module_layout(matrix: ModuleMatrix, config: RenderConfig) -> ModuleLayout:
    """Where each module lands in the output image.

    Modules are scaled by the largest integer factor that fits the target
    (at least one pixel); leftover pixels are split evenly around the
    quiet-zone-padded symbol as extra background. A target smaller than
    the padded symbol grows to one pixel per module.
    """
    margin = matrix.margin if config.margin_modules is None else config.margin_modules
    n = matrix.dimension + 2 * margin
    module_px = max(1, min(config.width_px // n, config.height_px // n))
    width = max(config.width_px, n * module_px)
    height = max(config.height_px, n * module_px)
    # Offsets point at the first symbol module (after the quiet zone)
    offset_x = (width - n * module_px) // 2 + margin * module_px
    offset_y = (height - n * module_px) // 2 + margin * module_px
    return ModuleLayout(module_px, offset_x, offset_y, width, height, margin)


@trace
def render(matrix: ModuleMatrix, config: RenderConfig | None = None) -> Image.Image:
    """Render a module matrix to an RGB image: dark -> foreground, light -> background.

    Blocks are replicated with nearest-neighbour scaling, so the output stays
    strictly two-coloured.
    """
    config = config or RenderConfig()
    layout = module_layout(matrix, config)
    px = layout.module_px

    blocks = np.repeat(np.repeat(matrix.modules, px, axis=0), px, axis=1)
    dark = np.zeros((layout.height, layout.width), dtype=bool)
    dark[layout.offset_y:layout.offset_y + blocks.shape[0],
         layout.offset_x:layout.offset_x + blocks.shape[1]] = blocks

    canvas = np.empty((layout.height, layout.width, 3), dtype=np.uint8)
    canvas[...] = config.background
    canvas[dark] = config.foreground
    img = Image.fromarray(canvas)

    audit("qr.rendered", logger=log,
          version=matrix.version, module_px=px, margin=layout.margin,
          image_px=f"{layout.width}x{layout.height}")
    return img


@trace
def extract_luminance(image: Image.Image) -> np.ndarray:
    """Per-pixel perceptual grayscale (uint8, height x width) for the decoder.

    Transparent pixels are treated as white paper.
    """
    arr = np.array(flatten_alpha(image))
    return cv2.cvtColor(arr, cv2.COLOR_RGB2GRAY)
