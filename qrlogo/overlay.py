"""Logo overlay: safe-zone geometry, centre compositing and the ECC occlusion budget.

The logo is pasted opaquely over the middle of the symbol, destroying the
modules underneath. The symbol stays readable only because error
correction level H can rebuild roughly 30% of its codewords, so the logo
box is capped at 20% of each image side.
"""

from dataclasses import dataclass

import numpy as np
import qrcode.base
from PIL import Image, ImageDraw

from qrlogo.container import flatten_alpha
from qrlogo.generator import ModuleMatrix, function_pattern_mask
from qrlogo.logging import audit, get_logger, trace
from qrlogo.raster import RenderConfig, module_layout

log = get_logger("overlay")

# Logo box bound as a fraction of the symbol image, written as a ratio so the
# integer bound is exact: W * 2 // 10.
MAX_LOGO_NUMERATOR = 2
MAX_LOGO_DENOMINATOR = 10

CORNER_RADIUS_FRACTION = 0.15
FRAME_WIDTH_PX = 2
FRAME_COLOR = (255, 255, 255)


@dataclass(frozen=True)
class OverlayGeometry:
    """Where the logo goes on the symbol image."""

    logo_width_px: int
    logo_height_px: int
    origin_x: int
    origin_y: int

    @property
    def corner_radius_px(self) -> int:
        return max(1, round(CORNER_RADIUS_FRACTION * min(self.logo_width_px, self.logo_height_px)))

    @property
    def box(self) -> tuple[int, int, int, int]:
        """Inclusive pixel box (x0, y0, x1, y1) of the logo."""
        return (self.origin_x, self.origin_y,
                self.origin_x + self.logo_width_px - 1, self.origin_y + self.logo_height_px - 1)


def max_logo_size(symbol_size: tuple[int, int]) -> tuple[int, int]:
    w, h = symbol_size
    return w * MAX_LOGO_NUMERATOR // MAX_LOGO_DENOMINATOR, h * MAX_LOGO_NUMERATOR // MAX_LOGO_DENOMINATOR


def _fit_within(size: tuple[int, int], bound: tuple[int, int]) -> tuple[int, int]:
    """Scale (w, h) down uniformly to fit *bound*; never scales up."""
    w, h = size
    max_w, max_h = bound
    if w <= max_w and h <= max_h:
        return w, h
    if w * max_h >= h * max_w:
        return max_w, max(1, h * max_w // w)
    return max(1, w * max_h // h), max_h


def compute_geometry(symbol_size: tuple[int, int], logo_size: tuple[int, int]) -> OverlayGeometry:
    """Centred logo box, clamped to 20% of the symbol on each axis.

    An oversized logo is downscaled preserving its aspect ratio rather than
    rejected.
    """
    sw, sh = symbol_size
    if logo_size[0] < 1 or logo_size[1] < 1:
        raise ValueError(f"Logo must have a positive size, got {logo_size}")
    bound = max_logo_size(symbol_size)
    if bound[0] < 1 or bound[1] < 1:
        raise ValueError(f"Symbol image {sw}x{sh} is too small to carry a logo")

    w, h = _fit_within(logo_size, bound)
    return OverlayGeometry(
        logo_width_px=w,
        logo_height_px=h,
        origin_x=(sw - w) // 2,
        origin_y=(sh - h) // 2,
    )


@trace
def apply_logo(
    symbol: Image.Image,
    logo: Image.Image,
    background: tuple[int, int, int] = (255, 255, 255),
) -> Image.Image:
    """Composite *logo* over the centre of *symbol*, returning a new image.

    1. Compute the clamped, centred geometry.
    2. Resample the logo (Lanczos) when its size differs from the box.
    3. Paste it opaquely; the modules underneath are lost.
    4. Frame the box with a 2px white rounded rectangle.

    The input images are left untouched. The symbol must have been encoded
    at ECC level H; this is not checked here.
    """
    geometry = compute_geometry(symbol.size, logo.size)
    target = (geometry.logo_width_px, geometry.logo_height_px)

    # transparency is flattened so the paste is a plain overwrite
    tile = flatten_alpha(logo, background)
    if tile.size != target:
        tile = tile.resize(target, Image.LANCZOS)

    result = symbol.convert("RGB").copy()
    result.paste(tile, (geometry.origin_x, geometry.origin_y))

    draw = ImageDraw.Draw(result)
    draw.rounded_rectangle(
        geometry.box,
        radius=geometry.corner_radius_px,
        outline=FRAME_COLOR,
        width=FRAME_WIDTH_PX,
    )

    audit("logo.composited", logger=log,
          symbol_size=f"{symbol.size[0]}x{symbol.size[1]}",
          logo_in=f"{logo.size[0]}x{logo.size[1]}",
          logo_out=f"{target[0]}x{target[1]}",
          origin=f"{geometry.origin_x},{geometry.origin_y}",
          clamped=target != logo.size)
    return result


# ---------------------------------------------------------------------------
# ECC occlusion budget
# ---------------------------------------------------------------------------

@dataclass
class OcclusionBudget:
    """How much of the error-correction capacity a logo box consumes."""

    version: int
    ecc: str
    total_codewords: int
    data_codewords: int
    correctable_codewords: int
    correctable_modules: int
    covered_modules: int
    covered_data_modules: int
    budget_used_pct: float
    safe: bool

    def summary(self) -> str:
        return (
            f"Occlusion budget (V{self.version}-{self.ecc}):\n"
            f"  Codewords: {self.total_codewords} total, {self.data_codewords} data\n"
            f"  ECC can correct: {self.correctable_codewords} codewords "
            f"= ~{self.correctable_modules} modules\n"
            f"  Logo covers: {self.covered_modules} modules "
            f"({self.covered_data_modules} data/ECC)\n"
            f"  Budget used: {self.budget_used_pct:.1f}% "
            f"-> {'SAFE' if self.safe else 'OVER BUDGET'}"
        )


def covered_modules(matrix: ModuleMatrix, geometry: OverlayGeometry,
                    config: RenderConfig | None = None) -> np.ndarray:
    """Bool mask of symbol modules whose centre lies inside the logo box."""
    layout = module_layout(matrix, config or RenderConfig())
    centers = (np.arange(matrix.dimension) + 0.5) * layout.module_px
    xs = layout.offset_x + centers
    ys = layout.offset_y + centers
    x0, y0, x1, y1 = geometry.box
    in_x = (xs >= x0) & (xs <= x1)
    in_y = (ys >= y0) & (ys <= y1)
    return np.outer(in_y, in_x)


@trace
def estimate_occlusion(matrix: ModuleMatrix, geometry: OverlayGeometry,
                       config: RenderConfig | None = None) -> OcclusionBudget:
    """Compare the modules hidden by the logo with what the ECC level can repair.

    Reed-Solomon repairs floor(ecc_codewords / 2) codewords per block; one
    codeword spans 8 modules.
    """
    blocks = qrcode.base.rs_blocks(matrix.version, matrix.ecc.value)
    total_cw = sum(b.total_count for b in blocks)
    data_cw = sum(b.data_count for b in blocks)
    correctable_cw = sum((b.total_count - b.data_count) // 2 for b in blocks)
    correctable = correctable_cw * 8

    covered = covered_modules(matrix, geometry, config)
    covered_data = int((covered & ~function_pattern_mask(matrix.version)).sum())
    used = covered_data / correctable if correctable else 1.0

    budget = OcclusionBudget(
        version=matrix.version,
        ecc=matrix.ecc.name,
        total_codewords=total_cw,
        data_codewords=data_cw,
        correctable_codewords=correctable_cw,
        correctable_modules=correctable,
        covered_modules=int(covered.sum()),
        covered_data_modules=covered_data,
        budget_used_pct=used * 100,
        safe=used < 0.95,
    )
    audit("ecc.occlusion", logger=log,
          version=budget.version, ecc=budget.ecc,
          correctable=correctable, covered=covered_data,
          budget_pct=f"{used:.1%}", safe=budget.safe)
    return budget
