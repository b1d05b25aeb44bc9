"""Empirical decodability: degradation battery, module damage and logo-corpus failure rate."""

from dataclasses import dataclass, field

import numpy as np
from PIL import Image, ImageDraw, ImageEnhance, ImageFilter
from skimage.metrics import structural_similarity

from qrlogo import container
from qrlogo.generator import ModuleMatrix, function_pattern_mask
from qrlogo.logging import audit, get_logger, trace
from qrlogo.overlay import apply_logo
from qrlogo.pipeline import DEFAULT_CONFIG, PipelineConfig
from qrlogo.raster import extract_luminance, render
from qrlogo.scanner import ScanResult

log = get_logger("tolerance")


@dataclass
class CaseResult:
    """One degraded variant and how it scanned."""
    scan: ScanResult
    ssim: float


@dataclass
class StressTestResult:
    """Result of the full degradation battery."""
    original: ScanResult = field(default_factory=lambda: ScanResult(success=False))
    cases: dict[str, dict[str, CaseResult]] = field(default_factory=dict)
    total_tests: int = 0
    total_passed: int = 0

    @property
    def pass_rate(self) -> float:
        return self.total_passed / self.total_tests if self.total_tests > 0 else 0.0

    def record(self, category: str, name: str, case: CaseResult):
        self.cases.setdefault(category, {})[name] = case
        self.total_tests += 1
        self.total_passed += 1 if case.scan.success else 0

    def summary(self) -> str:
        lines = [
            f"Stress Test Summary: {self.total_passed}/{self.total_tests} passed ({self.pass_rate:.1%})",
            f"  Original:    {'PASS' if self.original.success else 'FAIL'} ({self.original.decode_time_ms:.1f}ms)",
        ]
        for category, results in self.cases.items():
            passed = sum(1 for c in results.values() if c.scan.success)
            lines.append(f"  {category:12s}: {passed}/{len(results)} passed")
            for name, c in results.items():
                status = "PASS" if c.scan.success else f"FAIL ({c.scan.failure})"
                lines.append(f"    {name:20s}: {status} ssim={c.ssim:.3f}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Degradations
# ---------------------------------------------------------------------------

def jpeg_roundtrip(image: Image.Image, quality: int) -> Image.Image:
    return container.load(container.save(image, "JPEG", quality=quality))


def apply_blur(image: Image.Image, radius: float) -> Image.Image:
    return image.filter(ImageFilter.GaussianBlur(radius=radius))


def apply_brightness(image: Image.Image, factor: float) -> Image.Image:
    """factor=1.0 is unchanged, <1 darker, >1 brighter."""
    return ImageEnhance.Brightness(image).enhance(factor)


def apply_occlusion(image: Image.Image, coverage: float = 0.05) -> Image.Image:
    """Cover a centred square of *coverage* image area with white."""
    img = image.copy()
    w, h = img.size
    block_w = int(w * (coverage ** 0.5))
    block_h = int(h * (coverage ** 0.5))
    x0, y0 = (w - block_w) // 2, (h - block_h) // 2
    ImageDraw.Draw(img).rectangle([x0, y0, x0 + block_w, y0 + block_h], fill=(255, 255, 255))
    return img


def similarity(a: Image.Image, b: Image.Image) -> float:
    """SSIM of the two images' luminance, clamped to [0, 1]."""
    la, lb = extract_luminance(a), extract_luminance(b)
    if la.shape != lb.shape:
        lb = np.array(Image.fromarray(lb).resize((la.shape[1], la.shape[0]), Image.LANCZOS))
    return max(0.0, min(1.0, float(structural_similarity(la, lb, data_range=255))))


def flip_data_modules(matrix: ModuleMatrix, fraction: float, seed: int = 0) -> ModuleMatrix:
    """Invert a random *fraction* of data/ECC modules; function patterns stay intact."""
    if not 0.0 <= fraction <= 1.0:
        raise ValueError(f"fraction must be within [0, 1], got {fraction}")
    data_positions = np.flatnonzero(~function_pattern_mask(matrix.version))
    count = int(round(len(data_positions) * fraction))
    rng = np.random.default_rng(seed)
    chosen = rng.choice(data_positions, size=count, replace=False)

    modules = matrix.modules.copy().ravel()
    modules[chosen] = ~modules[chosen]
    return matrix.replace_modules(modules.reshape(matrix.modules.shape))


# ---------------------------------------------------------------------------
# Battery
# ---------------------------------------------------------------------------

@trace
def stress_test(image: Image.Image, expected_data: str | None = None,
                config: PipelineConfig = DEFAULT_CONFIG) -> StressTestResult:
    """Decode *image* under a battery of degradations.

    Tests:
        - JPEG re-encode: quality 90, 75, 50, 30
        - Gaussian blur: radius 1, 2
        - Brightness: 0.6 (dim), 1.5 (bright)
        - Occlusion: 5% centre
    """
    codec = config.codec

    def _case(degraded: Image.Image) -> CaseResult:
        scan = codec.try_decode(extract_luminance(degraded), expected_data=expected_data)
        return CaseResult(scan=scan, ssim=similarity(image, degraded))

    result = StressTestResult()
    result.original = codec.try_decode(extract_luminance(image), expected_data=expected_data)
    result.total_tests = 1
    result.total_passed = 1 if result.original.success else 0

    for quality in (90, 75, 50, 30):
        result.record("JPEG", f"quality={quality}", _case(jpeg_roundtrip(image, quality)))
    for radius in (1, 2):
        result.record("Blur", f"radius={radius}", _case(apply_blur(image, radius)))
    for factor in (0.6, 1.5):
        result.record("Brightness", f"factor={factor}", _case(apply_brightness(image, factor)))
    result.record("Occlusion", "5% center", _case(apply_occlusion(image, 0.05)))

    audit("stress.completed", logger=log,
          pass_rate=f"{result.pass_rate:.1%}",
          passed=result.total_passed, total=result.total_tests)
    return result


@dataclass
class ToleranceReport:
    """Observed failure rate of logo-overlaid symbols after a lossy round trip."""
    runs: int = 0
    failures: list[tuple[str, int, str]] = field(default_factory=list)

    @property
    def failure_rate(self) -> float:
        return len(self.failures) / self.runs if self.runs else 0.0


@trace
def logo_corpus_failure_rate(texts: list[str], logos: list[Image.Image],
                             config: PipelineConfig = DEFAULT_CONFIG) -> ToleranceReport:
    """Encode (H) -> render -> logo -> container round trip -> decode, for every text/logo pair.

    Failures are recorded as (text, logo index, failure kind).
    """
    report = ToleranceReport()
    for text in texts:
        matrix = config.codec.encode(text, ecc="H", margin=config.margin,
                                     character_encoding=config.render.character_encoding)
        symbol = render(matrix, config.render)
        for index, logo in enumerate(logos):
            composited = apply_logo(symbol, logo, background=config.render.background)
            loaded = container.load(container.save(composited, config.image_format,
                                                   quality=config.jpeg_quality))
            scan = config.codec.try_decode(extract_luminance(loaded), expected_data=text)
            report.runs += 1
            if not scan.success:
                report.failures.append((text, index, scan.failure or "unknown"))

    audit("tolerance.logo_corpus", logger=log,
          runs=report.runs, failures=len(report.failures),
          failure_rate=f"{report.failure_rate:.1%}")
    return report
