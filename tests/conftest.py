import logging

import numpy as np
import pytest
from PIL import Image, ImageDraw

from qrlogo.generator import format_codewords, format_positions


def make_solid_logo(size=(80, 80), color=(200, 30, 30)) -> Image.Image:
    return Image.new("RGB", size, color)


def make_gradient_logo(size=(60, 60)) -> Image.Image:
    w, h = size
    ramp = np.linspace(40, 220, w, dtype=np.uint8)
    arr = np.zeros((h, w, 3), dtype=np.uint8)
    arr[..., 2] = ramp
    arr[..., 1] = ramp // 2
    return Image.fromarray(arr)


def make_circle_logo(size=(100, 100), color=(20, 90, 200, 255)) -> Image.Image:
    img = Image.new("RGBA", size, (0, 0, 0, 0))
    w, h = size
    ImageDraw.Draw(img).ellipse([w * 0.125, h * 0.125, w * 0.875, h * 0.875], fill=color)
    return img


def make_half_transparent_logo(size=(80, 80), color=(0, 160, 60, 255)) -> Image.Image:
    img = Image.new("RGBA", size, (0, 0, 0, 0))
    ImageDraw.Draw(img).rectangle([size[0] // 2, 0, size[0] - 1, size[1] - 1], fill=color)
    return img


def make_wordmark_logo(size=(300, 90)) -> Image.Image:
    img = Image.new("RGB", size, (250, 140, 0))
    draw = ImageDraw.Draw(img)
    for x in range(20, size[0] - 20, 40):
        draw.rectangle([x, 25, x + 20, size[1] - 25], fill=(255, 255, 255))
    return img


LOGO_FACTORIES = {
    "solid": make_solid_logo,
    "gradient": make_gradient_logo,
    "circle_rgba": make_circle_logo,
    "oversized_square": lambda: make_solid_logo((400, 400), (30, 30, 30)),
    "wide_wordmark": make_wordmark_logo,
}


@pytest.fixture(params=sorted(LOGO_FACTORIES))
def corpus_logo(request) -> Image.Image:
    return LOGO_FACTORIES[request.param]()


@pytest.fixture
def logo_corpus() -> list[Image.Image]:
    return [LOGO_FACTORIES[name]() for name in sorted(LOGO_FACTORIES)]


@pytest.fixture
def logo_file(tmp_path):
    path = tmp_path / "logo.png"
    make_circle_logo().save(path)
    return path


@pytest.fixture
def blank_image() -> Image.Image:
    return Image.new("RGB", (400, 400), (255, 255, 255))


def matrix_format_bits(modules, copy: int = 0) -> int:
    """Format information bits as stored in a module array (copy 0 or 1)."""
    size = modules.shape[0]
    bits = 0
    for i, (r, c) in enumerate(format_positions(size)[copy]):
        if modules[r, c]:
            bits |= 1 << i
    return bits


def far_format_pattern(min_distance: int = 4) -> int:
    """A 15-bit pattern at least *min_distance* bits away from every valid format codeword."""
    codewords = list(format_codewords())
    for candidate in range(1 << 15):
        if all(bin(candidate ^ cw).count("1") >= min_distance for cw in codewords):
            return candidate
    raise AssertionError("no far format pattern")


@pytest.fixture(autouse=True)
def _reset_qrlogo_logging():
    yield
    root = logging.getLogger("qrlogo")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(logging.NOTSET)
