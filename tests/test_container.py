import numpy as np
import pytest
from PIL import Image, UnidentifiedImageError

from qrlogo import container
from qrlogo.generator import encode
from qrlogo.raster import render


@pytest.fixture
def symbol():
    return render(encode("container"))


class TestBytes:
    def test_jpeg_is_default(self, symbol) -> None:
        data = container.save(symbol)
        assert data[:2] == b"\xff\xd8"

    def test_png(self, symbol) -> None:
        assert container.save(symbol, "png")[:4] == b"\x89PNG"

    def test_jpg_alias(self, symbol) -> None:
        assert container.save(symbol, "jpg")[:2] == b"\xff\xd8"

    def test_png_roundtrip_is_exact(self, symbol) -> None:
        loaded = container.load(container.save(symbol, "PNG"))
        assert loaded.mode == "RGB"
        assert loaded.tobytes() == symbol.tobytes()

    def test_jpeg_roundtrip_keeps_size_and_contrast(self, symbol) -> None:
        loaded = container.load(container.save(symbol, "JPEG", quality=75))
        assert loaded.size == symbol.size
        diff = np.abs(np.asarray(loaded, dtype=int) - np.asarray(symbol, dtype=int))
        # block interiors survive well inside the binarization threshold
        assert np.median(diff) < 10

    def test_rgba_is_flattened_to_white(self) -> None:
        rgba = Image.new("RGBA", (8, 8), (0, 0, 0, 0))
        loaded = container.load(container.save(rgba, "PNG"))
        assert loaded.mode == "RGB"
        assert (np.asarray(loaded) == 255).all()

    def test_garbage_bytes_propagate_pillow_error(self) -> None:
        with pytest.raises(UnidentifiedImageError):
            container.load(b"not an image")


class TestFiles:
    @pytest.mark.parametrize("name,fmt", [
        ("a.jpg", "JPEG"), ("a.JPEG", "JPEG"), ("a.png", "PNG"), ("a.bmp", "BMP"), ("a", "JPEG"),
    ])
    def test_format_for_path(self, name, fmt) -> None:
        assert container.format_for_path(name) == fmt

    def test_format_for_path_without_default(self) -> None:
        assert container.format_for_path("a.gif", default=None) is None
        assert container.format_for_path("a.PNG", default=None) == "PNG"

    def test_write_and_read(self, tmp_path, symbol) -> None:
        path = container.write_file(symbol, tmp_path / "qr.png")
        assert path.exists()
        assert container.read_file(path).tobytes() == symbol.tobytes()

    def test_explicit_format_wins_over_suffix(self, tmp_path, symbol) -> None:
        path = container.write_file(symbol, tmp_path / "qr.png", fmt="JPEG")
        assert path.read_bytes()[:2] == b"\xff\xd8"

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            container.read_file(tmp_path / "missing.jpg")

    def test_read_logo_keeps_alpha(self, tmp_path) -> None:
        path = tmp_path / "logo.png"
        Image.new("RGBA", (5, 5), (1, 2, 3, 0)).save(path)
        logo = container.read_logo(path)
        assert logo.mode == "RGBA"
        assert logo.getpixel((0, 0))[3] == 0


class TestFlattenAlpha:
    def test_transparent_pixels_take_the_background(self) -> None:
        rgba = Image.new("RGBA", (4, 4), (0, 0, 0, 0))
        rgba.putpixel((0, 0), (10, 20, 30, 255))
        flat = container.flatten_alpha(rgba, background=(0, 160, 60))
        assert flat.mode == "RGB"
        assert flat.getpixel((0, 0)) == (10, 20, 30)
        assert flat.getpixel((3, 3)) == (0, 160, 60)

    def test_palette_transparency(self) -> None:
        img = Image.new("P", (2, 2), 0)
        img.putpalette([0, 0, 0, 255, 0, 0] + [0] * 762)
        img.putpixel((1, 1), 1)
        img.info["transparency"] = 0
        flat = container.flatten_alpha(img)
        assert flat.getpixel((0, 0)) == (255, 255, 255)
        assert flat.getpixel((1, 1)) == (255, 0, 0)

    def test_opaque_image_is_copied(self) -> None:
        rgb = Image.new("RGB", (3, 3), (1, 2, 3))
        flat = container.flatten_alpha(rgb)
        assert flat is not rgb
        assert flat.tobytes() == rgb.tobytes()
