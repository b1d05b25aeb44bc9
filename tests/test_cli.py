import pytest
from PIL import Image

from qrlogo.cli import EXIT_DECODE_FAILED, EXIT_ENCODE_FAILED, EXIT_OK, build_parser, main


@pytest.fixture
def encoded(tmp_path):
    path = tmp_path / "qr.jpg"
    assert main(["encode", "cli text", "-o", str(path)]) == EXIT_OK
    return path


class TestEncode:
    def test_writes_file(self, capsys, encoded) -> None:
        assert encoded.exists()
        assert Image.open(encoded).size == (400, 400)
        assert "Generated:" in capsys.readouterr().out

    def test_creates_parent_directories(self, tmp_path) -> None:
        path = tmp_path / "nested" / "dir" / "qr.png"
        assert main(["encode", "nested", "-o", str(path), "--format", "PNG"]) == EXIT_OK
        assert path.read_bytes()[:4] == b"\x89PNG"

    def test_with_logo(self, tmp_path, logo_file, capsys) -> None:
        path = tmp_path / "logo.jpg"
        assert main(["encode", "logo text", "-o", str(path), "--logo", str(logo_file), "-e", "L"]) == EXIT_OK
        assert "ECC H" in capsys.readouterr().out
        assert main(["decode", str(path)]) == EXIT_OK

    def test_format_follows_output_suffix(self, tmp_path) -> None:
        path = tmp_path / "by_suffix.png"
        assert main(["encode", "suffix", "-o", str(path)]) == EXIT_OK
        assert path.read_bytes()[:4] == b"\x89PNG"

    def test_unknown_suffix_gets_jpeg(self, tmp_path) -> None:
        path = tmp_path / "no_suffix"
        assert main(["encode", "plain", "-o", str(path)]) == EXIT_OK
        assert path.read_bytes()[:2] == b"\xff\xd8"

    def test_format_contradicting_suffix_is_rejected(self, tmp_path, capsys) -> None:
        path = tmp_path / "out.jpg"
        assert main(["encode", "clash", "-o", str(path), "--format", "PNG"]) == EXIT_ENCODE_FAILED
        assert "does not match" in capsys.readouterr().err
        assert not path.exists()

    def test_size_and_margin(self, tmp_path) -> None:
        path = tmp_path / "small.png"
        assert main(["encode", "sized", "-o", str(path), "--size", "200", "--margin", "4",
                     "--format", "PNG"]) == EXIT_OK
        assert Image.open(path).size == (200, 200)

    def test_too_long_exits_with_encode_failure(self, tmp_path, capsys) -> None:
        path = tmp_path / "big.jpg"
        assert main(["encode", "a" * 1300, "-o", str(path)]) == EXIT_ENCODE_FAILED
        assert "Encode failed" in capsys.readouterr().err
        assert not path.exists()


class TestDecode:
    def test_prints_text(self, encoded, capsys) -> None:
        capsys.readouterr()
        assert main(["decode", str(encoded)]) == EXIT_OK
        assert capsys.readouterr().out.strip() == "cli text"

    def test_expected_match(self, encoded) -> None:
        assert main(["decode", str(encoded), "--expected", "cli text"]) == EXIT_OK

    def test_expected_mismatch(self, encoded, capsys) -> None:
        assert main(["decode", str(encoded), "--expected", "other"]) == EXIT_DECODE_FAILED
        assert "mismatch" in capsys.readouterr().err

    def test_blank_image_reports_kind(self, tmp_path, blank_image, capsys) -> None:
        path = tmp_path / "blank.png"
        blank_image.save(path)
        assert main(["decode", str(path)]) == EXIT_DECODE_FAILED
        err = capsys.readouterr().err
        assert "FAIL [SymbolNotFound]" in err
        assert "no symbol found" in err


class TestStress:
    def test_stress_passes(self, encoded, capsys) -> None:
        assert main(["stress", str(encoded), "--expected", "cli text"]) == EXIT_OK
        assert "Stress Test Summary" in capsys.readouterr().out

    def test_stress_threshold(self, encoded) -> None:
        assert main(["stress", str(encoded), "--expected", "nope", "--min-pass-rate", "0.5"]) == EXIT_DECODE_FAILED


class TestParser:
    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == EXIT_DECODE_FAILED
        assert "usage:" in capsys.readouterr().out

    def test_rejects_unknown_ecc(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["encode", "x", "-e", "Z"])

    def test_log_file_gets_json_lines(self, tmp_path) -> None:
        log_path = tmp_path / "run.log"
        assert main(["--log-file", str(log_path), "encode", "logged", "-o", str(tmp_path / "l.jpg")]) == EXIT_OK
        text = log_path.read_text(encoding="utf-8")
        assert '"event": "cli.start"' in text
        assert '"event": "qr.encoded"' in text
