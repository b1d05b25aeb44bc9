import numpy as np
import pytest

from conftest import make_solid_logo
from qrlogo.generator import encode, function_pattern_mask
from qrlogo.pipeline import encode_image
from qrlogo.tolerance import (
    apply_occlusion,
    flip_data_modules,
    logo_corpus_failure_rate,
    similarity,
    stress_test,
)


class TestFlipDataModules:
    def test_flips_requested_fraction(self) -> None:
        matrix = encode("hello", ecc="L")
        damaged = flip_data_modules(matrix, 0.25)
        assert np.count_nonzero(damaged.modules != matrix.modules) == 52

    def test_function_patterns_untouched(self) -> None:
        matrix = encode("https://example.com", ecc="M")
        damaged = flip_data_modules(matrix, 1.0)
        mask = function_pattern_mask(matrix.version)
        assert (damaged.modules[mask] == matrix.modules[mask]).all()
        assert (damaged.modules[~mask] != matrix.modules[~mask]).all()

    def test_deterministic_for_seed(self) -> None:
        matrix = encode("seeded")
        a = flip_data_modules(matrix, 0.1, seed=3)
        b = flip_data_modules(matrix, 0.1, seed=3)
        assert (a.modules == b.modules).all()

    def test_original_is_untouched(self) -> None:
        matrix = encode("keep me")
        before = matrix.modules.copy()
        flip_data_modules(matrix, 0.5)
        assert (matrix.modules == before).all()

    @pytest.mark.parametrize("fraction", [-0.1, 1.5])
    def test_rejects_bad_fraction(self, fraction) -> None:
        with pytest.raises(ValueError):
            flip_data_modules(encode("x"), fraction)


class TestStressTest:
    def test_clean_symbol_survives_battery(self) -> None:
        image = encode_image("https://example.com/stress")
        result = stress_test(image, expected_data="https://example.com/stress")

        assert result.original.success
        assert result.total_tests == 10
        assert result.pass_rate >= 0.8
        assert set(result.cases) == {"JPEG", "Blur", "Brightness", "Occlusion"}
        for cases in result.cases.values():
            for case in cases.values():
                assert 0.0 <= case.ssim <= 1.0

        summary = result.summary()
        assert summary.startswith("Stress Test Summary:")
        assert "quality=30" in summary

    def test_wrong_expectation_fails_everything(self) -> None:
        result = stress_test(encode_image("actual"), expected_data="something else")
        assert not result.original.success
        assert result.total_passed == 0


class TestSimilarity:
    def test_identical_images(self) -> None:
        image = encode_image("same")
        assert similarity(image, image) == pytest.approx(1.0)

    def test_occlusion_lowers_similarity(self) -> None:
        image = encode_image("occluded")
        assert similarity(image, apply_occlusion(image, 0.2)) < 1.0


@pytest.mark.slow
class TestLogoCorpus:
    def test_corpus_failure_rate_is_zero(self, logo_corpus) -> None:
        texts = ["hello", "https://example.com/a/b?c=1", "中文"]
        report = logo_corpus_failure_rate(texts, logo_corpus)
        assert report.runs == len(texts) * len(logo_corpus)
        assert report.failures == []
        assert report.failure_rate == 0.0

    def test_empty_corpus(self) -> None:
        report = logo_corpus_failure_rate([], [make_solid_logo()])
        assert report.runs == 0
        assert report.failure_rate == 0.0
