"""Tests for the image enhancement chain."""

import io
from unittest.mock import patch

import numpy as np
import pytest
from PIL import Image

from conftest import make_image_bytes
from textlens.exceptions import ImageTooLarge, UnreadableImage
from textlens.preprocessing.binarize import double_threshold, invert, threshold
from textlens.preprocessing.denoise import median_filter, unsharp_mask
from textlens.preprocessing.image import EnhancedImage, SourceImage, decode_image
from textlens.preprocessing.pipeline import (
    ImagePreprocessor,
    build_steps,
    calculate_contrast,
    calculate_sharpness,
)
from textlens.preprocessing.resize import fit_within, to_grayscale
from textlens.preprocessing.tone import (
    gamma_correct,
    linear,
    modulate,
    normalize_histogram,
    stretch_window,
)
from textlens.utils.config import PreprocessingConfig


def _gradient(low: int = 50, high: int = 150) -> np.ndarray:
    return np.tile(np.arange(low, high + 1, dtype=np.uint8), (10, 1))


def _sixteen_bit_png() -> bytes:
    """A 16-bit grayscale PNG: light background with a dark horizontal band."""
    deep = np.full((40, 60), 60000, dtype=np.uint16)
    deep[15:25, :] = 3000
    buf = io.BytesIO()
    Image.fromarray(deep).save(buf, format="PNG")
    return buf.getvalue()


class TestDecode:
    """Tests for decoding uploaded bytes."""

    @pytest.mark.parametrize("fmt", ["PNG", "JPEG", "BMP"])
    def test_supported_formats(self, fmt: str) -> None:
        image = SourceImage(data=make_image_bytes(fmt), filename=f"x.{fmt.lower()}")
        pixels = decode_image(image)
        assert pixels.shape == (120, 320, 3)
        assert pixels.dtype == np.uint8

    def test_garbage_raises(self, corrupt_bytes: bytes) -> None:
        with pytest.raises(UnreadableImage, match="bad.png"):
            decode_image(SourceImage(data=corrupt_bytes, filename="bad.png"))

    def test_empty_buffer_raises(self) -> None:
        with pytest.raises(UnreadableImage):
            decode_image(SourceImage(data=b"", filename="empty.png"))

    def test_unsupported_format_raises(self) -> None:
        buf = io.BytesIO()
        Image.new("RGB", (20, 20), "white").save(buf, format="GIF")
        with pytest.raises(UnreadableImage, match="Unsupported image format GIF"):
            decode_image(SourceImage(data=buf.getvalue(), filename="anim.gif"))

    def test_rgba_png_decodes_to_rgb(self) -> None:
        buf = io.BytesIO()
        Image.new("RGBA", (30, 10), (255, 0, 0, 128)).save(buf, format="PNG")
        pixels = decode_image(SourceImage(data=buf.getvalue(), filename="alpha.png"))
        assert pixels.shape == (10, 30, 3)

    def test_16bit_png_is_scaled_not_clipped(self) -> None:
        pixels = decode_image(SourceImage(data=_sixteen_bit_png(), filename="deep.png"))
        assert pixels.shape == (40, 60, 3)
        assert set(np.unique(pixels)) == {11, 234}


class TestResize:
    """Tests for bounding the image size."""

    def test_large_image_fits_bound(self) -> None:
        image = np.zeros((1000, 4000, 3), dtype=np.uint8)
        result = fit_within(image, max_dimension=3000)
        assert result.shape == (750, 3000, 3)

    def test_tall_image_keeps_aspect_ratio(self) -> None:
        image = np.zeros((600, 200), dtype=np.uint8)
        result = fit_within(image, max_dimension=300)
        assert result.shape == (300, 100)

    def test_small_image_not_enlarged(self) -> None:
        image = np.zeros((100, 200, 3), dtype=np.uint8)
        assert fit_within(image, max_dimension=3000) is image

    def test_grayscale_conversion(self) -> None:
        image = np.zeros((10, 20, 3), dtype=np.uint8)
        assert to_grayscale(image).shape == (10, 20)

    def test_grayscale_passthrough(self) -> None:
        image = np.zeros((10, 20), dtype=np.uint8)
        assert to_grayscale(image) is image


class TestTone:
    """Tests for intensity transforms."""

    def test_normalize_stretches_to_full_range(self) -> None:
        result = normalize_histogram(_gradient())
        assert result.min() == 0
        assert result.max() == 255

    def test_normalize_constant_image_unchanged(self) -> None:
        image = np.full((5, 5), 77, dtype=np.uint8)
        np.testing.assert_array_equal(normalize_histogram(image), image)

    def test_linear(self) -> None:
        image = np.array([[0, 100, 200]], dtype=np.uint8)
        np.testing.assert_array_equal(linear(image, 1.3, -0.1), [[0, 130, 255]])

    def test_modulate_brightness_and_contrast(self) -> None:
        image = np.array([[100, 128]], dtype=np.uint8)
        result = modulate(image, brightness=1.2, contrast=1.8)
        # 100 * 1.2 = 120 -> (120 - 128) * 1.8 + 128 = 113.6
        assert result[0, 0] == 114
        assert result[0, 1] > 128

    def test_modulate_saturation_noop_on_grayscale(self) -> None:
        image = _gradient()
        np.testing.assert_array_equal(
            modulate(image, 1.2, 1.8, saturation=0.2),
            modulate(image, 1.2, 1.8, saturation=1.0),
        )

    def test_modulate_saturation_on_color(self) -> None:
        image = np.zeros((2, 2, 3), dtype=np.uint8)
        image[..., 0] = 200
        result = modulate(image, saturation=0.0)
        assert np.all(result[..., 0] == result[..., 1])

    def test_gamma_keeps_extremes_and_darkens_midtones(self) -> None:
        image = np.array([[0, 128, 255]], dtype=np.uint8)
        result = gamma_correct(image, 1.4)
        assert result[0, 0] == 0
        assert result[0, 2] == 255
        assert result[0, 1] < 128

    def test_window_clips_tails(self) -> None:
        image = np.array([[10, 30, 100, 220, 250]], dtype=np.uint8)
        result = stretch_window(image, 30, 220)
        assert list(result[0, [0, 1]]) == [0, 0]
        assert list(result[0, [3, 4]]) == [255, 255]
        assert 0 < result[0, 2] < 255


class TestDenoise:
    """Tests for sharpening and median filtering."""

    def test_unsharp_constant_image_unchanged(self) -> None:
        image = np.full((20, 20), 120, dtype=np.uint8)
        np.testing.assert_array_equal(unsharp_mask(image), image)

    def test_unsharp_boost_is_clamped(self) -> None:
        image = np.zeros((20, 20), dtype=np.uint8)
        image[:, 10:] = 200
        result = unsharp_mask(image, max_brighten=10, max_darken=20)
        diff = result.astype(int) - image.astype(int)
        assert diff.max() <= 10
        assert diff.min() >= -20
        assert diff.max() > 0

    def test_median_removes_speck(self) -> None:
        image = np.zeros((9, 9), dtype=np.uint8)
        image[4, 4] = 255
        assert median_filter(image, 3).max() == 0

    def test_median_even_size_raises(self) -> None:
        with pytest.raises(ValueError, match="odd"):
            median_filter(np.zeros((5, 5), dtype=np.uint8), 4)


class TestBinarize:
    """Tests for thresholding."""

    def test_threshold_is_inclusive(self) -> None:
        image = np.array([[139, 140, 200]], dtype=np.uint8)
        np.testing.assert_array_equal(threshold(image, 140), [[0, 255, 255]])

    def test_invert(self) -> None:
        image = np.array([[0, 255, 100]], dtype=np.uint8)
        np.testing.assert_array_equal(invert(image), [[255, 0, 155]])

    def test_double_threshold_produces_binary(self) -> None:
        result = double_threshold(_gradient(0, 255), 140, 90)
        assert set(np.unique(result)).issubset({0, 255})

    def test_double_threshold_keeps_first_level(self) -> None:
        image = np.array([[89, 90, 139, 140, 255]], dtype=np.uint8)
        np.testing.assert_array_equal(double_threshold(image, 140, 90), [[0, 0, 0, 255, 255]])

    def test_second_threshold_acts_on_inverted_result(self) -> None:
        image = np.array([[0, 200]], dtype=np.uint8)
        # Every inverted pixel passes a zero threshold, so the final invert is all black.
        np.testing.assert_array_equal(double_threshold(image, 140, 0), [[0, 0]])


class TestQualityMetrics:
    """Tests for image quality measurement functions."""

    def test_blank_image_low_sharpness(self) -> None:
        blank = np.zeros((100, 100), dtype=np.uint8)
        assert calculate_sharpness(blank) == 0.0

    def test_contrast_color_image(self) -> None:
        image = np.zeros((10, 10, 3), dtype=np.uint8)
        assert isinstance(calculate_contrast(image), float)


class TestImagePreprocessor:
    """Tests for the full enhancement chain."""

    def test_step_order(self) -> None:
        names = [step.name for step in build_steps(PreprocessingConfig())]
        assert names == [
            "resize",
            "grayscale",
            "normalize",
            "linear",
            "modulate",
            "sharpen",
            "median",
            "gamma",
            "window",
            "binarize",
        ]

    def test_enhance_produces_binary_single_channel(self, png_bytes: bytes) -> None:
        enhanced = ImagePreprocessor().enhance(SourceImage(png_bytes, "text.png"))
        assert enhanced.shape == (120, 320)
        assert set(np.unique(enhanced.pixels)).issubset({0, 255})
        assert enhanced.steps[0] == "decode"
        assert enhanced.steps[-1] == "binarize"
        assert enhanced.metrics is not None

    @pytest.mark.parametrize("fixture", ["png_bytes", "jpeg_bytes", "bmp_bytes"])
    def test_enhance_is_deterministic(self, fixture: str, request: pytest.FixtureRequest) -> None:
        data = request.getfixturevalue(fixture)
        preprocessor = ImagePreprocessor()
        first = preprocessor.enhance(SourceImage(data, "a")).to_bytes()
        second = ImagePreprocessor().enhance(SourceImage(data, "b")).to_bytes()
        assert first == second

    def test_enhance_bounds_dimensions(self, png_bytes: bytes) -> None:
        preprocessor = ImagePreprocessor(PreprocessingConfig(max_dimension=100))
        enhanced = preprocessor.enhance(SourceImage(png_bytes, "text.png"))
        assert max(enhanced.shape) == 100

    def test_too_large_rejected_before_decode(self, png_bytes: bytes) -> None:
        preprocessor = ImagePreprocessor(PreprocessingConfig(max_image_bytes=100))
        with patch("textlens.preprocessing.pipeline.decode_image") as mock_decode:
            with pytest.raises(ImageTooLarge) as exc_info:
                preprocessor.enhance(SourceImage(png_bytes, "big.png"))
        mock_decode.assert_not_called()
        assert exc_info.value.limit == 100
        assert exc_info.value.size == len(png_bytes)

    def test_16bit_dark_band_survives(self) -> None:
        enhanced = ImagePreprocessor().enhance(SourceImage(_sixteen_bit_png(), "deep.png"))
        assert enhanced.pixels[20].max() == 0
        assert enhanced.pixels[5].min() == 255

    def test_unreadable_image(self, corrupt_bytes: bytes) -> None:
        with pytest.raises(UnreadableImage):
            ImagePreprocessor().enhance(SourceImage(corrupt_bytes, "bad.png"))

    def test_run_applies_steps_to_array(self) -> None:
        image = np.full((40, 60, 3), 200, dtype=np.uint8)
        result = ImagePreprocessor().run(image)
        assert result.shape == (40, 60)

    def test_enhance_runs_chain_through_run(self, png_bytes: bytes) -> None:
        preprocessor = ImagePreprocessor()
        with patch.object(preprocessor, "run", wraps=preprocessor.run) as run:
            enhanced = preprocessor.enhance(SourceImage(png_bytes, "text.png"))
        run.assert_called_once()
        assert run.call_args.args[1] == "text.png"
        assert enhanced.shape == (120, 320)


class TestEnhancedImage:
    """Tests for the enhanced image container."""

    def test_png_roundtrip_preserves_pixels(self) -> None:
        pixels = np.array([[0, 255], [255, 0]], dtype=np.uint8)
        decoded = np.array(Image.open(io.BytesIO(EnhancedImage(pixels, "x").to_bytes())))
        np.testing.assert_array_equal(decoded, pixels)

    def test_release(self) -> None:
        enhanced = EnhancedImage(np.zeros((2, 2), dtype=np.uint8), "x.png")
        enhanced.release()
        assert enhanced.released
        with pytest.raises(ValueError, match="released"):
            _ = enhanced.pixels
        enhanced.release()

    def test_context_manager_releases_on_error(self) -> None:
        enhanced = EnhancedImage(np.zeros((2, 2), dtype=np.uint8), "x.png")
        with pytest.raises(RuntimeError):
            with enhanced:
                raise RuntimeError("boom")
        assert enhanced.released
