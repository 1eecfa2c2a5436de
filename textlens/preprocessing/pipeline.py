"""Fixed image enhancement chain for OCR.

Turns an arbitrary photo into a binarized, denoised, high-contrast image.
The chain is an ordered tuple of named steps built from the
preprocessing configuration; each step is a pure array transform.
"""

from collections.abc import Callable
from dataclasses import dataclass
from functools import partial

import cv2
import numpy as np

from textlens.exceptions import ImageTooLarge
from textlens.utils.config import PreprocessingConfig
from textlens.utils.logger import get_logger

from .binarize import double_threshold
from .denoise import median_filter, unsharp_mask
from .image import EnhancedImage, QualityMetrics, SourceImage, decode_image
from .resize import fit_within, to_grayscale
from .tone import gamma_correct, linear, modulate, normalize_histogram, stretch_window

logger = get_logger(__name__)


@dataclass(frozen=True)
class PreprocessingStep:
    """A named, pure image transform."""

    name: str
    func: Callable[[np.ndarray], np.ndarray]

    def __call__(self, image: np.ndarray) -> np.ndarray:
        return self.func(image)


def build_steps(config: PreprocessingConfig) -> tuple[PreprocessingStep, ...]:
    """Build the enhancement chain in its fixed order.

    Args:
        config: Preprocessing constants.

    Returns:
        Steps to apply after decoding, first to last.
    """
    return (
        PreprocessingStep("resize", partial(fit_within, max_dimension=config.max_dimension)),
        PreprocessingStep("grayscale", to_grayscale),
        PreprocessingStep(
            "normalize",
            partial(
                normalize_histogram,
                lower_percentile=config.normalize_lower_percentile,
                upper_percentile=config.normalize_upper_percentile,
            ),
        ),
        PreprocessingStep(
            "linear",
            partial(linear, slope=config.linear_slope, intercept=config.linear_intercept),
        ),
        PreprocessingStep(
            "modulate",
            partial(
                modulate,
                brightness=config.brightness,
                contrast=config.contrast,
                saturation=config.saturation,
            ),
        ),
        PreprocessingStep(
            "sharpen",
            partial(
                unsharp_mask,
                sigma=config.sharpen_sigma,
                flat_gain=config.sharpen_flat_gain,
                jagged_gain=config.sharpen_jagged_gain,
                threshold=config.sharpen_threshold,
                max_brighten=config.sharpen_max_brighten,
                max_darken=config.sharpen_max_darken,
            ),
        ),
        PreprocessingStep("median", partial(median_filter, size=config.median_size)),
        PreprocessingStep("gamma", partial(gamma_correct, gamma=config.gamma)),
        PreprocessingStep(
            "window",
            partial(stretch_window, lower=config.window_lower, upper=config.window_upper),
        ),
        PreprocessingStep(
            "binarize",
            partial(
                double_threshold,
                first=config.first_threshold,
                second=config.second_threshold,
            ),
        ),
    )


def calculate_sharpness(image: np.ndarray) -> float:
    """Calculate image sharpness using Laplacian variance.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Sharpness score (higher means sharper).
    """
    gray = to_grayscale(image)
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def calculate_contrast(image: np.ndarray) -> float:
    """Calculate image contrast as the standard deviation of pixel intensities."""
    gray = to_grayscale(image)
    return float(gray.std())


class ImagePreprocessor:
    """Deterministic OCR-oriented image enhancer.

    Args:
        config: Preprocessing constants. The same config and the same input
            bytes always produce the same enhanced pixels.
    """

    def __init__(self, config: PreprocessingConfig | None = None) -> None:
        self.config = config or PreprocessingConfig()
        self.steps = build_steps(self.config)

    def run(self, image: np.ndarray, label: str = "image") -> np.ndarray:
        """Apply every step to an already decoded image.

        Args:
            image: Decoded RGB or grayscale image.
            label: Name used in debug logs, usually the source filename.

        Returns:
            Output of the last step.
        """
        result = image
        for step in self.steps:
            result = step(result)
            logger.debug("%s: applied %s -> %s", label, step.name, result.shape)
        return result

    def enhance(self, image: SourceImage) -> EnhancedImage:
        """Validate, decode and enhance an uploaded image.

        Args:
            image: Uploaded image.

        Returns:
            Enhanced single-channel image.

        Raises:
            ImageTooLarge: If the buffer exceeds ``max_image_bytes``. Checked
                before any decoding.
            UnreadableImage: If the buffer is not a decodable JPEG, PNG or BMP.
        """
        if image.size > self.config.max_image_bytes:
            raise ImageTooLarge(image.size, self.config.max_image_bytes)

        decoded = decode_image(image)
        sharpness_before = calculate_sharpness(decoded)
        contrast_before = calculate_contrast(decoded)

        result = self.run(decoded, image.filename)

        metrics = QualityMetrics(
            sharpness_before=sharpness_before,
            sharpness_after=calculate_sharpness(result),
            contrast_before=contrast_before,
            contrast_after=calculate_contrast(result),
        )
        logger.info(
            "Preprocessed %s: sharpness %.1f->%.1f, contrast %.1f->%.1f",
            image.filename,
            metrics.sharpness_before,
            metrics.sharpness_after,
            metrics.contrast_before,
            metrics.contrast_after,
        )
        return EnhancedImage(
            pixels=result,
            filename=image.filename,
            steps=("decode",) + tuple(step.name for step in self.steps),
            metrics=metrics,
        )
