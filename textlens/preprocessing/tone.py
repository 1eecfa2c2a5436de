"""Intensity transforms that push text and background apart.

All functions take and return ``uint8`` arrays. Intermediate math runs in
``float32`` and is rounded once at the end, so results are reproducible.
"""

import numpy as np

from textlens.utils.logger import get_logger

logger = get_logger(__name__)


def clip_to_uint8(values: np.ndarray) -> np.ndarray:
    """Round and clamp a float array back to the 0..255 range."""
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def stretch_window(image: np.ndarray, lower: float, upper: float) -> np.ndarray:
    """Map ``lower`` to 0 and ``upper`` to 255, clipping values outside.

    Args:
        image: Input image.
        lower: Intensity mapped to black.
        upper: Intensity mapped to white.

    Returns:
        Stretched image. A degenerate window returns a copy of the input.
    """
    if upper <= lower:
        return image.copy()
    scaled = (image.astype(np.float32) - lower) * (255.0 / (upper - lower))
    return clip_to_uint8(scaled)


def normalize_histogram(
    image: np.ndarray, lower_percentile: float = 1.0, upper_percentile: float = 99.0
) -> np.ndarray:
    """Stretch the intensity histogram to the full dynamic range.

    The given percentiles become black and white, so a few outlier pixels
    do not prevent the stretch.
    """
    lower, upper = np.percentile(image, (lower_percentile, upper_percentile))
    logger.debug("Normalizing histogram window %.1f..%.1f", lower, upper)
    return stretch_window(image, float(lower), float(upper))


def linear(image: np.ndarray, slope: float = 1.3, intercept: float = -0.1) -> np.ndarray:
    """Apply ``slope * pixel + intercept``."""
    return clip_to_uint8(image.astype(np.float32) * slope + intercept)


def modulate(
    image: np.ndarray,
    brightness: float = 1.0,
    contrast: float = 1.0,
    saturation: float = 1.0,
) -> np.ndarray:
    """Adjust brightness, contrast and saturation in one pass.

    Saturation only affects three-channel input; on a grayscale image it
    has nothing to act on. Contrast pivots around mid-grey.

    Args:
        image: Input image.
        brightness: Multiplier applied to every intensity.
        contrast: Slope applied around 128 after brightening.
        saturation: Blend factor between grey (0) and the original colors (1).

    Returns:
        Modulated image.
    """
    result = image.astype(np.float32)
    if result.ndim == 3 and saturation != 1.0:
        grey = result.mean(axis=2, keepdims=True)
        result = grey + (result - grey) * saturation
    result = result * brightness
    result = (result - 128.0) * contrast + 128.0
    return clip_to_uint8(result)


def gamma_correct(image: np.ndarray, gamma: float = 1.4) -> np.ndarray:
    """Apply ``255 * (pixel / 255) ** gamma``; ``gamma > 1`` darkens midtones."""
    table = clip_to_uint8(255.0 * (np.arange(256, dtype=np.float64) / 255.0) ** gamma)
    return table[image]
