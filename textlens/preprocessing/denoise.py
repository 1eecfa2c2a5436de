"""Edge restoration and noise suppression for grayscale text images.

Sharpening restores the crispness lost to resizing; the median filter
that follows removes the isolated specks sharpening tends to create.
"""

import cv2
import numpy as np

from textlens.utils.logger import get_logger

from .tone import clip_to_uint8

logger = get_logger(__name__)


def unsharp_mask(
    image: np.ndarray,
    sigma: float = 1.5,
    flat_gain: float = 1.5,
    jagged_gain: float = 0.7,
    threshold: float = 2.0,
    max_brighten: float = 10.0,
    max_darken: float = 20.0,
) -> np.ndarray:
    """Sharpen with a thresholded unsharp mask.

    The detail layer is the difference between the image and its Gaussian
    blur. Small details (``|detail| <= threshold``) are amplified by
    ``flat_gain``, larger ones by ``jagged_gain``; the resulting boost is
    then clamped so no pixel brightens by more than ``max_brighten`` or
    darkens by more than ``max_darken``.

    Args:
        image: Input grayscale image.
        sigma: Standard deviation of the Gaussian blur.
        flat_gain: Gain for flat areas.
        jagged_gain: Gain for jagged areas.
        threshold: Detail magnitude separating flat from jagged.
        max_brighten: Upper bound of the boost.
        max_darken: Upper bound of the (negative) boost magnitude.

    Returns:
        Sharpened image.
    """
    source = image.astype(np.float32)
    blurred = cv2.GaussianBlur(source, (0, 0), sigma)
    detail = source - blurred
    gain = np.where(np.abs(detail) <= threshold, flat_gain, jagged_gain)
    boost = np.clip(detail * gain, -max_darken, max_brighten)
    logger.debug("Applied unsharp mask (sigma=%.2f)", sigma)
    return clip_to_uint8(source + boost)


def median_filter(image: np.ndarray, size: int = 3) -> np.ndarray:
    """Suppress salt-and-pepper noise with a ``size``x``size`` median.

    Raises:
        ValueError: If ``size`` is not an odd number greater than 1.
    """
    if size < 3 or size % 2 == 0:
        raise ValueError(f"Median size must be an odd number >= 3, got {size}")
    return cv2.medianBlur(image, size)
