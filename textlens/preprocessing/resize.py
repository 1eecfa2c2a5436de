"""Geometry and color-space steps applied right after decoding."""

import cv2
import numpy as np

from textlens.utils.logger import get_logger

logger = get_logger(__name__)


def fit_within(image: np.ndarray, max_dimension: int = 3000) -> np.ndarray:
    """Shrink an image so neither side exceeds ``max_dimension``.

    Aspect ratio is preserved and Lanczos resampling is used. Images that
    already fit are returned unchanged; they are never enlarged.

    Args:
        image: Input image (RGB or grayscale).
        max_dimension: Largest allowed width or height in pixels.

    Returns:
        Resized image, or the input when no resize is needed.
    """
    height, width = image.shape[:2]
    scale = min(max_dimension / width, max_dimension / height)
    if scale >= 1.0:
        return image

    new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
    result = cv2.resize(image, new_size, interpolation=cv2.INTER_LANCZOS4)
    logger.debug("Resized %dx%d -> %dx%d", width, height, *new_size)
    return result


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert an RGB image to a single channel; grayscale passes through."""
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    return image
