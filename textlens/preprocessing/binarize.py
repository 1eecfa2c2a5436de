"""Binarization of enhanced grayscale images.

The two-pass threshold/invert sequence is kept exactly as tuned: the
second threshold acts on the inverted output of the first, which is not
the same curve as a single threshold on the input.
"""

import numpy as np

from textlens.utils.logger import get_logger

logger = get_logger(__name__)


def threshold(image: np.ndarray, level: int) -> np.ndarray:
    """Map pixels ``>= level`` to 255 and all others to 0."""
    return np.where(image >= level, 255, 0).astype(np.uint8)


def invert(image: np.ndarray) -> np.ndarray:
    return (255 - image).astype(np.uint8)


def double_threshold(image: np.ndarray, first: int = 140, second: int = 90) -> np.ndarray:
    """Threshold at ``first``, invert, threshold at ``second``, invert.

    Args:
        image: Input grayscale image.
        first: Level of the first threshold.
        second: Level of the second threshold, applied to the inverted result.

    Returns:
        Binary image with pixel values 0 or 255.
    """
    result = threshold(image, first)
    result = invert(result)
    result = threshold(result, second)
    result = invert(result)
    logger.debug("Applied double threshold (%d, %d)", first, second)
    return result
