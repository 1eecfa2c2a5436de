"""Image containers passed between pipeline stages.

``SourceImage`` wraps the uploaded bytes; ``EnhancedImage`` wraps the
preprocessed pixels and must be released as soon as OCR is done with it.
"""

import io
from dataclasses import dataclass
from types import TracebackType

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from textlens.exceptions import UnreadableImage

SUPPORTED_FORMATS = frozenset({"JPEG", "PNG", "BMP"})


@dataclass(frozen=True)
class SourceImage:
    """An uploaded image as received from the caller."""

    data: bytes
    filename: str
    mime_type: str | None = None
    storage_ref: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


def _to_rgb(pil_image: Image.Image) -> np.ndarray:
    """Convert a decoded image to 8-bit RGB.

    16-bit and 32-bit grayscale modes are scaled down instead of clipped,
    which would otherwise turn most of the image white.
    """
    mode = pil_image.mode
    if mode.startswith("I;16") or mode == "I":
        wide = np.clip(np.asarray(pil_image, dtype=np.int64), 0, 65535)
        gray = (wide >> 8).astype(np.uint8)
    elif mode == "F":
        gray = np.clip(np.rint(np.asarray(pil_image)), 0, 255).astype(np.uint8)
    else:
        return np.array(pil_image.convert("RGB"), dtype=np.uint8)
    return cv2.cvtColor(gray, cv2.COLOR_GRAY2RGB)


def decode_image(image: SourceImage) -> np.ndarray:
    """Decode a source image into an RGB pixel array.

    Args:
        image: Uploaded image to decode.

    Returns:
        ``uint8`` array of shape ``(height, width, 3)``.

    Raises:
        UnreadableImage: If the bytes are not a decodable JPEG, PNG or BMP.
    """
    try:
        with Image.open(io.BytesIO(image.data)) as pil_image:
            fmt = pil_image.format
            if fmt not in SUPPORTED_FORMATS:
                raise UnreadableImage(
                    f"Unsupported image format {fmt or 'unknown'} in {image.filename}"
                )
            pil_image.load()
            rgb = _to_rgb(pil_image)
    except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise UnreadableImage(f"Could not decode image {image.filename}") from exc
    except (OSError, ValueError, SyntaxError) as exc:
        raise UnreadableImage(
            f"Could not decode image {image.filename}: {exc}"
        ) from exc

    return rgb


@dataclass
class QualityMetrics:
    """Before/after image quality measurements."""

    sharpness_before: float
    sharpness_after: float
    contrast_before: float
    contrast_after: float


class EnhancedImage:
    """Preprocessed single-channel image ready for recognition.

    The pixels are only valid until :meth:`release` is called. Using the
    instance as a context manager releases it on exit, whatever happened
    inside the block.

    Args:
        pixels: ``uint8`` grayscale or binary image.
        filename: Name of the source image, for logging.
        steps: Names of the preprocessing steps that produced the pixels.
        metrics: Optional quality measurements.
    """

    def __init__(
        self,
        pixels: np.ndarray,
        filename: str,
        steps: tuple[str, ...] = (),
        metrics: QualityMetrics | None = None,
    ) -> None:
        self._pixels: np.ndarray | None = pixels
        self.filename = filename
        self.steps = steps
        self.metrics = metrics

    @property
    def pixels(self) -> np.ndarray:
        if self._pixels is None:
            raise ValueError(f"Enhanced image for {self.filename} was released")
        return self._pixels

    @property
    def released(self) -> bool:
        return self._pixels is None

    @property
    def shape(self) -> tuple[int, ...]:
        return self.pixels.shape

    def to_bytes(self) -> bytes:
        """Encode the pixels as PNG."""
        ok, encoded = cv2.imencode(".png", self.pixels)
        if not ok:
            raise ValueError(f"Could not encode enhanced image for {self.filename}")
        return encoded.tobytes()

    def to_pil(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def release(self) -> None:
        """Drop the pixel buffer. Safe to call more than once."""
        self._pixels = None

    def __enter__(self) -> "EnhancedImage":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
