"""Exception hierarchy for the image-to-text extraction pipeline.

Every error raised by a pipeline stage derives from ``TextlensError`` so
the orchestrator can turn it into a per-image failure.
"""


class TextlensError(Exception):
    """Base exception for all extraction errors."""


class ImageError(TextlensError):
    """Raised when the source image cannot be used."""


class UnreadableImage(ImageError):
    """Raised when the image buffer cannot be decoded or has an unsupported format."""


class ImageTooLarge(ImageError):
    """Raised when the image buffer exceeds the configured size ceiling."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"Image file size exceeds maximum limit of {limit // (1024 * 1024)}MB"
            f" ({size} bytes)"
        )


class RecognitionError(TextlensError):
    """Raised when OCR cannot produce a result."""


class RecognitionEngineError(RecognitionError):
    """Raised when the OCR engine is missing, fails to start, or crashes."""


class RecognitionTimeout(RecognitionError):
    """Raised when recognition exceeds its time budget."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"Text recognition timed out after {timeout:g}s")


class TextQualityError(TextlensError):
    """Raised when the cleaned OCR text is not usable."""


class TextTooShort(TextQualityError):
    """Raised when the cleaned text is shorter than the minimum length."""


class NoTextExtracted(TextQualityError):
    """Raised when nothing survives text cleanup."""


class ExtractionCancelled(TextlensError):
    """Raised when processing is cancelled before recognition starts."""


class PersistenceError(TextlensError):
    """Raised when an extraction record cannot be stored."""
