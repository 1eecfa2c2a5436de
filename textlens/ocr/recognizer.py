"""OCR engine abstraction.

The extraction pipeline only depends on ``TextRecognizer``; any OCR
library or service can be plugged in by implementing ``recognize``.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

from textlens.preprocessing.image import EnhancedImage


@dataclass(frozen=True)
class RawOcrResult:
    """Unprocessed OCR output for one image."""

    text: str
    confidence: float
    word_count: int = 0


class TextRecognizer(ABC):
    """Interface for OCR engines.

    Implementations must be stateless across ``recognize`` calls apart
    from one-time engine setup done in ``initialize``.
    """

    #: Whether ``recognize`` may run concurrently on the same instance.
    reentrant: bool = True

    def initialize(self) -> None:
        """Prepare the engine. Must be idempotent."""

    @abstractmethod
    def recognize(
        self, image: EnhancedImage, cancel_event: threading.Event | None = None
    ) -> RawOcrResult:
        """Recognize text in an enhanced image.

        Engines that work in several passes should check ``cancel_event``
        between passes and raise ``ExtractionCancelled`` once it is set.

        Raises:
            ExtractionCancelled: If cancelled between recognition passes.
            RecognitionEngineError: If the engine cannot run or crashes.
            RecognitionTimeout: If recognition exceeds its time budget.
        """
