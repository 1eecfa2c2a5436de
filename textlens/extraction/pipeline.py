"""Image-to-text extraction pipeline.

Runs preprocessing, recognition and text cleanup for each image, stores
successful results, and turns every stage failure into a per-image
outcome so one bad upload never sinks a batch.
"""

import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from textlens.exceptions import ExtractionCancelled, TextlensError
from textlens.ocr.recognizer import RawOcrResult, TextRecognizer
from textlens.preprocessing.image import EnhancedImage, SourceImage
from textlens.preprocessing.pipeline import ImagePreprocessor
from textlens.text.normalizer import TextNormalizer
from textlens.utils.logger import get_logger

logger = get_logger(__name__)

STAGE_PREPROCESS = "preprocess"
STAGE_RECOGNIZE = "recognize"
STAGE_CLEAN = "clean"
STAGE_PERSIST = "persist"


@dataclass
class ExtractedText:
    """Cleaned text extracted from one image."""

    text: str
    raw_text: str
    confidence: float
    filename: str
    image_id: str | None = None


@dataclass
class ExtractionOutcome:
    """Result of running the pipeline on one image."""

    filename: str
    extracted: ExtractedText | None = None
    error: str | None = None
    error_type: str | None = None
    stage: str | None = None

    @property
    def success(self) -> bool:
        return self.extracted is not None

    def to_dict(self) -> dict[str, Any]:
        """Flatten the outcome for JSON or CSV output."""
        return {
            "filename": self.filename,
            "success": self.success,
            "extractedText": self.extracted.text if self.extracted else None,
            "rawText": self.extracted.raw_text if self.extracted else None,
            "confidence": self.extracted.confidence if self.extracted else None,
            "imageId": self.extracted.image_id if self.extracted else None,
            "error": self.error,
        }


@dataclass
class BatchResult:
    """Per-image outcomes of a batch, in input order."""

    outcomes: list[ExtractionOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[ExtractionOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[ExtractionOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def success(self) -> bool:
        """True when at least one image was extracted."""
        return bool(self.succeeded)

    @property
    def errors(self) -> list[str]:
        return [o.error or "Unknown error" for o in self.failed]


class ExtractionPipeline:
    """Orchestrates preprocessing, OCR and cleanup for uploaded images.

    Collaborators are injected so the OCR engine and the record store can
    be swapped without touching the other stages.

    Args:
        preprocessor: Image enhancer.
        recognizer: OCR engine.
        normalizer: Text cleaner.
        sink: Optional record store exposing
            ``create(original_name=..., extracted_text=..., raw_text=...,
            confidence=..., storage_ref=...) -> str``.
        max_workers: Images processed concurrently by :meth:`process_batch`.
    """

    def __init__(
        self,
        preprocessor: ImagePreprocessor,
        recognizer: TextRecognizer,
        normalizer: TextNormalizer,
        sink: Any | None = None,
        max_workers: int = 4,
    ) -> None:
        self.preprocessor = preprocessor
        self.recognizer = recognizer
        self.normalizer = normalizer
        self.sink = sink
        self.max_workers = max(1, max_workers)
        self._recognize_lock = None if recognizer.reentrant else threading.Lock()

    def process(
        self, image: SourceImage, cancel_event: threading.Event | None = None
    ) -> ExtractionOutcome:
        """Extract clean text from one image.

        Never raises: failures are reported in the returned outcome.

        Args:
            image: Uploaded image.
            cancel_event: Checked before preprocessing, before recognition
                and by the recognizer between its passes; once set, the image
                is abandoned without side effects.

        Returns:
            Outcome holding either the extracted text or the failure reason.
        """
        stage = STAGE_PREPROCESS
        try:
            self._check_cancelled(image, cancel_event)
            with self.preprocessor.enhance(image) as enhanced:
                self._check_cancelled(image, cancel_event)
                stage = STAGE_RECOGNIZE
                raw = self._recognize(image, enhanced, cancel_event)

            stage = STAGE_CLEAN
            text = self.normalizer.clean(raw.text)

            stage = STAGE_PERSIST
            image_id = self._persist(image, text, raw)
        except TextlensError as exc:
            logger.error("Error processing %s during %s: %s", image.filename, stage, exc)
            return self._failure(image, stage, exc)
        except Exception as exc:
            logger.exception("Unexpected error processing %s during %s", image.filename, stage)
            return self._failure(image, stage, exc)

        logger.info(
            "Extracted %d chars from %s (confidence %.1f)",
            len(text),
            image.filename,
            raw.confidence,
        )
        return ExtractionOutcome(
            filename=image.filename,
            extracted=ExtractedText(
                text=text,
                raw_text=raw.text,
                confidence=raw.confidence,
                filename=image.filename,
                image_id=image_id,
            ),
        )

    def process_batch(
        self,
        images: Sequence[SourceImage],
        cancel_event: threading.Event | None = None,
    ) -> BatchResult:
        """Extract text from several images independently.

        Images run concurrently on a thread pool; the returned outcomes
        follow the input order.

        Args:
            images: Uploaded images.
            cancel_event: Shared cancellation flag, see :meth:`process`.

        Returns:
            Batch result; successful when at least one image succeeded.
        """
        if not images:
            return BatchResult()

        workers = min(self.max_workers, len(images))
        if workers == 1:
            outcomes = [self.process(image, cancel_event) for image in images]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="textlens") as pool:
                outcomes = list(pool.map(lambda image: self.process(image, cancel_event), images))

        result = BatchResult(outcomes=outcomes)
        logger.info(
            "Batch complete: %d/%d images succeeded",
            len(result.succeeded),
            len(outcomes),
        )
        return result

    def _check_cancelled(
        self, image: SourceImage, cancel_event: threading.Event | None
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise ExtractionCancelled(f"Processing of {image.filename} was cancelled")

    def _recognize(
        self,
        image: SourceImage,
        enhanced: EnhancedImage,
        cancel_event: threading.Event | None,
    ) -> RawOcrResult:
        if self._recognize_lock is None:
            return self.recognizer.recognize(enhanced, cancel_event)
        with self._recognize_lock:
            # the wait for the lock may outlast a cancellation
            self._check_cancelled(image, cancel_event)
            return self.recognizer.recognize(enhanced, cancel_event)

    def _persist(self, image: SourceImage, text: str, raw: RawOcrResult) -> str | None:
        if self.sink is None:
            return None
        return self.sink.create(
            original_name=image.filename,
            extracted_text=text,
            raw_text=raw.text,
            confidence=raw.confidence,
            storage_ref=image.storage_ref,
        )

    def _failure(self, image: SourceImage, stage: str, exc: Exception) -> ExtractionOutcome:
        return ExtractionOutcome(
            filename=image.filename,
            error=f"Failed to process {image.filename}: {exc}",
            error_type=type(exc).__name__,
            stage=stage,
        )
