"""Wiring of pipeline components from configuration."""

from textlens.ocr.recognizer import TextRecognizer
from textlens.ocr.tesseract_engine import TesseractRecognizer
from textlens.preprocessing.pipeline import ImagePreprocessor
from textlens.storage.repository import ExtractionRepository
from textlens.text.normalizer import TextNormalizer
from textlens.utils.config import AppConfig

from .pipeline import ExtractionPipeline


def build_repository(config: AppConfig) -> ExtractionRepository:
    """Create the record store described by the storage configuration."""
    return ExtractionRepository(
        database_url=config.storage.database_url,
        retries=config.storage.connect_retries,
        interval=config.storage.connect_interval_seconds,
    )


def build_pipeline(
    config: AppConfig,
    recognizer: TextRecognizer | None = None,
    sink: ExtractionRepository | None = None,
) -> ExtractionPipeline:
    """Assemble an extraction pipeline.

    Args:
        config: Application configuration.
        recognizer: OCR engine; a Tesseract recognizer built from
            ``config.ocr`` when omitted.
        sink: Record store; results are not persisted when omitted.

    Returns:
        Ready-to-use pipeline. The recognizer is not initialized here.
    """
    return ExtractionPipeline(
        preprocessor=ImagePreprocessor(config.preprocessing),
        recognizer=recognizer or TesseractRecognizer(config.ocr),
        normalizer=TextNormalizer(min_length=config.normalization.min_length),
        sink=sink,
        max_workers=config.pipeline.max_workers,
    )
