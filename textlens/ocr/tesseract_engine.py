"""Tesseract OCR engine wrapper.

Drives the Tesseract binary through pytesseract with parameters tuned
for printed, multi-line blocks of English text, and reports the mean
word confidence alongside the recognized text.
"""

import shlex
import threading
import time
from collections.abc import Callable
from typing import Any

import pytesseract
from PIL import Image

from textlens.exceptions import (
    ExtractionCancelled,
    RecognitionEngineError,
    RecognitionTimeout,
)
from textlens.preprocessing.image import EnhancedImage
from textlens.utils.config import OCRConfig
from textlens.utils.logger import get_logger

from .recognizer import RawOcrResult, TextRecognizer

logger = get_logger(__name__)


def _flag(value: bool) -> str:
    return "1" if value else "0"


def build_tesseract_parameters(config: OCRConfig) -> dict[str, str]:
    """Translate the OCR configuration into Tesseract ``-c`` variables.

    Args:
        config: Recognition parameters.

    Returns:
        Mapping of Tesseract variable names to values, in a stable order.
    """
    params = {
        "preserve_interword_spaces": _flag(config.preserve_interword_spaces),
        "tessedit_enable_doc_dict": _flag(config.enable_doc_dict),
        "language_model_penalty_non_dict_word": f"{config.penalty_non_dict_word:g}",
        "language_model_penalty_non_freq_dict_word": (
            f"{config.penalty_non_freq_dict_word:g}"
        ),
        "tessedit_reject_poor_qual": _flag(config.reject_poor_quality),
    }
    if config.char_whitelist:
        params["tessedit_char_whitelist"] = config.char_whitelist
    params.update(config.extra_parameters)
    return params


def build_tesseract_config(config: OCRConfig) -> str:
    """Build the pytesseract ``config`` argument string.

    Values are shell-quoted because pytesseract splits the string with
    :func:`shlex.split` and the whitelist contains quotes and a space.
    """
    parts = [f"--oem {config.oem}", f"--psm {config.psm}"]
    parts.extend(
        f"-c {shlex.quote(f'{name}={value}')}"
        for name, value in build_tesseract_parameters(config).items()
    )
    return " ".join(parts)


def mean_confidence(data: dict[str, list[Any]]) -> tuple[float, int]:
    """Average the word confidences of an ``image_to_data`` table.

    Entries with a negative confidence (layout rows) or blank text are
    ignored.

    Returns:
        Tuple of (mean confidence on a 0-100 scale, number of words).
    """
    total = 0.0
    count = 0
    for text, conf in zip(data.get("text", []), data.get("conf", []), strict=False):
        value = float(conf)
        if value < 0 or not str(text).strip():
            continue
        total += value
        count += 1
    return (total / count if count else 0.0), count


class TesseractRecognizer(TextRecognizer):
    """``TextRecognizer`` backed by the Tesseract binary.

    Each call spawns its own Tesseract process, so concurrent calls do not
    share engine state.

    Args:
        config: Recognition parameters. Defaults to the tuned settings.
    """

    reentrant = True

    def __init__(self, config: OCRConfig | None = None) -> None:
        self.config = config or OCRConfig()
        self.tesseract_config = build_tesseract_config(self.config)
        self.version: str | None = None
        self._lock = threading.Lock()

    def initialize(self) -> None:
        """Check that Tesseract and the configured language data are available.

        Raises:
            RecognitionEngineError: If the binary or a language pack is missing.
        """
        with self._lock:
            if self.version is not None:
                return
            if self.config.tesseract_cmd:
                pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd
            try:
                version = str(pytesseract.get_tesseract_version())
                languages = set(pytesseract.get_languages(config=""))
            except pytesseract.TesseractNotFoundError as exc:
                raise RecognitionEngineError(
                    "Tesseract is not installed or it's not in your PATH"
                ) from exc
            except (pytesseract.TesseractError, OSError) as exc:
                raise RecognitionEngineError(
                    f"Tesseract could not be started: {exc}"
                ) from exc

            missing = [lang for lang in self.config.lang.split("+") if lang not in languages]
            if missing:
                raise RecognitionEngineError(
                    f"Tesseract language data missing: {', '.join(missing)}"
                )
            self.version = version

        logger.info(
            "Tesseract %s ready (lang=%s, psm=%d, oem=%d)",
            version,
            self.config.lang,
            self.config.psm,
            self.config.oem,
        )

    def recognize(
        self, image: EnhancedImage, cancel_event: threading.Event | None = None
    ) -> RawOcrResult:
        """Recognize text in an enhanced image.

        Both Tesseract invocations share one time budget of
        ``timeout_seconds``.

        Args:
            image: Enhanced image to read.
            cancel_event: Checked between the text pass and the
                confidence pass.

        Returns:
            Raw text and mean word confidence (0-100).

        Raises:
            RecognitionEngineError: If Tesseract is missing or fails.
            RecognitionTimeout: If the time budget is exhausted.
            ExtractionCancelled: If ``cancel_event`` is set after the text pass.
        """
        self.initialize()
        pil_image = image.to_pil()
        deadline = time.monotonic() + self.config.timeout_seconds

        text = self._run(pytesseract.image_to_string, pil_image, deadline)
        if cancel_event is not None and cancel_event.is_set():
            raise ExtractionCancelled(f"Recognition of {image.filename} was cancelled")
        data = self._run(
            pytesseract.image_to_data,
            pil_image,
            deadline,
            output_type=pytesseract.Output.DICT,
        )
        confidence, word_count = mean_confidence(data)

        logger.info(
            "OCR read %d words from %s with mean confidence %.1f",
            word_count,
            image.filename,
            confidence,
        )
        return RawOcrResult(text=text, confidence=confidence, word_count=word_count)

    def _run(
        self,
        func: Callable[..., Any],
        pil_image: Image.Image,
        deadline: float,
        **kwargs: Any,
    ) -> Any:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise RecognitionTimeout(self.config.timeout_seconds)
        try:
            return func(
                pil_image,
                lang=self.config.lang,
                config=self.tesseract_config,
                timeout=remaining,
                **kwargs,
            )
        except pytesseract.TesseractNotFoundError as exc:
            raise RecognitionEngineError(
                "Tesseract is not installed or it's not in your PATH"
            ) from exc
        except pytesseract.TesseractError as exc:
            raise RecognitionEngineError(f"Tesseract failed: {exc.message}") from exc
        except RuntimeError as exc:
            if "timeout" in str(exc).lower():
                raise RecognitionTimeout(self.config.timeout_seconds) from exc
            raise RecognitionEngineError(f"Tesseract failed: {exc}") from exc
