"""Shared test fixtures for the textlens test suite."""

import io
import threading
import time
from pathlib import Path

import cv2
import numpy as np
import pytest
from PIL import Image

from textlens.exceptions import ExtractionCancelled
from textlens.ocr.recognizer import RawOcrResult, TextRecognizer
from textlens.preprocessing.image import EnhancedImage


def make_image_bytes(
    fmt: str = "PNG",
    height: int = 120,
    width: int = 320,
    text: str = "Hello 123",
) -> bytes:
    """Render dark text on a light background and encode it."""
    image = np.full((height, width, 3), 235, dtype=np.uint8)
    cv2.putText(
        image,
        text,
        (10, height // 2 + 10),
        cv2.FONT_HERSHEY_SIMPLEX,
        1.0,
        (20, 20, 20),
        2,
    )
    buf = io.BytesIO()
    Image.fromarray(image).save(buf, format=fmt)
    return buf.getvalue()


class FakeRecognizer(TextRecognizer):
    """In-memory recognizer that records what it was asked to read."""

    def __init__(
        self,
        text: str = "Hello World\nSecond line",
        confidence: float = 88.5,
        error: Exception | None = None,
        delay: float = 0.0,
        reentrant: bool = True,
    ) -> None:
        self.text = text
        self.confidence = confidence
        self.error = error
        self.delay = delay
        self.reentrant = reentrant
        self.seen: list[EnhancedImage] = []
        self.cancel_events: list[threading.Event | None] = []
        self.initialized = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def initialize(self) -> None:
        self.initialized += 1

    def recognize(
        self, image: EnhancedImage, cancel_event: threading.Event | None = None
    ) -> RawOcrResult:
        assert not image.released
        with self._lock:
            self.seen.append(image)
            self.cancel_events.append(cancel_event)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if cancel_event is not None and cancel_event.is_set():
                raise ExtractionCancelled(f"Recognition of {image.filename} was cancelled")
            return RawOcrResult(text=self.text, confidence=self.confidence, word_count=4)
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG")


@pytest.fixture
def bmp_bytes() -> bytes:
    return make_image_bytes("BMP")


@pytest.fixture
def corrupt_bytes() -> bytes:
    return b"\x89PNG\r\n\x1a\n this is not really a png"


@pytest.fixture
def fake_recognizer() -> FakeRecognizer:
    return FakeRecognizer()


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent
