"""Cleanup of raw OCR text.

OCR output on photos carries stray punctuation lines, repeated blocks,
typographic quotes and invisible characters. ``TextNormalizer.clean``
canonicalizes it in a fixed order; later steps assume the earlier ones
already ran.
"""

import re
import unicodedata

from textlens.exceptions import NoTextExtracted, TextTooShort
from textlens.utils.logger import get_logger

logger = get_logger(__name__)

_LINE_BREAKS = re.compile(r"[\r\n]+")
_OTHER_WHITESPACE = re.compile(r"[\t\f\v]")
_ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")
_SINGLE_QUOTES = re.compile("[\u2018\u2019]")
_DOUBLE_QUOTES = re.compile("[\u201c\u201d]")
_DASHES = re.compile("[\u2013\u2014]")
_SPACE_AROUND_NEWLINE = re.compile(r"\s*\n\s*")
_HORIZONTAL_SPACE = re.compile(r"[^\S\n]+")
_LIST_MARKER = re.compile("^\\s*[-\u2022]\\s*", re.MULTILINE)
_DIGIT = re.compile(r"\d")
_DISALLOWED = re.compile(r"""[^A-Za-z0-9_\s.,!?@#$%&*()\[\]{}/<>"'\-]""")
_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_breaks(text: str) -> str:
    """Collapse line-break runs to ``\\n`` and tab/form-feed/vertical-tab to a space."""
    text = _LINE_BREAKS.sub("\n", text)
    return _OTHER_WHITESPACE.sub(" ", text)


def strip_invisible(text: str) -> str:
    """Remove zero-width characters and byte-order marks."""
    return _ZERO_WIDTH.sub("", text)


def normalize_punctuation(text: str) -> str:
    """Replace smart quotes and en/em dashes with ASCII equivalents."""
    text = _SINGLE_QUOTES.sub("'", text)
    text = _DOUBLE_QUOTES.sub('"', text)
    return _DASHES.sub("-", text)


def clean_layout(text: str) -> str:
    """Tidy whitespace and drop leading list markers on every line."""
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)
    text = _HORIZONTAL_SPACE.sub(" ", text)
    return _LIST_MARKER.sub("", text)


def is_punctuation_only(line: str) -> bool:
    """Return True if the line holds only Unicode punctuation and whitespace."""
    return bool(line) and all(
        ch.isspace() or unicodedata.category(ch).startswith("P") for ch in line
    )


def keep_line(line: str) -> bool:
    """Decide whether a trimmed line is content or OCR noise.

    Punctuation-only lines are noise, and so are lines shorter than three
    characters unless they contain a digit.
    """
    if is_punctuation_only(line):
        return False
    if len(line) < 3 and not _DIGIT.search(line):
        return False
    return bool(line)


def filter_lines(text: str) -> str:
    """Trim every line, drop noise lines and rejoin the rest."""
    lines = (line.strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if keep_line(line)).strip()


def dedupe_lines(text: str) -> str:
    """Remove exact-duplicate lines, keeping the first occurrence of each."""
    return "\n".join(dict.fromkeys(text.split("\n")))


def filter_characters(text: str) -> str:
    """Drop characters outside the allowed set and collapse whitespace."""
    text = _DISALLOWED.sub("", text)
    return _WHITESPACE_RUN.sub(" ", text).strip()


class TextNormalizer:
    """Turns raw OCR output into clean, validated text.

    Args:
        min_length: Shortest accepted cleaned text.
    """

    def __init__(self, min_length: int = 3) -> None:
        self.min_length = min_length

    def clean(self, raw: str) -> str:
        """Clean raw OCR text.

        Args:
            raw: Text as returned by the OCR engine.

        Returns:
            Cleaned text.

        Raises:
            NoTextExtracted: If the OCR output holds no visible characters.
            TextTooShort: If the cleaned text is shorter than ``min_length``,
                including text that cleanup reduced to nothing.
        """
        text = normalize_breaks(raw)
        text = strip_invisible(text)
        recognized_anything = bool(text.strip())
        text = normalize_punctuation(text)
        text = clean_layout(text)
        text = filter_lines(text)

        if text:
            text = dedupe_lines(text)
            text = filter_characters(text)

        if not text and not recognized_anything:
            raise NoTextExtracted("No text could be extracted from the image")
        if len(text) < self.min_length:
            raise TextTooShort(
                "Extracted text is too short or unclear - please ensure image "
                "contains readable text"
            )

        logger.debug("Cleaned %d raw chars to %d chars", len(raw), len(text))
        return text
