"""Japanese text processing utilities."""

import re
import threading
import unicodedata
from typing import Any

import jaconv
import pykakasi

_SEARCH_NOISE_RE = re.compile(r"[\s()（）]+")
_OPERATOR_SUFFIX_RE = re.compile(r"\s*[(（][^)）]*[)）]$")
_HIRAGANA_ONLY_RE = re.compile(r"^[\u3041-\u309fー]+$")


class JapaneseTextConverter:
    """Handles conversion between Japanese text formats."""

    def __init__(self) -> None:
        """Initialize the converter with lazy pykakasi initialization."""
        self._kks: Any = None
        self._lock = threading.Lock()

    def _get_kakasi(self) -> Any:
        """Get pykakasi converter with thread-safe lazy initialization."""
        if self._kks is None:
            with self._lock:
                if self._kks is None:  # Double-check locking pattern
                    self._kks = pykakasi.kakasi()
        return self._kks

    def to_hiragana(self, text: str) -> str:
        """Convert text to hiragana."""
        hiragana = jaconv.kata2hira(text)
        result = self._get_kakasi().convert(hiragana)
        return "".join([item["hira"] for item in result])

    def reading(self, name: str) -> str:
        """Search-normalized hiragana reading of a stop or landmark name.

        The operator suffix (``四条烏丸(京都市バス)``) is not part of the reading.
        """
        base = _OPERATOR_SUFFIX_RE.sub("", name)
        return normalize_search_term(self.to_hiragana(base))


# Thread-safe singleton implementation
_converter: JapaneseTextConverter | None = None
_converter_lock = threading.Lock()


def get_converter() -> JapaneseTextConverter:
    """Get a thread-safe singleton instance of the Japanese text converter."""
    global _converter
    if _converter is None:
        with _converter_lock:
            if _converter is None:  # Double-check locking pattern
                _converter = JapaneseTextConverter()
    return _converter


def normalize_search_term(text: str) -> str:
    """Normalize a name or query for substring matching.

    NFKC (full-width to half-width), lowercase, katakana to hiragana, and
    whitespace and parentheses removed.
    """
    text = unicodedata.normalize("NFKC", text).lower()
    text = jaconv.kata2hira(text)
    return _SEARCH_NOISE_RE.sub("", text)


def is_hiragana_only(text: str) -> bool:
    """Whether a normalized term is a pure kana reading."""
    return bool(_HIRAGANA_ONLY_RE.match(text))
