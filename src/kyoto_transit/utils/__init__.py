"""Utility functions for Kyoto transit search."""

from .japanese_text import get_converter, is_hiragana_only, normalize_search_term

__all__ = [
    "get_converter",
    "is_hiragana_only",
    "normalize_search_term",
]
