"""
Text normalization helpers shared by caching, detection and moderation.
"""

import re
import unicodedata
from typing import List

_WHITESPACE = re.compile(r"\s+")
_WORD = re.compile(r"[^\W\d_]+(?:'[^\W\d_]+)?", re.UNICODE)


def normalize_question(text: str) -> str:
    """NFKC, casefold, collapse whitespace."""
    normalized = unicodedata.normalize("NFKC", text)
    normalized = normalized.casefold()
    return _WHITESPACE.sub(" ", normalized).strip()


def tokenize(text: str) -> List[str]:
    """Lowercased word tokens (letters only, apostrophes kept inside words)."""
    return [m.group(0) for m in _WORD.finditer(text.lower())]


def whitespace_tokens(text: str) -> List[str]:
    """Whitespace-separated tokens."""
    return text.split()


def truncate(text: str, max_chars: int, suffix: str = "...") -> str:
    """Truncate to max_chars including the suffix."""
    if len(text) <= max_chars:
        return text
    if max_chars <= len(suffix):
        return text[:max_chars]
    return text[:max_chars - len(suffix)] + suffix
