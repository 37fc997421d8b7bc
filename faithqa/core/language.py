"""
Language detection for en, am, ti and om.

Ethiopic script is split into Amharic vs Tigrigna by function-word lexicons.
Latin script is Afan Oromo when its function words outnumber English ones.
"""

import unicodedata
from typing import Iterable, Optional

from faithqa.shared.config import settings
from faithqa.shared.text import tokenize

UNSUPPORTED = "unsupported"

_ETHIOPIC_RANGES = (
    (0x1200, 0x137F),  # Ethiopic
    (0x1380, 0x139F),  # Ethiopic Supplement
    (0x2D80, 0x2DDF),  # Ethiopic Extended
)

AMHARIC_WORDS = frozenset({
    "ውስጥ", "ነው", "እና", "ወደ", "አለ", "ላይ", "ናቸው", "ነበር", "ምንድን", "ምንድነው",
    "እንዴት", "ለምን", "ይህ", "ግን", "እግዚአብሔር", "ኢየሱስ", "ክርስቶስ", "መጽሐፍ", "ቅዱስ",
    "ቤተ", "ክርስቲያን",
})

TIGRIGNA_WORDS = frozenset({
    "እዩ", "ኢዩ", "ከም", "ዶ", "ኣሎ", "እዮም", "ከምኡ", "ድማ", "እሞ", "እንታይ",
    "ስለምንታይ", "ከመይ", "ኣብ", "ናይ", "እዚ",
})

OROMO_WORDS = frozenset({
    "akka", "inni", "isaan", "kan", "kana", "keessa", "jira", "waan", "fi", "yoo",
    "maal", "maaliif", "eenyu", "hin", "kun", "irratti", "keessatti", "keenya", "isa",
})

ENGLISH_WORDS = frozenset({
    "the", "and", "is", "are", "was", "were", "what", "how", "why", "who", "when",
    "where", "which", "of", "to", "in", "on", "for", "with", "does", "do", "did",
    "can", "a", "an", "this", "that", "it", "my", "you", "about", "should", "than",
    "be", "we", "our",
})

LATIN_RATIO_THRESHOLD = 0.7


def _is_ethiopic(ch: str) -> bool:
    code = ord(ch)
    return any(lo <= code <= hi for lo, hi in _ETHIOPIC_RANGES)


def _latin_ratio(text: str) -> float:
    letters = [ch for ch in text if ch.isalpha()]
    if not letters:
        return 0.0
    latin = sum(1 for ch in letters if unicodedata.name(ch, "").startswith("LATIN"))
    return latin / len(letters)


def normalize_language_tag(tag: Optional[str]) -> Optional[str]:
    """'am-ET' -> 'am', 'EN_us' -> 'en'."""
    if not tag:
        return None
    return tag.replace("_", "-").split("-")[0].strip().lower() or None


class LanguageDetector:
    """Deterministic lexicon-based classifier."""

    def __init__(self, supported_languages: Optional[Iterable[str]] = None):
        self.supported = frozenset(supported_languages or settings.supported_languages)

    def detect(self, text: str) -> str:
        """Return one of en, am, ti, om, or 'unsupported'."""
        tokens = tokenize(text)

        if any(_is_ethiopic(ch) for ch in text):
            amharic = sum(1 for t in tokens if t in AMHARIC_WORDS)
            tigrigna = sum(1 for t in tokens if t in TIGRIGNA_WORDS)
            return self._supported_or_unsupported("ti" if tigrigna > amharic else "am")

        latin_ratio = _latin_ratio(text)
        oromo_hits = sum(1 for t in tokens if t in OROMO_WORDS)
        english_hits = sum(1 for t in tokens if t in ENGLISH_WORDS)
        if oromo_hits > english_hits and latin_ratio > LATIN_RATIO_THRESHOLD:
            return self._supported_or_unsupported("om")

        if english_hits >= 2:
            return self._supported_or_unsupported("en")

        return UNSUPPORTED

    def resolve(self, text: str, lang_hint: Optional[str] = None) -> str:
        """
        Detect, then let a supported hint override a supported detection.
        Unsupported input stays unsupported whatever the hint says.
        """
        detected = self.detect(text)
        if detected == UNSUPPORTED:
            return detected
        hint = normalize_language_tag(lang_hint)
        if hint and hint in self.supported:
            return hint
        return detected

    def _supported_or_unsupported(self, language: str) -> str:
        return language if language in self.supported else UNSUPPORTED
