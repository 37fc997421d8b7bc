"""
Tests for localized messages and text helpers.
"""

from faithqa.shared.localization import MESSAGES, localize, response_directive, unsupported_language_message
from faithqa.shared.text import normalize_question, tokenize, truncate


def test_every_message_has_all_languages():
    for key, catalog in MESSAGES.items():
        assert set(catalog) == {"en", "am", "ti", "om"}, key


def test_unknown_language_falls_back_to_english():
    assert localize("too_short", "fr") == localize("too_short", "en")


def test_unsupported_message_lists_languages():
    message = unsupported_language_message(["en", "am"])
    assert "English" in message
    assert "Amharic" in message


def test_response_directive_default():
    assert response_directive("xx") == "Respond in English."


def test_normalize_question():
    assert normalize_question("  What   IS\tTimkat? ") == "what is timkat?"


def test_tokenize_keeps_apostrophes_and_ethiopic():
    assert tokenize("Ge'ez and ጥምቀት, 2026!") == ["ge'ez", "and", "ጥምቀት"]


def test_truncate():
    assert truncate("abcdef", 10) == "abcdef"
    assert truncate("abcdefghij", 6) == "abc..."
