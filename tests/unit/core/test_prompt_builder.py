"""
Tests for the provider prompt builder.
"""

from faithqa.core.models import Context, RetrievedItem
from faithqa.core.prompt.builder import PromptBuilder
from faithqa.memory.models import Message, Role


def _message(role, content):
    return Message(conversation_id=1, role=role, content=content, created_ts="2026-01-01T00:00:00.000000+00:00")


def test_sections_in_order():
    context = Context(
        lesson={"id": "l1", "title": "The Feast of Timkat", "objectives": ["Explain Epiphany"],
                "doctrinal_focus": ["tabot"]},
        course={"id": "c1", "title": "Feasts of the Church"},
        retrieved=[RetrievedItem(title="Synaxarium: Timkat", category="liturgy", content="On Tir 11...",
                                 score=0.9)],
    )
    history = [_message(Role.USER, "What is Meskel?"), _message(Role.ASSISTANT, "Meskel is the finding...")]

    prompt = PromptBuilder().build("What is the meaning of Timkat?", "en", context, history)

    order = [
        "FAITH ALIGNMENT CONTEXT",
        "LEARNING CONTEXT:",
        "CONVERSATION CONTEXT:",
        "RELEVANT THEOLOGICAL SOURCES",
        "LANGUAGE: Respond in English.",
        "CONSTRAINTS:",
        "QUESTION: What is the meaning of Timkat?",
        "RESPONSE:",
    ]
    positions = [prompt.index(marker) for marker in order]
    assert positions == sorted(positions)
    assert "Lesson: The Feast of Timkat" in prompt
    assert "Doctrinal focus: tabot" in prompt
    assert "[Source: Synaxarium: Timkat (liturgy)]" in prompt
    assert "user: What is Meskel?" in prompt


def test_deterministic():
    builder = PromptBuilder()
    assert builder.build("What is Timkat?", "am") == builder.build("What is Timkat?", "am")


def test_language_directive():
    prompt = PromptBuilder().build("ጥምቀት ምንድን ነው?", "am")
    assert "Respond in Amharic" in prompt
    assert "ቁርባን" in prompt


def test_empty_sections_omitted():
    prompt = PromptBuilder().build("What is Timkat?", "en")
    assert "LEARNING CONTEXT" not in prompt
    assert "CONVERSATION CONTEXT" not in prompt
    assert "RELEVANT THEOLOGICAL SOURCES" not in prompt


def test_history_limited_and_truncated():
    builder = PromptBuilder({"max_history_messages": 2, "max_history_chars": 20})
    history = [_message(Role.USER, f"question number {i} " + "x" * 50) for i in range(5)]

    prompt = builder.build("What is Timkat?", "en", history=history)

    assert "question number 2" not in prompt
    assert "question number 3" in prompt
    assert "question number 4" in prompt
    assert "x" * 30 not in prompt


def test_strict_mode_lists_issues():
    prompt = PromptBuilder().build(
        "What is Timkat?", "en", strict=True, issues=["Neutral or favourable mention of arianism"]
    )
    assert "STRICT DOCTRINAL REQUIREMENTS" in prompt
    assert "- Neutral or favourable mention of arianism" in prompt
    assert prompt.index("STRICT DOCTRINAL REQUIREMENTS") < prompt.index("QUESTION:")


def test_context_file_override_truncates_head_and_tail(tmp_path):
    (tmp_path / "en.md").write_text("BEGINNING\n" + "MIDDLE LINE\n" * 1000 + "END", encoding="utf-8")
    builder = PromptBuilder({"context_dir": str(tmp_path), "max_chars_per_file": 200})

    prompt = builder.build("What is Timkat?", "en")

    assert "BEGINNING" in prompt
    assert "END" in prompt
    assert "[... context truncated ...]" in prompt
    assert "FAITH ALIGNMENT CONTEXT" not in prompt
