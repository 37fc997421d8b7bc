"""
Tests for the telemetry sink: write-time redaction, retention and summaries.
"""

from datetime import datetime, timedelta, timezone

import pytest

from faithqa.shared.logging import anonymize_id
from faithqa.telemetry.sink import TelemetryKind, TelemetrySink

NOW = datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_bodies_redacted_when_not_retained(store):
    sink = TelemetrySink(store, retain_conversation_data=False, anonymize_user_data=True)

    await sink.record(
        TelemetryKind.REQUEST, "user-42", "s1",
        question="What is Timkat?", answer="Timkat is...", language="en", total_ms=12.5,
    )

    event = (await sink.events(TelemetryKind.REQUEST))[0]
    assert "question" not in event.fields
    assert "answer" not in event.fields
    assert event.fields["question_length"] == len("What is Timkat?")
    assert event.fields["answer_length"] == len("Timkat is...")
    assert event.fields["language"] == "en"
    assert event.user_id == anonymize_id("user-42")
    assert "What is Timkat?" not in str(event.model_dump())


@pytest.mark.asyncio
async def test_bodies_kept_when_retained(store):
    sink = TelemetrySink(store, retain_conversation_data=True, anonymize_user_data=False)

    await sink.record(TelemetryKind.BAD_REQUEST, "user-42", "s1", question="Hello")

    event = (await sink.events())[0]
    assert event.fields["question"] == "Hello"
    assert event.user_id == "user-42"


@pytest.mark.asyncio
async def test_sweep_uses_retention_window(store):
    sink = TelemetrySink(store, retention_days=30)
    await sink.record(TelemetryKind.REQUEST, now=NOW - timedelta(days=31))
    await sink.record(TelemetryKind.REQUEST, now=NOW - timedelta(days=1))

    deleted = await sink.sweep(now=NOW)

    assert deleted == 1
    assert len(await sink.events()) == 1


@pytest.mark.asyncio
async def test_summary(store):
    sink = TelemetrySink(store, accuracy_threshold=0.9)
    for total_ms, cache_hit, language in [(100, False, "en"), (200, True, "en"), (300, False, "am")]:
        await sink.record(
            TelemetryKind.REQUEST, "u1", now=NOW - timedelta(hours=1),
            total_ms=total_ms, cache_hit=cache_hit, language=language,
        )
    for score in (0.95, 0.8):
        await sink.record(TelemetryKind.ALIGNMENT, "u1", now=NOW - timedelta(hours=1), score=score, is_aligned=score >= 0.85)
    await sink.record(TelemetryKind.MODERATION, "u1", now=NOW - timedelta(hours=1), flags=["too_short"])
    await sink.record(TelemetryKind.MODERATION, "u1", now=NOW - timedelta(hours=1), flags=[])
    await sink.record(TelemetryKind.REQUEST, "u1", now=NOW - timedelta(days=20), total_ms=9999)

    summary = await sink.summary(days=7, now=NOW)

    assert summary["total_requests"] == 3
    assert summary["avg_latency_ms"] == pytest.approx(200.0)
    assert summary["p95_latency_ms"] == pytest.approx(290.0)
    assert summary["cache_hit_rate"] == pytest.approx(0.3333)
    assert summary["avg_alignment_score"] == pytest.approx(0.875)
    assert summary["accuracy_compliance_rate"] == pytest.approx(0.5)
    assert summary["moderation_events"] == 1
    assert summary["language_usage"] == {"en": 2, "am": 1}


@pytest.mark.asyncio
async def test_alignment_stats(store):
    sink = TelemetrySink(store, regenerate_threshold=0.7)
    for score in (0.95, 0.9, 0.5):
        await sink.record(TelemetryKind.ALIGNMENT, now=NOW, score=score, is_aligned=score >= 0.85)

    stats = await sink.alignment_stats(days=30, now=NOW + timedelta(hours=1))

    assert stats["total"] == 3
    assert stats["average_score"] == pytest.approx(0.7833)
    assert stats["aligned_rate"] == pytest.approx(0.6667)
    assert stats["poor_alignment_count"] == 1


@pytest.mark.asyncio
async def test_empty_summary(store):
    summary = await TelemetrySink(store).summary(now=NOW)
    assert summary["total_requests"] == 0
    assert summary["cache_hit_rate"] == 0.0
