"""
Tests for the escalation queue.
"""

from datetime import datetime, timedelta, timezone

import pytest

from faithqa.core.models import Severity
from faithqa.memory.models import EscalationStatus
from faithqa.safety.escalation import EscalationQueue, priority_for
from faithqa.shared.exceptions import EscalationError


@pytest.fixture
def queue(store):
    return EscalationQueue(store)


def test_priority_mirrors_severity():
    assert priority_for(Severity.HIGH) == "high"
    assert priority_for(Severity.LOW) == "low"


@pytest.mark.asyncio
async def test_pending_sorted_by_priority_then_age(queue):
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    low = await queue.create("u1", "q1", "moderation_escalate", "low", now=base)
    high_late = await queue.create("u2", "q2", "low_faith_alignment", "high", now=base + timedelta(minutes=2))
    high_early = await queue.create("u3", "q3", "moderation_block", "high", now=base + timedelta(minutes=1))
    medium = await queue.create("u4", "q4", "moderation_escalate", "medium", ["sensitive_topic_catholic"])

    pending = await queue.pending()

    assert [e.id for e in pending] == [high_early, high_late, medium, low]
    assert pending[2].flags == ["sensitive_topic_catholic"]
    assert [e.id for e in await queue.pending(priority="high")] == [high_early, high_late]


@pytest.mark.asyncio
async def test_review_lifecycle(queue):
    escalation_id = await queue.create("u1", "question", "moderation_escalate", "medium")

    in_review = await queue.start_review(escalation_id, "reviewer-1")
    assert in_review.status == EscalationStatus.IN_REVIEW
    assert in_review.reviewer_id == "reviewer-1"
    assert in_review.resolution_ts is None

    resolved = await queue.resolve(escalation_id, "reviewer-1", notes="Answered by Liqawint")
    assert resolved.status == EscalationStatus.RESOLVED
    assert resolved.resolution_ts is not None
    assert resolved.resolution_notes == "Answered by Liqawint"
    assert await queue.pending() == []


@pytest.mark.asyncio
async def test_terminal_states_are_final(queue):
    escalation_id = await queue.create("u1", "question", "moderation_escalate", "low")
    await queue.dismiss(escalation_id, "reviewer-1")

    with pytest.raises(EscalationError):
        await queue.start_review(escalation_id, "reviewer-2")
    with pytest.raises(EscalationError):
        await queue.resolve(escalation_id, "reviewer-2")


@pytest.mark.asyncio
async def test_unknown_escalation(queue):
    with pytest.raises(EscalationError):
        await queue.resolve(999, "reviewer-1")


@pytest.mark.asyncio
async def test_stats(queue):
    first = await queue.create("u1", "q1", "r", "high")
    await queue.create("u2", "q2", "r", "high")
    await queue.create("u3", "q3", "r", "low")
    await queue.resolve(first, "reviewer-1")

    stats = await queue.stats()

    assert stats["by_status"] == {"pending": 2, "resolved": 1}
    assert stats["open_by_priority"] == {"high": 1, "low": 1}
