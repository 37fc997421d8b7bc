"""
Tests for ConversationStore.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from faithqa.memory.conversations import ConversationStore
from faithqa.memory.models import Role


@pytest.mark.asyncio
async def test_new_session_has_empty_history(store):
    conversations = ConversationStore(store)
    assert await conversations.history("u1", "s1", 6) == []
    assert await conversations.get("u1", "s1") is None


@pytest.mark.asyncio
async def test_append_and_read_back(store):
    conversations = ConversationStore(store)
    base = datetime(2026, 2, 1, tzinfo=timezone.utc)
    for i in range(4):
        await conversations.append_exchange("u1", "s1", f"q{i}", f"a{i}", now=base + timedelta(seconds=i))

    history = await conversations.history("u1", "s1", 6)

    assert [m.content for m in history] == ["q1", "a1", "q2", "a2", "q3", "a3"]
    assert history[0].role == Role.USER
    assert (await conversations.get("u1", "s1")).message_count == 8


@pytest.mark.asyncio
async def test_concurrent_appends_keep_pairs_together(store):
    conversations = ConversationStore(store)

    await asyncio.gather(*[
        conversations.append_exchange("u1", "s1", f"q{i}", f"a{i}") for i in range(10)
    ])

    history = await conversations.history("u1", "s1", 20)
    assert len(history) == 20
    for user_msg, assistant_msg in zip(history[::2], history[1::2]):
        assert user_msg.role == Role.USER
        assert assistant_msg.role == Role.ASSISTANT
        assert assistant_msg.content == "a" + user_msg.content[1:]
