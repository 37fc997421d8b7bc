"""
Conversation history on top of PersistenceStore.
"""

import asyncio
from datetime import datetime
from typing import List, Optional

from faithqa.memory.models import Conversation, Message, MessageMetadata, Role
from faithqa.memory.store import PersistenceStore


class ConversationStore:
    """Append-only (user, assistant) history per (user_id, session_id)."""

    def __init__(self, store: PersistenceStore):
        self.store = store

    async def ensure(self, user_id: str, session_id: str, now: Optional[datetime] = None) -> int:
        """Create the conversation if missing; safe to repeat."""
        return await asyncio.to_thread(self.store.conversations_upsert, user_id, session_id, now)

    async def append_exchange(
        self,
        user_id: str,
        session_id: str,
        question: str,
        answer: str,
        question_metadata: Optional[MessageMetadata] = None,
        answer_metadata: Optional[MessageMetadata] = None,
        needs_moderation: bool = False,
        now: Optional[datetime] = None
    ) -> int:
        """Persist one exchange atomically. Returns the conversation id."""
        conversation_id = await self.ensure(user_id, session_id, now)
        await asyncio.to_thread(
            self.store.messages_append,
            conversation_id,
            [(Role.USER, question, question_metadata), (Role.ASSISTANT, answer, answer_metadata)],
            needs_moderation,
            now,
        )
        return conversation_id

    async def history(self, user_id: str, session_id: str, limit: int) -> List[Message]:
        """Last `limit` messages in ascending order; empty for a new session."""
        conversation = await asyncio.to_thread(self.store.conversation_get, user_id, session_id)
        if conversation is None:
            return []
        return await asyncio.to_thread(self.store.messages_recent, conversation.id, limit)

    async def get(self, user_id: str, session_id: str) -> Optional[Conversation]:
        return await asyncio.to_thread(self.store.conversation_get, user_id, session_id)
