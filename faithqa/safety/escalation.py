"""
Escalation queue for human review of flagged questions and answers.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from faithqa.core.models import Severity
from faithqa.memory.models import Escalation, EscalationStatus
from faithqa.memory.store import PersistenceStore, format_ts
from faithqa.shared.exceptions import EscalationError
from faithqa.shared.logging import get_logger, log_with_context

logger = get_logger(__name__)

ALLOWED_TRANSITIONS = {
    EscalationStatus.PENDING: {EscalationStatus.IN_REVIEW, EscalationStatus.RESOLVED, EscalationStatus.DISMISSED},
    EscalationStatus.IN_REVIEW: {EscalationStatus.RESOLVED, EscalationStatus.DISMISSED},
    EscalationStatus.RESOLVED: set(),
    EscalationStatus.DISMISSED: set(),
}


def priority_for(severity: Severity) -> str:
    """Escalation priority mirrors moderation severity."""
    return Severity(severity).value


class EscalationQueue:
    """Create, list and move escalations through review."""

    def __init__(self, store: PersistenceStore):
        self.store = store

    async def create(
        self,
        user_id: str,
        content: str,
        reason: str,
        priority: str,
        flags: Optional[List[str]] = None,
        faith_alignment_score: Optional[float] = None,
        now: Optional[datetime] = None
    ) -> int:
        escalation = Escalation(
            user_id=user_id,
            content=content,
            reason=reason,
            priority=priority,
            flags=list(flags or []),
            faith_alignment_score=faith_alignment_score,
            created_ts=format_ts(now),
        )
        escalation_id = await asyncio.to_thread(self.store.escalations_insert, escalation)
        log_with_context(
            logger, logging.INFO, f"Escalation {escalation_id} created",
            user_id=user_id, action="escalate", priority=priority, reason=reason
        )
        return escalation_id

    async def pending(self, priority: Optional[str] = None, limit: int = 50) -> List[Escalation]:
        """Pending escalations, high priority first."""
        return await asyncio.to_thread(
            self.store.escalations_list, EscalationStatus.PENDING.value, priority, limit
        )

    async def get(self, escalation_id: int) -> Optional[Escalation]:
        return await asyncio.to_thread(self.store.escalations_get, escalation_id)

    async def start_review(self, escalation_id: int, reviewer_id: str) -> Escalation:
        return await self._transition(escalation_id, EscalationStatus.IN_REVIEW, reviewer_id)

    async def resolve(
        self,
        escalation_id: int,
        reviewer_id: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Escalation:
        return await self._transition(escalation_id, EscalationStatus.RESOLVED, reviewer_id, notes, now)

    async def dismiss(
        self,
        escalation_id: int,
        reviewer_id: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Escalation:
        return await self._transition(escalation_id, EscalationStatus.DISMISSED, reviewer_id, notes, now)

    async def stats(self) -> Dict[str, Dict[str, int]]:
        """Counts by status, and open (pending + in_review) counts by priority."""
        return await asyncio.to_thread(self.store.escalations_counts)

    async def _transition(
        self,
        escalation_id: int,
        target: EscalationStatus,
        reviewer_id: str,
        notes: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Escalation:
        current = await self.get(escalation_id)
        if current is None:
            raise EscalationError(f"Escalation {escalation_id} not found")
        if target not in ALLOWED_TRANSITIONS[current.status]:
            raise EscalationError(
                f"Escalation {escalation_id} cannot move from {current.status.value} to {target.value}"
            )

        terminal = target in (EscalationStatus.RESOLVED, EscalationStatus.DISMISSED)
        await asyncio.to_thread(
            self.store.escalations_update,
            escalation_id,
            target.value,
            reviewer_id,
            format_ts(now) if terminal else None,
            notes,
        )
        logger.info(f"Escalation {escalation_id} -> {target.value}", extra={"action": "review"})
        return await self.get(escalation_id)
