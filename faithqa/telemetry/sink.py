"""
Telemetry sink: privacy-aware append-only event log plus analytics summaries.

Redaction happens at write time. With retain_conversation_data off, body
fields are replaced by their lengths before anything reaches the store.
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import numpy as np

from faithqa.memory.models import TelemetryEvent
from faithqa.memory.store import PersistenceStore, format_ts, utc_now
from faithqa.shared.config import settings
from faithqa.shared.logging import anonymize_id, get_logger

logger = get_logger(__name__)

BODY_FIELDS = frozenset({"question", "answer", "content", "text", "prompt", "response"})


class TelemetryKind:
    """Event kinds written by the pipeline."""
    RATE_LIMIT_ADMISSION = "rate_limit_admission"
    MODERATION = "moderation"
    PROVIDER_LATENCY = "provider_latency"
    ALIGNMENT = "alignment"
    REQUEST = "request"
    UNSUPPORTED_LANGUAGE = "unsupported_language"
    BAD_REQUEST = "bad_request"
    OVERLOADED = "overloaded"
    AI_ERROR = "ai_error"
    INTERNAL_ERROR = "internal_error"
    PERSISTENCE_FAILURE = "persistence_failure"
    ESCALATION = "escalation"


class TelemetrySink:
    """Write-side privacy enforcement and read-side aggregates."""

    def __init__(
        self,
        store: PersistenceStore,
        retain_conversation_data: Optional[bool] = None,
        anonymize_user_data: Optional[bool] = None,
        retention_days: Optional[int] = None,
        accuracy_threshold: Optional[float] = None,
        regenerate_threshold: Optional[float] = None
    ):
        privacy = settings.privacy
        self.store = store
        self.retain_conversation_data = (
            retain_conversation_data if retain_conversation_data is not None
            else privacy.retain_conversation_data
        )
        self.anonymize_user_data = (
            anonymize_user_data if anonymize_user_data is not None else privacy.anonymize_user_data
        )
        self.retention_days = retention_days if retention_days is not None else privacy.conversation_retention_days
        self.accuracy_threshold = (
            accuracy_threshold if accuracy_threshold is not None else settings.alignment.accuracy_threshold
        )
        self.regenerate_threshold = (
            regenerate_threshold if regenerate_threshold is not None else settings.alignment.regenerate_threshold
        )

    def prepare(
        self,
        kind: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        now: Optional[datetime] = None,
        **fields: Any
    ) -> TelemetryEvent:
        """Build the event exactly as it will be stored."""
        if not self.retain_conversation_data:
            redacted: Dict[str, Any] = {}
            for key, value in fields.items():
                if key in BODY_FIELDS:
                    redacted[f"{key}_length"] = len(value) if isinstance(value, str) else 0
                else:
                    redacted[key] = value
            fields = redacted

        if user_id and self.anonymize_user_data:
            user_id = anonymize_id(user_id)

        return TelemetryEvent(kind=kind, user_id=user_id, session_id=session_id, fields=fields, ts=format_ts(now))

    async def record(
        self,
        kind: str,
        user_id: Optional[str] = None,
        session_id: Optional[str] = None,
        now: Optional[datetime] = None,
        **fields: Any
    ) -> int:
        """Append one event. Raises PersistenceError when the write fails."""
        event = self.prepare(kind, user_id, session_id, now, **fields)
        return await asyncio.to_thread(self.store.telemetry_insert, event)

    async def events(self, kind: Optional[str] = None, since: Optional[datetime] = None) -> List[TelemetryEvent]:
        return await asyncio.to_thread(self.store.telemetry_query, kind, since)

    async def sweep(self, retention_days: Optional[int] = None, now: Optional[datetime] = None) -> int:
        """Delete events older than the retention window."""
        days = retention_days if retention_days is not None else self.retention_days
        cutoff = (now or utc_now()) - timedelta(days=days)
        deleted = await asyncio.to_thread(self.store.delete_older_than, "telemetry_events", cutoff)
        logger.info(
            f"Telemetry sweep removed {deleted} events older than {days} days",
            extra={"action": "retention"}
        )
        return deleted

    async def summary(self, days: int = 7, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Request and quality metrics over the last `days` days.

        Returns:
            Dict with total_requests, avg/p95 latency, cache_hit_rate,
            avg_alignment_score, accuracy_compliance_rate, moderation_events
            and language_usage
        """
        since = (now or utc_now()) - timedelta(days=days)
        requests = await self.events(TelemetryKind.REQUEST, since)
        alignments = await self.events(TelemetryKind.ALIGNMENT, since)
        moderation = await self.events(TelemetryKind.MODERATION, since)

        latencies = [float(e.fields["total_ms"]) for e in requests if "total_ms" in e.fields]
        scores = [float(e.fields["score"]) for e in alignments if "score" in e.fields]
        cache_hits = sum(1 for e in requests if e.fields.get("cache_hit"))
        languages = Counter(e.fields.get("language", "unknown") for e in requests)

        return {
            "period_days": days,
            "total_requests": len(requests),
            "avg_latency_ms": round(float(np.mean(latencies)), 2) if latencies else 0.0,
            "p95_latency_ms": round(float(np.percentile(latencies, 95)), 2) if latencies else 0.0,
            "cache_hit_rate": round(cache_hits / len(requests), 4) if requests else 0.0,
            "avg_alignment_score": round(float(np.mean(scores)), 4) if scores else 0.0,
            "accuracy_compliance_rate": (
                round(sum(1 for s in scores if s >= self.accuracy_threshold) / len(scores), 4) if scores else 0.0
            ),
            "moderation_events": sum(1 for e in moderation if e.fields.get("flags")),
            "language_usage": dict(languages),
        }

    async def alignment_stats(self, days: int = 30, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Average score, aligned rate and poor-alignment count."""
        since = (now or utc_now()) - timedelta(days=days)
        alignments = await self.events(TelemetryKind.ALIGNMENT, since)
        scores = [float(e.fields["score"]) for e in alignments if "score" in e.fields]
        if not scores:
            return {"average_score": 0.0, "total": 0, "aligned_rate": 0.0, "poor_alignment_count": 0}

        aligned = sum(1 for e in alignments if e.fields.get("is_aligned"))
        return {
            "average_score": round(float(np.mean(scores)), 4),
            "total": len(scores),
            "aligned_rate": round(aligned / len(scores), 4),
            "poor_alignment_count": sum(1 for s in scores if s < self.regenerate_threshold),
        }
