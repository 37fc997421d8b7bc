"""
PersistenceStore: SQLite + WAL mode for conversations, escalations,
moderation history and telemetry.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, List, Sequence, Tuple

from faithqa.memory.models import (
    Conversation,
    Escalation,
    EscalationStatus,
    Message,
    MessageMetadata,
    ModerationRecord,
    Role,
    TelemetryEvent,
)
from faithqa.shared.config import settings
from faithqa.shared.exceptions import PersistenceError
from faithqa.shared.logging import get_logger

logger = get_logger(__name__)

# table -> timestamp column used by retention
RETENTION_COLUMNS = {
    "telemetry_events": "ts",
    "messages": "created_ts",
    "conversations": "last_activity_ts",
    "escalations": "created_ts",
    "moderation_log": "ts",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_ts(dt: Optional[datetime] = None) -> str:
    """Fixed-width UTC ISO timestamp, so string order matches time order."""
    dt = dt or utc_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


class PersistenceStore:
    """Durable store with WAL mode. Every call opens its own connection."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or settings.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS conversations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    session_id TEXT NOT NULL,
                    created_ts TEXT NOT NULL,
                    last_activity_ts TEXT NOT NULL,
                    message_count INTEGER DEFAULT 0,
                    needs_moderation BOOLEAN DEFAULT 0,
                    UNIQUE (user_id, session_id)
                );

                CREATE TABLE IF NOT EXISTS messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    conversation_id INTEGER NOT NULL,
                    role TEXT NOT NULL,
                    content TEXT NOT NULL,
                    language TEXT,
                    model_id TEXT,
                    faith_alignment_score REAL,
                    moderation_action TEXT,
                    flags_json TEXT,
                    cache_hit BOOLEAN DEFAULT 0,
                    latency_ms REAL,
                    extensions_json TEXT,
                    created_ts TEXT NOT NULL,
                    FOREIGN KEY (conversation_id) REFERENCES conversations(id)
                );

                CREATE TABLE IF NOT EXISTS escalations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    reason TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    flags_json TEXT,
                    faith_alignment_score REAL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_ts TEXT NOT NULL,
                    reviewer_id TEXT,
                    resolution_ts TEXT,
                    resolution_notes TEXT
                );

                CREATE TABLE IF NOT EXISTS moderation_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    flags_json TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    action TEXT NOT NULL,
                    ts TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS telemetry_events (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    kind TEXT NOT NULL,
                    user_id TEXT,
                    session_id TEXT,
                    fields_json TEXT NOT NULL,
                    ts TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, created_ts, id);
                CREATE INDEX IF NOT EXISTS idx_escalations_status ON escalations(status, priority);
                CREATE INDEX IF NOT EXISTS idx_moderation_user ON moderation_log(user_id, ts);
                CREATE INDEX IF NOT EXISTS idx_telemetry_kind_ts ON telemetry_events(kind, ts);
            """)

    @contextmanager
    def _get_connection(self):
        """Get database connection; sqlite errors surface as PersistenceError."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database operation failed: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # Conversations and messages

    def conversations_upsert(self, user_id: str, session_id: str, now: Optional[datetime] = None) -> int:
        """Idempotent create; returns the conversation id."""
        ts = format_ts(now)
        with self._get_connection() as conn:
            conn.execute(
                """INSERT OR IGNORE INTO conversations (user_id, session_id, created_ts, last_activity_ts)
                   VALUES (?, ?, ?, ?)""",
                (user_id, session_id, ts, ts)
            )
            row = conn.execute(
                "SELECT id FROM conversations WHERE user_id = ? AND session_id = ?",
                (user_id, session_id)
            ).fetchone()
            return row["id"]

    def conversation_get(self, user_id: str, session_id: str) -> Optional[Conversation]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM conversations WHERE user_id = ? AND session_id = ?",
                (user_id, session_id)
            ).fetchone()
            if row is None:
                return None
            data = dict(row)
            data["needs_moderation"] = bool(data["needs_moderation"])
            return Conversation(**data)

    def messages_append(
        self,
        conversation_id: int,
        messages: Sequence[Tuple[Role, str, Optional[MessageMetadata]]],
        needs_moderation: bool = False,
        now: Optional[datetime] = None
    ) -> List[int]:
        """
        Append (role, content, metadata) messages in one transaction.

        All messages share one timestamp and keep their given order. Either
        every message lands and the conversation counters move, or nothing does.
        """
        ts = format_ts(now)
        with self._get_connection() as conn:
            ids = [
                self._insert_message(conn, conversation_id, role, content, metadata, ts)
                for role, content, metadata in messages
            ]
            conn.execute(
                """UPDATE conversations
                   SET last_activity_ts = ?,
                       message_count = message_count + ?,
                       needs_moderation = CASE WHEN ? THEN 1 ELSE needs_moderation END
                   WHERE id = ?""",
                (ts, len(ids), 1 if needs_moderation else 0, conversation_id)
            )
            return ids

    def _insert_message(
        self,
        conn: sqlite3.Connection,
        conversation_id: int,
        role: Role,
        content: str,
        metadata: Optional[MessageMetadata],
        ts: str
    ) -> int:
        metadata = metadata or MessageMetadata()
        cursor = conn.execute(
            """INSERT INTO messages (conversation_id, role, content, language, model_id,
                   faith_alignment_score, moderation_action, flags_json, cache_hit, latency_ms,
                   extensions_json, created_ts)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                conversation_id,
                Role(role).value,
                content,
                metadata.language,
                metadata.model_id,
                metadata.faith_alignment_score,
                metadata.moderation_action,
                json.dumps(metadata.flags),
                1 if metadata.cache_hit else 0,
                metadata.latency_ms,
                json.dumps(metadata.extensions) if metadata.extensions else None,
                ts,
            )
        )
        return cursor.lastrowid

    def messages_recent(self, conversation_id: int, limit: int) -> List[Message]:
        """Last `limit` messages, oldest first (created_ts, then insertion order)."""
        if limit <= 0:
            return []
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT * FROM messages
                   WHERE conversation_id = ?
                   ORDER BY created_ts DESC, id DESC
                   LIMIT ?""",
                (conversation_id, limit)
            ).fetchall()
        return [self._row_to_message(row) for row in reversed(rows)]

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=Role(row["role"]),
            content=row["content"],
            metadata=MessageMetadata(
                language=row["language"],
                model_id=row["model_id"],
                faith_alignment_score=row["faith_alignment_score"],
                moderation_action=row["moderation_action"],
                flags=json.loads(row["flags_json"] or "[]"),
                cache_hit=bool(row["cache_hit"]),
                latency_ms=row["latency_ms"],
                extensions=json.loads(row["extensions_json"] or "{}"),
            ),
            created_ts=row["created_ts"],
        )

    # Escalations

    def escalations_insert(self, escalation: Escalation) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT INTO escalations (user_id, content, reason, priority, flags_json,
                       faith_alignment_score, status, created_ts)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    escalation.user_id,
                    escalation.content,
                    escalation.reason,
                    escalation.priority,
                    json.dumps(escalation.flags),
                    escalation.faith_alignment_score,
                    EscalationStatus(escalation.status).value,
                    escalation.created_ts,
                )
            )
            return cursor.lastrowid

    def escalations_get(self, escalation_id: int) -> Optional[Escalation]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM escalations WHERE id = ?", (escalation_id,)).fetchone()
        return self._row_to_escalation(row) if row else None

    def escalations_list(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        limit: int = 50
    ) -> List[Escalation]:
        """Escalations, high priority first, then oldest first."""
        clauses, params = [], []
        if status:
            clauses.append("status = ?")
            params.append(status)
        if priority:
            clauses.append("priority = ?")
            params.append(priority)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"""SELECT * FROM escalations {where}
                    ORDER BY CASE priority WHEN 'high' THEN 0 WHEN 'medium' THEN 1 ELSE 2 END,
                             created_ts ASC, id ASC
                    LIMIT ?""",
                params
            ).fetchall()
        return [self._row_to_escalation(row) for row in rows]

    def escalations_update(
        self,
        escalation_id: int,
        status: str,
        reviewer_id: Optional[str] = None,
        resolution_ts: Optional[str] = None,
        resolution_notes: Optional[str] = None
    ) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """UPDATE escalations
                   SET status = ?,
                       reviewer_id = COALESCE(?, reviewer_id),
                       resolution_ts = COALESCE(?, resolution_ts),
                       resolution_notes = COALESCE(?, resolution_notes)
                   WHERE id = ?""",
                (status, reviewer_id, resolution_ts, resolution_notes, escalation_id)
            )
            return cursor.rowcount > 0

    def escalations_counts(self) -> Dict[str, Dict[str, int]]:
        with self._get_connection() as conn:
            by_status = conn.execute(
                "SELECT status, COUNT(*) AS n FROM escalations GROUP BY status"
            ).fetchall()
            by_priority = conn.execute(
                "SELECT priority, COUNT(*) AS n FROM escalations WHERE status IN ('pending', 'in_review') "
                "GROUP BY priority"
            ).fetchall()
        return {
            "by_status": {row["status"]: row["n"] for row in by_status},
            "open_by_priority": {row["priority"]: row["n"] for row in by_priority},
        }

    def _row_to_escalation(self, row: sqlite3.Row) -> Escalation:
        data = dict(row)
        data["flags"] = json.loads(data.pop("flags_json") or "[]")
        return Escalation(**data)

    # Moderation history

    def moderation_log_insert(self, record: ModerationRecord) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT INTO moderation_log (user_id, flags_json, severity, action, ts)
                   VALUES (?, ?, ?, ?, ?)""",
                (record.user_id, json.dumps(record.flags), record.severity, record.action, record.ts)
            )
            return cursor.lastrowid

    def moderation_log_since(self, user_id: str, since: datetime) -> List[ModerationRecord]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM moderation_log WHERE user_id = ? AND ts >= ? ORDER BY ts ASC, id ASC",
                (user_id, format_ts(since))
            ).fetchall()
        records = []
        for row in rows:
            data = dict(row)
            data["flags"] = json.loads(data.pop("flags_json") or "[]")
            records.append(ModerationRecord(**data))
        return records

    # Telemetry

    def telemetry_insert(self, event: TelemetryEvent) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT INTO telemetry_events (kind, user_id, session_id, fields_json, ts)
                   VALUES (?, ?, ?, ?, ?)""",
                (event.kind, event.user_id, event.session_id,
                 json.dumps(event.fields, ensure_ascii=False, default=str), event.ts)
            )
            return cursor.lastrowid

    def telemetry_query(
        self,
        kind: Optional[str] = None,
        since: Optional[datetime] = None
    ) -> List[TelemetryEvent]:
        clauses, params = [], []
        if kind:
            clauses.append("kind = ?")
            params.append(kind)
        if since:
            clauses.append("ts >= ?")
            params.append(format_ts(since))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT * FROM telemetry_events {where} ORDER BY ts ASC, id ASC",
                params
            ).fetchall()
        return [
            TelemetryEvent(
                id=row["id"],
                kind=row["kind"],
                user_id=row["user_id"],
                session_id=row["session_id"],
                fields=json.loads(row["fields_json"]),
                ts=row["ts"],
            )
            for row in rows
        ]

    # Retention

    def delete_older_than(self, table: str, cutoff: datetime) -> int:
        """
        Delete rows older than cutoff. Conversations take their messages with
        them; escalations are only removed once resolved or dismissed.
        """
        if table not in RETENTION_COLUMNS:
            raise ValueError(f"Retention not supported for table: {table}")
        column = RETENTION_COLUMNS[table]
        cutoff_ts = format_ts(cutoff)

        with self._get_connection() as conn:
            if table == "escalations":
                cursor = conn.execute(
                    "DELETE FROM escalations WHERE created_ts < ? AND status IN ('resolved', 'dismissed')",
                    (cutoff_ts,)
                )
            elif table == "conversations":
                conn.execute(
                    """DELETE FROM messages WHERE conversation_id IN
                       (SELECT id FROM conversations WHERE last_activity_ts < ?)""",
                    (cutoff_ts,)
                )
                cursor = conn.execute("DELETE FROM conversations WHERE last_activity_ts < ?", (cutoff_ts,))
            else:
                cursor = conn.execute(f"DELETE FROM {table} WHERE {column} < ?", (cutoff_ts,))
            deleted = cursor.rowcount

        logger.info(f"Retention removed {deleted} rows from {table}", extra={"action": "retention"})
        return deleted

    def sweep(self, cutoff: datetime) -> Dict[str, int]:
        """Apply retention to every table; returns rows removed per table."""
        return {table: self.delete_older_than(table, cutoff) for table in RETENTION_COLUMNS}
