"""
Pydantic models for persisted records.
"""

from enum import Enum
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class EscalationStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class Conversation(BaseModel):
    """One conversation per (user_id, session_id)."""
    id: int
    user_id: str
    session_id: str
    created_ts: str
    last_activity_ts: str
    message_count: int = 0
    needs_moderation: bool = False


class MessageMetadata(BaseModel):
    """Known per-message fields; anything else lives in extensions."""
    language: Optional[str] = None
    model_id: Optional[str] = None
    faith_alignment_score: Optional[float] = None
    moderation_action: Optional[str] = None
    flags: List[str] = Field(default_factory=list)
    cache_hit: bool = False
    latency_ms: Optional[float] = None
    extensions: Dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """Append-only conversation message."""
    id: Optional[int] = None
    conversation_id: int
    role: Role
    content: str
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)
    created_ts: str


class Escalation(BaseModel):
    """Content flagged for human review."""
    id: Optional[int] = None
    user_id: str
    content: str
    reason: str
    priority: str  # low, medium, high
    flags: List[str] = Field(default_factory=list)
    faith_alignment_score: Optional[float] = None
    status: EscalationStatus = EscalationStatus.PENDING
    created_ts: str
    reviewer_id: Optional[str] = None
    resolution_ts: Optional[str] = None
    resolution_notes: Optional[str] = None


class TelemetryEvent(BaseModel):
    """Append-only telemetry row."""
    id: Optional[int] = None
    kind: str
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    fields: Dict[str, Any] = Field(default_factory=dict)
    ts: str


class ModerationRecord(BaseModel):
    """Flagged moderation outcome, kept for user-history rules."""
    id: Optional[int] = None
    user_id: str
    flags: List[str] = Field(default_factory=list)
    severity: str
    action: str
    ts: str
