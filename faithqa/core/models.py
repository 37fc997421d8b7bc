"""
Value types passed between pipeline stages.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field

from faithqa.shared.exceptions import ErrorKind


class Severity(str, Enum):
    """Moderation severity, ordered low < medium < high."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


class ModerationAction(str, Enum):
    """Recommended action emitted by moderation."""
    APPROVE = "approve"
    REGENERATE = "regenerate"
    ESCALATE = "escalate"
    BLOCK = "block"


class QuestionContext(BaseModel):
    """Learning context attached to a question."""
    lesson_id: Optional[str] = None
    course_id: Optional[str] = None
    chapter_id: Optional[str] = None
    lesson_title: Optional[str] = None
    course_title: Optional[str] = None
    chapter_name: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Question(BaseModel):
    """A user-submitted question. Immutable after creation."""
    text: str
    user_id: str
    session_id: str
    lang_hint: Optional[str] = None
    ctx: QuestionContext = Field(default_factory=QuestionContext)
    arrival_ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class ModerationResult(BaseModel):
    """Outcome of pre-response screening."""
    needs_review: bool = False
    flags: List[str] = Field(default_factory=list)
    sensitive_topics: List[str] = Field(default_factory=list)
    severity: Severity = Severity.LOW
    faith_alignment_score: float = 0.0
    faith_term_hits: int = 0
    confidence: float = 0.9
    recommended_action: ModerationAction = ModerationAction.APPROVE
    guidance: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class FaithAlignment(BaseModel):
    """Post-response doctrinal alignment score."""
    score: float
    is_aligned: bool
    issues: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class Source(BaseModel):
    title: str
    type: str
    url: Optional[str] = None


class RelatedResource(BaseModel):
    id: str
    title: str
    category: str
    url: str


class LatencyBreakdown(BaseModel):
    """Per-stage wall-clock timings in milliseconds."""
    admit_ms: float = 0.0
    moderation_ms: float = 0.0
    retrieval_ms: float = 0.0
    provider_ms: float = 0.0
    persistence_ms: float = 0.0
    total_ms: float = 0.0


class AnswerBundle(BaseModel):
    """What the caller receives from Pipeline.ask."""
    text: str
    language: str
    sources: List[Source] = Field(default_factory=list)
    related_resources: List[RelatedResource] = Field(default_factory=list)
    moderation: Optional[ModerationResult] = None
    faith_alignment: Optional[FaithAlignment] = None
    cache_hit: bool = False
    latency_breakdown: LatencyBreakdown = Field(default_factory=LatencyBreakdown)
    guidance: List[str] = Field(default_factory=list)
    moderation_warning: Optional[str] = None
    guidance_only: bool = False
    error: Optional[ErrorKind] = None
    model_id: Optional[str] = None
    escalation_id: Optional[int] = None


@dataclass
class RetrievedItem:
    """One knowledge base hit."""
    title: str
    category: str
    content: str
    score: float


@dataclass
class Context:
    """Everything retrieved for a question before prompting."""
    lesson: Optional[Dict[str, Any]] = None
    course: Optional[Dict[str, Any]] = None
    chapter: Optional[Dict[str, Any]] = None
    retrieved: List[RetrievedItem] = field(default_factory=list)

    @property
    def focus_points(self) -> List[str]:
        if not self.lesson:
            return []
        return list(self.lesson.get("doctrinal_focus") or [])


@dataclass
class ProviderResponse:
    """Parsed provider output."""
    text: str
    model_id: str
    finish_reason: str
    latency_ms: float
