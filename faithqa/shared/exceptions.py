"""
Exception hierarchy for faithqa.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Caller-visible failure kinds."""
    INVALID_INPUT = "invalid_input"
    OVERLOADED = "overloaded"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    INTERNAL_ERROR = "internal_error"


class FaithQAError(Exception):
    """Base exception for all faithqa errors."""
    kind: Optional[ErrorKind] = None


class InvalidInputError(FaithQAError):
    """Raised when a question is empty, oversized or carries malformed context."""
    kind = ErrorKind.INVALID_INPUT


class OverloadedError(FaithQAError):
    """Raised when the admission queue is full."""
    kind = ErrorKind.OVERLOADED

    def __init__(self, message: str, retry_after_seconds: int = 1):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class ProviderUnavailableError(FaithQAError):
    """Raised when every model candidate failed or the deadline passed."""
    kind = ErrorKind.PROVIDER_UNAVAILABLE


class KnowledgeBaseUnavailableError(FaithQAError):
    """Raised when the knowledge base cannot be queried."""
    pass


class PersistenceError(FaithQAError):
    """Raised when a conversation, escalation or telemetry write fails."""
    pass


class EscalationError(FaithQAError):
    """Raised on an invalid escalation state transition."""
    pass


class ProviderError(FaithQAError):
    """Base error for LLM provider operations."""
    pass


class ModelNotFoundError(ProviderError):
    """Raised when the requested model does not exist for this account."""
    pass


class ProviderTimeoutError(ProviderError):
    """Raised when a provider call exceeds its time budget."""
    pass


class TransientProviderError(ProviderError):
    """Raised for retryable failures (5xx, rate limits, empty output)."""
    pass


class PermanentProviderError(ProviderError):
    """Raised for non-retryable failures (auth, bad request)."""
    pass


class EmbeddingError(FaithQAError):
    """Error in embedding operations."""
    pass
