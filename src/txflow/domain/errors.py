"""Normalized error records shared by classification and orchestration."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import Field

from .base import DomainModel
from .enums import ErrorDomain, ErrorSeverity, OrchestratorErrorCode
from .types import ErrorContext


def utc_now() -> datetime:
    return datetime.now(UTC)


class NormalizedError(DomainModel):
    """A failure mapped into a stable code, domain and severity.

    ``message`` is developer-facing and must be sanitized before it is shown
    to an end user. ``original_error`` is retained for diagnostics only and
    is never inspected once classification has happened.
    """

    code: str
    domain: ErrorDomain
    severity: ErrorSeverity
    message: str
    original_error: Any = Field(default=None, repr=False)
    context: ErrorContext = Field(default_factory=dict)
    retry_after_ms: int | None = None

    @property
    def is_retryable(self) -> bool:
        return self.severity == ErrorSeverity.RETRYABLE

    def with_context(self, extra: ErrorContext | None) -> NormalizedError:
        """Return a copy whose context is merged with ``extra``."""

        if not extra:
            return self
        return self.model_copy(update={"context": {**self.context, **extra}})


class OrchestratorError(NormalizedError):
    """Classified error annotated with the orchestrator outcome."""

    orchestrator_code: OrchestratorErrorCode
    correlation_id: str


class TelemetryEvent(DomainModel):
    """Structured payload for logging and analytics pipelines."""

    error_code: str
    domain: ErrorDomain
    severity: ErrorSeverity
    message: str
    timestamp: datetime = Field(default_factory=utc_now)
    correlation_id: str | None = None
    user_id: str | None = None
    context: ErrorContext = Field(default_factory=dict)


__all__ = ["NormalizedError", "OrchestratorError", "TelemetryEvent"]
