"""Error templates shared by the domain classifiers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from txflow.domain import ErrorDomain, ErrorSeverity, NormalizedError


@dataclass(frozen=True, slots=True)
class ErrorTemplate:
    """Static part of a normalized error."""

    code: str
    domain: ErrorDomain
    severity: ErrorSeverity
    message: str
    retry_after_ms: int | None = None

    def build(
        self,
        raw: Any,
        context: dict[str, Any] | None = None,
        *,
        message: str | None = None,
        retry_after_ms: int | None = None,
    ) -> NormalizedError:
        return NormalizedError(
            code=self.code,
            domain=self.domain,
            severity=self.severity,
            message=message if message is not None else self.message,
            original_error=raw,
            context=dict(context or {}),
            retry_after_ms=retry_after_ms if retry_after_ms is not None else self.retry_after_ms,
        )


def clip(text: str, limit: int = 120) -> str:
    return text[:limit]


UNKNOWN_ERROR = ErrorTemplate(
    code="UNKNOWN",
    domain=ErrorDomain.UNKNOWN,
    severity=ErrorSeverity.FATAL,
    message="Unexpected error.",
)


__all__ = ["UNKNOWN_ERROR", "ErrorTemplate", "clip"]
