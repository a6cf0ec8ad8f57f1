"""Classification of backend REST API failures."""

from __future__ import annotations

from typing import Any

from txflow.domain import ErrorDomain, ErrorSeverity, NormalizedError

from .catalog import ErrorTemplate, clip
from .raw import RawKind, inspect_failure

NETWORK_MARKERS = ("failed to fetch", "networkerror")

API_NETWORK_ERROR = ErrorTemplate(
    code="API_NETWORK_ERROR",
    domain=ErrorDomain.API,
    severity=ErrorSeverity.RETRYABLE,
    message="Cannot reach the backend API. Check the connection.",
    retry_after_ms=3_000,
)
API_VALIDATION_ERROR = ErrorTemplate(
    code="API_VALIDATION_ERROR",
    domain=ErrorDomain.API,
    severity=ErrorSeverity.USER_ACTIONABLE,
    message="Request validation failed.",
)
API_UNPROCESSABLE = ErrorTemplate(
    code="API_VALIDATION_ERROR",
    domain=ErrorDomain.API,
    severity=ErrorSeverity.USER_ACTIONABLE,
    message="Unprocessable request. Check the inputs.",
)
API_UNAUTHORIZED = ErrorTemplate(
    code="API_UNAUTHORIZED",
    domain=ErrorDomain.API,
    severity=ErrorSeverity.USER_ACTIONABLE,
    message="Authentication required. Please sign in again.",
)
API_FORBIDDEN = ErrorTemplate(
    code="API_FORBIDDEN",
    domain=ErrorDomain.API,
    severity=ErrorSeverity.USER_ACTIONABLE,
    message="You do not have permission for this action.",
)
API_NOT_FOUND = ErrorTemplate(
    code="API_NOT_FOUND",
    domain=ErrorDomain.API,
    severity=ErrorSeverity.FATAL,
    message="The requested resource was not found.",
)
API_RATE_LIMITED = ErrorTemplate(
    code="API_RATE_LIMITED",
    domain=ErrorDomain.API,
    severity=ErrorSeverity.RETRYABLE,
    message="Too many requests. Please slow down.",
    retry_after_ms=10_000,
)
API_SERVER_ERROR = ErrorTemplate(
    code="API_SERVER_ERROR",
    domain=ErrorDomain.API,
    severity=ErrorSeverity.RETRYABLE,
    message="Internal server error. Please try again shortly.",
    retry_after_ms=5_000,
)
API_UNKNOWN = ErrorTemplate(
    code="API_UNKNOWN",
    domain=ErrorDomain.API,
    severity=ErrorSeverity.RETRYABLE,
    message="Unexpected API error.",
    retry_after_ms=2_000,
)

_STATUS_TEMPLATES: dict[int, ErrorTemplate] = {
    400: API_VALIDATION_ERROR,
    401: API_UNAUTHORIZED,
    403: API_FORBIDDEN,
    404: API_NOT_FOUND,
    422: API_UNPROCESSABLE,
}


def classify_api(raw: Any, context: dict[str, Any] | None = None) -> NormalizedError:
    """Map a backend API response or pre-response failure to a normalized error."""

    failure = inspect_failure(raw)

    if failure.kind is RawKind.TRANSPORT or any(
        marker in failure.lowered for marker in NETWORK_MARKERS
    ):
        return API_NETWORK_ERROR.build(raw, context)

    status = failure.status
    backend_message = failure.backend_message

    template = _STATUS_TEMPLATES.get(status) if status is not None else None
    if template is not None:
        return template.build(raw, context, message=backend_message)

    if status == 429:
        return API_RATE_LIMITED.build(raw, context, retry_after_ms=failure.retry_after_ms)

    if status is not None and status >= 500:
        return API_SERVER_ERROR.build(raw, context, message=backend_message)

    return API_UNKNOWN.build(
        raw,
        context,
        message=backend_message or f"Unexpected API error: {clip(failure.text)}",
    )


__all__ = ["classify_api"]
