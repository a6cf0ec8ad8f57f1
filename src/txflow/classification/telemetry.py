"""Helpers for shipping normalized errors to logs and analytics sinks."""

from __future__ import annotations

import json
from typing import Any

from txflow.domain import NormalizedError, TelemetryEvent

from .raw import safe_str


def enrich_for_telemetry(
    error: NormalizedError,
    *,
    correlation_id: str | None = None,
    user_id: str | None = None,
    context: dict[str, Any] | None = None,
) -> TelemetryEvent:
    """Build a structured telemetry payload from ``error``.

    Caller context wins over the error's own context on key collisions.
    """

    return TelemetryEvent(
        error_code=error.code,
        domain=error.domain,
        severity=error.severity,
        message=error.message,
        correlation_id=correlation_id or None,
        user_id=user_id or None,
        context={**error.context, **(context or {})},
    )


def format_for_log(error: NormalizedError) -> str:
    """Render ``error`` as ``[DOMAIN] CODE (severity) message | ctx:{...}``."""

    parts = [
        f"[{error.domain.value.upper()}]",
        error.code,
        f"({error.severity.value.lower()})",
        error.message,
    ]
    if error.context:
        parts.append(f"| ctx:{json.dumps(error.context, sort_keys=True, default=safe_str)}")
    return " ".join(parts)


__all__ = ["enrich_for_telemetry", "format_for_log"]
