"""Shared type aliases for the domain layer."""

from __future__ import annotations

from typing import Any, NewType

CorrelationId = NewType("CorrelationId", str)
ErrorContext = dict[str, Any]

__all__ = [
    "CorrelationId",
    "ErrorContext",
]
