"""Exceptions for transaction orchestration."""

from __future__ import annotations


class LifecycleError(RuntimeError):
    """Raised when a transaction lifecycle step fails validation."""


class InvalidTransitionError(LifecycleError):
    """Raised when a phase change is not allowed from the current phase."""


__all__ = ["InvalidTransitionError", "LifecycleError"]
