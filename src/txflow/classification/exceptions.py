"""Exceptions for the classification subsystem."""

from __future__ import annotations

from txflow.domain import NormalizedError


class ClassifiedError(RuntimeError):
    """Raised by collaborators that have already classified their failure.

    Classification returns the wrapped error unchanged, so the severity chosen
    at the raise site is the one the orchestrator acts on.
    """

    def __init__(self, error: NormalizedError) -> None:
        super().__init__(error.message)
        self.error = error


__all__ = ["ClassifiedError"]
