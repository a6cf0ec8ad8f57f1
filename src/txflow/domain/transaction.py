"""Transaction request, state and result models."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import Field

from .base import DomainModel
from .enums import TERMINAL_PHASES, ConfirmationStatus, TransactionPhase
from .errors import NormalizedError, OrchestratorError

InputT = TypeVar("InputT")
DataT = TypeVar("DataT")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_BACKOFF_MS = 500
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_BACKOFF_MS = 60_000
DEFAULT_POLL_INTERVAL_MS = 2_000
DEFAULT_CONFIRMATION_TIMEOUT_MS = 30_000


class RetryPolicy(DomainModel):
    """Bounded exponential backoff applied to the submission phase only."""

    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    initial_backoff_ms: int = Field(default=DEFAULT_INITIAL_BACKOFF_MS, ge=0)
    backoff_multiplier: float = Field(default=DEFAULT_BACKOFF_MULTIPLIER, ge=0)
    max_backoff_ms: int = Field(default=DEFAULT_MAX_BACKOFF_MS, ge=0)

    def backoff_ms(self, attempt: int) -> int:
        """Wait before the attempt following ``attempt``, capped at ``max_backoff_ms``."""

        if self.initial_backoff_ms == 0:
            return 0
        exponent = max(0, attempt - 1)
        try:
            wait = self.initial_backoff_ms * self.backoff_multiplier**exponent
        except OverflowError:
            return self.max_backoff_ms
        return round(min(wait, self.max_backoff_ms))


@dataclass(slots=True)
class TransactionContext:
    """Context threaded through every submit and confirm call."""

    correlation_id: str
    operation: str
    attempt: int
    started_at: datetime


@dataclass(slots=True)
class SubmissionResult(Generic[DataT]):
    """Pending operation handle returned by a submit collaborator."""

    handle: str
    data: DataT | None = None


@dataclass(slots=True)
class ConfirmationResult:
    """Settlement status returned by a confirm collaborator."""

    status: ConfirmationStatus
    confirmations: int | None = None
    error: NormalizedError | None = None


ConfirmFn = Callable[[str, TransactionContext], Awaitable[ConfirmationResult]]
PreconditionValidator = Callable[[], NormalizedError | None]


@dataclass(frozen=True, slots=True)
class TransactionRequest(Generic[InputT, DataT]):
    """Caller-supplied description of one side-effectful operation."""

    operation: str
    input: InputT
    submit: Callable[[InputT, TransactionContext], Awaitable[SubmissionResult[DataT]]]
    confirm: ConfirmFn
    validate_input: Callable[[InputT], NormalizedError | None] | None = None
    validate_preconditions: PreconditionValidator | None = None
    retry_policy: RetryPolicy | None = None
    poll_interval_ms: int | None = None
    confirmation_timeout_ms: int | None = None


class OrchestratorState(DomainModel):
    """Snapshot of an orchestrator; replaced wholesale on every transition."""

    phase: TransactionPhase = TransactionPhase.IDLE
    operation: str | None = None
    correlation_id: str | None = None
    handle: str | None = None
    data: Any = None
    attempt: int = 0
    confirmations: int = 0
    started_at: datetime | None = None
    settled_at: datetime | None = None
    error: OrchestratorError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES


@dataclass(slots=True)
class TransactionResult(Generic[DataT]):
    """Outcome of one ``execute()`` call."""

    success: bool
    correlation_id: str
    state: OrchestratorState
    handle: str | None = None
    data: DataT | None = None
    confirmations: int = 0
    error: OrchestratorError | None = None

    @property
    def tx_hash(self) -> str | None:
        return self.handle


__all__ = [
    "DEFAULT_BACKOFF_MULTIPLIER",
    "DEFAULT_CONFIRMATION_TIMEOUT_MS",
    "DEFAULT_INITIAL_BACKOFF_MS",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_POLL_INTERVAL_MS",
    "ConfirmFn",
    "ConfirmationResult",
    "OrchestratorState",
    "PreconditionValidator",
    "RetryPolicy",
    "SubmissionResult",
    "TransactionContext",
    "TransactionRequest",
    "TransactionResult",
]
