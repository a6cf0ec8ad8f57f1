"""Domain layer exports."""

from .base import DomainModel
from .enums import (
    TERMINAL_PHASES,
    ConfirmationStatus,
    ErrorDomain,
    ErrorSeverity,
    OrchestratorErrorCode,
    ProgramId,
    TransactionPhase,
)
from .errors import NormalizedError, OrchestratorError, TelemetryEvent
from .transaction import (
    ConfirmationResult,
    OrchestratorState,
    RetryPolicy,
    SubmissionResult,
    TransactionContext,
    TransactionRequest,
    TransactionResult,
)
from .types import CorrelationId, ErrorContext

__all__ = [
    "TERMINAL_PHASES",
    "ConfirmationResult",
    "ConfirmationStatus",
    "CorrelationId",
    "DomainModel",
    "ErrorContext",
    "ErrorDomain",
    "ErrorSeverity",
    "NormalizedError",
    "OrchestratorError",
    "OrchestratorErrorCode",
    "OrchestratorState",
    "ProgramId",
    "RetryPolicy",
    "SubmissionResult",
    "TelemetryEvent",
    "TransactionContext",
    "TransactionPhase",
    "TransactionRequest",
    "TransactionResult",
]
