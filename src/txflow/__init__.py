"""Transaction lifecycle orchestration with normalized failure classification."""

from .classification import classify, format_for_log
from .domain import (
    ConfirmationResult,
    ConfirmationStatus,
    NormalizedError,
    OrchestratorState,
    RetryPolicy,
    SubmissionResult,
    TransactionContext,
    TransactionPhase,
    TransactionRequest,
    TransactionResult,
)
from .orchestration import TransactionOrchestrator

__version__ = "0.1.0"

__all__ = [
    "ConfirmationResult",
    "ConfirmationStatus",
    "NormalizedError",
    "OrchestratorState",
    "RetryPolicy",
    "SubmissionResult",
    "TransactionContext",
    "TransactionOrchestrator",
    "TransactionPhase",
    "TransactionRequest",
    "TransactionResult",
    "__version__",
    "classify",
    "format_for_log",
]
