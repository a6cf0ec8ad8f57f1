"""Enumerations used across the txflow domain layer."""

from __future__ import annotations

from enum import StrEnum


class ErrorDomain(StrEnum):
    """Origin of a failure."""

    RPC = "RPC"
    API = "API"
    WALLET = "WALLET"
    CONTRACT = "CONTRACT"
    UNKNOWN = "UNKNOWN"


class ErrorSeverity(StrEnum):
    """How a caller should react to a failure."""

    RETRYABLE = "RETRYABLE"
    USER_ACTIONABLE = "USER_ACTIONABLE"
    FATAL = "FATAL"


class TransactionPhase(StrEnum):
    """State machine driven by the transaction orchestrator."""

    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    SUBMITTING = "SUBMITTING"
    SUBMITTED = "SUBMITTED"
    CONFIRMING = "CONFIRMING"
    RETRYING = "RETRYING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


TERMINAL_PHASES: frozenset[TransactionPhase] = frozenset(
    {TransactionPhase.CONFIRMED, TransactionPhase.FAILED}
)


class ConfirmationStatus(StrEnum):
    """Settlement status reported by a confirm collaborator."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class OrchestratorErrorCode(StrEnum):
    """Orchestrator-level failure reasons layered on top of classified errors."""

    INVALID_INPUT = "INVALID_INPUT"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    INVALID_STATE = "INVALID_STATE"
    DUPLICATE_IN_FLIGHT = "DUPLICATE_IN_FLIGHT"
    SUBMISSION_FAILED = "SUBMISSION_FAILED"
    CONFIRMATION_FAILED = "CONFIRMATION_FAILED"
    TIMEOUT = "TIMEOUT"


class ProgramId(StrEnum):
    """Deployed remote programs whose execution codes are known."""

    PRIZE_POOL = "prize_pool"
    RANDOM_GENERATOR = "random_generator"
    ACCESS_CONTROL = "access_control"
    PATTERN_PUZZLE = "pattern_puzzle"
    COIN_FLIP = "coin_flip"
