"""Allowed phase transitions for a single transaction execution."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from txflow.domain import TransactionPhase

from .exceptions import InvalidTransitionError

_P = TransactionPhase

ALLOWED_TRANSITIONS: Mapping[TransactionPhase, frozenset[TransactionPhase]] = MappingProxyType(
    {
        _P.IDLE: frozenset({_P.VALIDATING}),
        _P.VALIDATING: frozenset({_P.SUBMITTING, _P.FAILED}),
        _P.SUBMITTING: frozenset({_P.SUBMITTED, _P.RETRYING, _P.FAILED}),
        _P.SUBMITTED: frozenset({_P.CONFIRMING, _P.FAILED}),
        # Each poll tick re-enters CONFIRMING.
        _P.CONFIRMING: frozenset({_P.CONFIRMING, _P.CONFIRMED, _P.FAILED}),
        _P.RETRYING: frozenset({_P.SUBMITTING, _P.FAILED}),
        _P.CONFIRMED: frozenset(),
        _P.FAILED: frozenset(),
    }
)


def can_transition(current: TransactionPhase, next_phase: TransactionPhase) -> bool:
    return next_phase in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(current: TransactionPhase, next_phase: TransactionPhase) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> next_phase`` is allowed."""

    if not can_transition(current, next_phase):
        allowed = sorted(phase.value for phase in ALLOWED_TRANSITIONS.get(current, ()))
        msg = f"Cannot transition from {current} to {next_phase}; expected one of {allowed}"
        raise InvalidTransitionError(msg)


__all__ = ["ALLOWED_TRANSITIONS", "can_transition", "ensure_transition"]
