"""Transaction lifecycle orchestration."""

from .exceptions import InvalidTransitionError, LifecycleError
from .observers import StateListener, SubscriberRegistry, Unsubscribe
from .orchestrator import Clock, Sleep, TransactionOrchestrator
from .state_machine import ALLOWED_TRANSITIONS, can_transition, ensure_transition

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Clock",
    "InvalidTransitionError",
    "LifecycleError",
    "Sleep",
    "StateListener",
    "SubscriberRegistry",
    "TransactionOrchestrator",
    "Unsubscribe",
    "can_transition",
    "ensure_transition",
]
