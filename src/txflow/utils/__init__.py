"""Utility helpers."""

from .idempotency import (
    IdempotencyFingerprint,
    InFlightRegistry,
    Registration,
    build_idempotency_key,
)
from .time import ensure_utc, from_millis, to_millis, utc_now

__all__ = [
    "IdempotencyFingerprint",
    "InFlightRegistry",
    "Registration",
    "build_idempotency_key",
    "ensure_utc",
    "from_millis",
    "to_millis",
    "utc_now",
]
