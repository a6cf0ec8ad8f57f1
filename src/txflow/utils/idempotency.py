"""Helpers for detecting and preventing duplicate transaction submissions."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from hashlib import sha256
from typing import Any

from .time import ensure_utc, from_millis, to_millis, utc_now

DEFAULT_TTL_MS = 30_000
DEFAULT_SCOPE = "global"

_UNSAFE_SEGMENT = re.compile(r"[^a-z0-9:_-]")


def sanitize_segment(value: str) -> str:
    """Lower-case ``value`` and replace characters that are unsafe in a key."""

    return _UNSAFE_SEGMENT.sub("_", value.strip().lower())[:64]


def _stringify_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _stringify_keys(item) for key, item in value.items()}
    if isinstance(value, list | tuple):
        return [_stringify_keys(item) for item in value]
    return value


def canonical_json(value: Any) -> str:
    """Key-sorted compact JSON; mapping keys of any type are rendered as strings."""

    return json.dumps(
        _stringify_keys(value), sort_keys=True, separators=(",", ":"), default=str
    )


@dataclass(frozen=True)
class IdempotencyFingerprint:
    """Identity of one logical operation, independent of when it was issued."""

    operation: str
    scope: str | None = None
    signer_address: str | None = None
    program_address: str | None = None
    payload: Any = None

    def digest(self) -> str:
        source = canonical_json(
            {
                "signer_address": self.signer_address,
                "program_address": self.program_address,
                "payload": self.payload,
            }
        )
        return sha256(source.encode("utf-8", errors="ignore")).hexdigest()

    def key(self) -> str:
        operation = sanitize_segment(self.operation)
        scope = sanitize_segment(self.scope or DEFAULT_SCOPE)
        return f"{operation}:{scope}:{self.digest()}"


def build_idempotency_key(
    operation: str,
    *,
    scope: str | None = None,
    signer_address: str | None = None,
    program_address: str | None = None,
    payload: Any = None,
) -> str:
    """Compute a deterministic idempotency key for an operation."""

    if not operation or not operation.strip():
        msg = "operation is required and must be non-empty"
        raise ValueError(msg)
    fingerprint = IdempotencyFingerprint(
        operation=operation,
        scope=scope,
        signer_address=signer_address,
        program_address=program_address,
        payload=payload,
    )
    return fingerprint.key()


@dataclass(frozen=True, slots=True)
class Registration:
    """Outcome of ``InFlightRegistry.register``."""

    accepted: bool
    key: str
    conflict: bool
    expires_at: datetime
    remaining_ms: int


class InFlightRegistry:
    """In-memory set of keys currently in flight, each with an expiry."""

    def __init__(self, *, default_ttl_ms: int = DEFAULT_TTL_MS) -> None:
        if default_ttl_ms <= 0:
            msg = "default_ttl_ms must be > 0"
            raise ValueError(msg)
        self._default_ttl_ms = default_ttl_ms
        self._expiries: dict[str, datetime] = {}

    def register(
        self,
        key: str,
        *,
        ttl_ms: int | None = None,
        now: datetime | None = None,
    ) -> Registration:
        if not key or not key.strip():
            msg = "key is required and must be non-empty"
            raise ValueError(msg)
        ttl = self._default_ttl_ms if ttl_ms is None else ttl_ms
        if ttl <= 0:
            msg = "ttl_ms must be > 0"
            raise ValueError(msg)

        current = ensure_utc(now) if now else utc_now()
        self.cleanup(current)

        existing = self._expiries.get(key)
        if existing is not None:
            return Registration(
                accepted=False,
                key=key,
                conflict=True,
                expires_at=existing,
                remaining_ms=to_millis(existing - current),
            )

        expires_at = current + from_millis(ttl)
        self._expiries[key] = expires_at
        return Registration(
            accepted=True,
            key=key,
            conflict=False,
            expires_at=expires_at,
            remaining_ms=ttl,
        )

    def release(self, key: str) -> bool:
        return self._expiries.pop(key, None) is not None

    def contains(self, key: str, now: datetime | None = None) -> bool:
        self.cleanup(now)
        return key in self._expiries

    def cleanup(self, now: datetime | None = None) -> int:
        """Drop expired keys and return how many were removed."""

        current = ensure_utc(now) if now else utc_now()
        expired = [key for key, expiry in self._expiries.items() if expiry <= current]
        for key in expired:
            del self._expiries[key]
        return len(expired)

    def size(self, now: datetime | None = None) -> int:
        self.cleanup(now)
        return len(self._expiries)


__all__ = [
    "DEFAULT_TTL_MS",
    "IdempotencyFingerprint",
    "InFlightRegistry",
    "Registration",
    "build_idempotency_key",
    "canonical_json",
    "sanitize_segment",
]
