"""Lightweight application configuration loader."""

from __future__ import annotations

import os
from dataclasses import dataclass

from txflow.domain import ProgramId, RetryPolicy
from txflow.domain.transaction import (
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_CONFIRMATION_TIMEOUT_MS,
    DEFAULT_INITIAL_BACKOFF_MS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_BACKOFF_MS,
    DEFAULT_POLL_INTERVAL_MS,
)
from txflow.utils.idempotency import DEFAULT_TTL_MS


class ConfigurationError(RuntimeError):
    """Raised when an environment variable cannot be parsed."""


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ConfigurationError(msg) from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as exc:
        msg = f"{name} must be a number, got {raw!r}"
        raise ConfigurationError(msg) from exc


def _env_program(name: str, default: ProgramId) -> ProgramId:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return ProgramId(raw.strip().lower())
    except ValueError as exc:
        choices = ", ".join(program.value for program in ProgramId)
        msg = f"{name} must be one of {choices}, got {raw!r}"
        raise ConfigurationError(msg) from exc


@dataclass(frozen=True)
class AppSettings:
    """Immutable configuration sourced from environment variables."""

    environment: str = "development"
    log_level: str = "INFO"
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_backoff_ms: int = DEFAULT_INITIAL_BACKOFF_MS
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_backoff_ms: int = DEFAULT_MAX_BACKOFF_MS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    confirmation_timeout_ms: int = DEFAULT_CONFIRMATION_TIMEOUT_MS
    dedupe_ttl_ms: int = DEFAULT_TTL_MS
    default_program: ProgramId = ProgramId.COIN_FLIP

    @classmethod
    def from_env(cls) -> AppSettings:
        return cls(
            environment=os.getenv("TXFLOW_ENV", cls.environment),
            log_level=os.getenv("TXFLOW_LOG_LEVEL", cls.log_level).upper(),
            max_attempts=_env_int("TXFLOW_MAX_ATTEMPTS", cls.max_attempts),
            initial_backoff_ms=_env_int("TXFLOW_INITIAL_BACKOFF_MS", cls.initial_backoff_ms),
            backoff_multiplier=_env_float("TXFLOW_BACKOFF_MULTIPLIER", cls.backoff_multiplier),
            max_backoff_ms=_env_int("TXFLOW_MAX_BACKOFF_MS", cls.max_backoff_ms),
            poll_interval_ms=_env_int("TXFLOW_POLL_INTERVAL_MS", cls.poll_interval_ms),
            confirmation_timeout_ms=_env_int(
                "TXFLOW_CONFIRMATION_TIMEOUT_MS", cls.confirmation_timeout_ms
            ),
            dedupe_ttl_ms=_env_int("TXFLOW_DEDUPE_TTL_MS", cls.dedupe_ttl_ms),
            default_program=_env_program("TXFLOW_DEFAULT_PROGRAM", cls.default_program),
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_backoff_ms=self.initial_backoff_ms,
            backoff_multiplier=self.backoff_multiplier,
            max_backoff_ms=self.max_backoff_ms,
        )


__all__ = ["AppSettings", "ConfigurationError"]
