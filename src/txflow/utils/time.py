"""Clock helpers shared by the orchestrator and the in-flight registry."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""

    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_millis(delta: timedelta) -> int:
    return round(delta.total_seconds() * 1000)


def from_millis(value: int | float) -> timedelta:
    return timedelta(milliseconds=value)


__all__ = ["ensure_utc", "from_millis", "to_millis", "utc_now"]
