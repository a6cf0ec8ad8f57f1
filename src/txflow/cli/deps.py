"""Shared CLI dependency helpers."""

from __future__ import annotations

from functools import lru_cache

from txflow.config import AppSettings
from txflow.container import ServiceContainer, build_container


@lru_cache(maxsize=1)
def get_container() -> ServiceContainer:
    """Return a cached service container for CLI commands."""

    return build_container(AppSettings.from_env())


def reset_container() -> None:
    """Clear the cached container so settings are re-read."""

    get_container.cache_clear()
