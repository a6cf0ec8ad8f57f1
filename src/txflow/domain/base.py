"""Pydantic base shared by error records, state snapshots and policies."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class DomainModel(BaseModel):
    """Frozen record; changes go through ``model_copy(update=...)``."""

    model_config = ConfigDict(frozen=True, extra="forbid", validate_assignment=True)
