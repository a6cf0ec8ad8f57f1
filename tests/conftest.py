from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Make the src/ layout importable without an editable install.
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop TXFLOW_* variables inherited from the calling shell."""

    for name in list(os.environ):
        if name.startswith("TXFLOW_"):
            monkeypatch.delenv(name)
