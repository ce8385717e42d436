"""
Pytest configuration for the PineScript engine.

Why this exists:
- Tests import the package as ``pinescript_engine.*`` straight from the
  repository, whether or not it was installed.
- Shared fixtures: a fake monotonic clock for the validation time budget and
  an engine whose history lives in a temporary directory.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Ensure the repository root is importable (so `import pinescript_engine...` works).
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


class FakeClock:
    """Monotonic clock that advances by ``step`` seconds on every read."""

    def __init__(self, step: float = 0.0, start: float = 0.0):
        self.step = step
        self.now = start
        self.reads = 0

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        self.reads += 1
        return value


@pytest.fixture
def make_clock():
    return FakeClock


@pytest.fixture
def engine(tmp_path):
    from pinescript_engine import PineScriptEngine
    from pinescript_engine.models import EngineSettings, HistorySettings

    settings = EngineSettings(history=HistorySettings(storage_directory=str(tmp_path / "history")))
    return PineScriptEngine(settings)
