"""Test fixtures for notask tests."""

import os
from collections.abc import Callable
from pathlib import Path

import pytest

# Run Qt without a display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PySide6.QtCore import QSettings  # noqa: E402

from notask.core.edit_history import EditHistoryTracker  # noqa: E402
from notask.core.environment import StaticEnvironment  # noqa: E402
from notask.core.preferences import MemoryPreferenceStore  # noqa: E402


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    """Return a fake clock starting at a fixed time."""
    return FakeClock()


@pytest.fixture
def tracker(clock: FakeClock) -> EditHistoryTracker:
    """Return a tracker driven by the fake clock."""
    return EditHistoryTracker(clock=clock)


@pytest.fixture
def static_env() -> StaticEnvironment:
    """Return an online, well-resourced environment outside business hours."""
    return StaticEnvironment()


@pytest.fixture
def memory_store() -> MemoryPreferenceStore:
    """Return an empty in-memory preference store."""
    return MemoryPreferenceStore()


@pytest.fixture
def settings_factory(tmp_path: Path) -> Callable[[], QSettings]:
    """Return a factory for QSettings backed by one temporary INI file."""
    path = str(tmp_path / "notask.ini")

    def factory() -> QSettings:
        return QSettings(path, QSettings.Format.IniFormat)

    return factory


def record_series(
    tracker: EditHistoryTracker,
    clock: FakeClock,
    kinds: list[str],
    gap_ms: float,
    length: int = 1,
) -> None:
    """Record one edit per kind, advancing the clock between edits."""
    for i, kind in enumerate(kinds):
        if i:
            clock.advance(gap_ms)
        tracker.record_edit(kind, i, length, "x" * (i + 1))
