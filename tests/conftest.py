"""Shared test fixtures."""

from datetime import date
from pathlib import Path

import pytest

from skinlog.db import RecordStore
from skinlog.events import RefreshSignal

TODAY = date(2025, 6, 2)
USER_ID = "user-1"


@pytest.fixture(autouse=True)
def _reset_singletons():
    RecordStore._reset()
    RefreshSignal._reset()
    yield
    RecordStore._reset()
    RefreshSignal._reset()


@pytest.fixture
def records(tmp_path: Path) -> RecordStore:
    """Create a RecordStore backed by a temp database."""
    return RecordStore(db_path=tmp_path / "test.db")


@pytest.fixture
def signal() -> RefreshSignal:
    return RefreshSignal.get()


@pytest.fixture
def store(records: RecordStore):
    """A signed-in SkincareStore pinned to TODAY."""
    from skinlog.data.store import SkincareStore

    return SkincareStore(records, USER_ID, today=lambda: TODAY)
