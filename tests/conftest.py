"""Shared fixtures: isolated store directories and a controllable clock."""

from datetime import UTC, datetime, timedelta

import pytest

from ctxstore.config import CtxConfig
from ctxstore.locks import LockManager
from ctxstore.store import DocumentStore
from ctxstore.workspace import open_workspace

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += timedelta(milliseconds=ms)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep CTX_* variables from the developer's shell out of the tests."""
    for var in (
        "CTX_STORE_PATH", "CTX_MAX_BACKUPS", "CTX_MAX_CHECKPOINTS",
        "CTX_MAX_SUMMARIES", "CTX_TRACKER_MAX_ENTRIES", "CTX_TRACKER_ROTATE_KEEP",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    return DocumentStore(tmp_path / "store", locks=LockManager())


@pytest.fixture
async def workspace(tmp_path, clock):
    return await open_workspace(CtxConfig(root=tmp_path), clock=clock)
