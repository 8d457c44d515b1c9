"""Per-path mutual exclusion for coroutines sharing one event loop.

    locks = LockManager()
    async with locks.acquire(path):
        ...  # no other holder of `path` runs this section concurrently

Paths are normalized to absolute form, so two spellings of one file share a
lock while distinct files never block each other. Waiters are served in
arrival order (asyncio.Lock wakes its waiters FIFO and does not let a new
caller barge past them). Locks are not reentrant: acquiring a path that the
current task already holds deadlocks.

These locks live in process memory. They do not protect a data directory
shared by several processes.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class _Slot:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0  # holder + waiters


class LockManager:
    """Table of asyncio locks keyed by normalized absolute path."""

    def __init__(self) -> None:
        self._slots: dict[str, _Slot] = {}

    @staticmethod
    def normalize(path: os.PathLike[str] | str) -> str:
        return os.path.normpath(os.path.abspath(os.fspath(path)))

    @contextlib.asynccontextmanager
    async def acquire(self, path: os.PathLike[str] | str) -> AsyncIterator[None]:
        """Hold the lock for `path` for the duration of the `async with` body."""
        key = self.normalize(path)
        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _Slot()
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[key]

    def held(self, path: os.PathLike[str] | str) -> bool:
        slot = self._slots.get(self.normalize(path))
        return slot is not None and slot.lock.locked()

    def __len__(self) -> int:
        return len(self._slots)


default_lock_manager = LockManager()
