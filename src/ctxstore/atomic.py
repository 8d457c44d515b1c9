"""Atomic file replacement with rotated backups.

A write goes through these steps:

    1. mkdir -p the target's directory
    2. copy the current target to <name>.<epochMillis>.bak (if it exists)
    3. drop all but the newest `max_backups` backups of that target
    4. write <name>.<hex>.tmp next to the target, flush + fsync
    5. os.replace(tmp, target)

Step 5 is a rename within one directory, so readers see either the old file
or the new one, never a partial write. If step 4 or 5 fails the temp file is
removed and the target is left untouched.

Backups are best-effort. A failed copy never blocks the write, but it is
logged and reported through WriteResult.backup being None.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import time
import uuid
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiofiles.os

logger = logging.getLogger("ctxstore.atomic")

_BACKUP_SUFFIX = ".bak"
DEFAULT_MAX_BACKUPS = 3


@dataclass
class WriteResult:
    path: Path
    backup: Path | None = None


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def backup_stamp(target: Path, name: str) -> int | None:
    """Return the epoch-millis stamp if `name` is a backup of `target`."""
    prefix = target.name + "."
    if not (name.startswith(prefix) and name.endswith(_BACKUP_SUFFIX)):
        return None
    middle = name[len(prefix):-len(_BACKUP_SUFFIX)]
    return int(middle) if middle.isdigit() else None


async def list_backups(path: Path | str) -> list[Path]:
    """Backups of `path`, newest first."""
    target = Path(path)
    try:
        names = await aiofiles.os.listdir(target.parent)
    except FileNotFoundError:
        return []
    stamped = [(stamp, name) for name in names if (stamp := backup_stamp(target, name)) is not None]
    stamped.sort(reverse=True)
    return [target.parent / name for _, name in stamped]


class AtomicWriter:
    """Replaces files atomically, keeping a bounded trail of prior versions."""

    def __init__(self, *, enable_backup: bool = True, max_backups: int = DEFAULT_MAX_BACKUPS) -> None:
        if max_backups < 0:
            msg = f"max_backups must be >= 0, got {max_backups}"
            raise ValueError(msg)
        self.enable_backup = enable_backup and max_backups > 0
        self.max_backups = max_backups

    async def write(self, path: Path | str, content: str) -> WriteResult:
        target = Path(path)
        await aiofiles.os.makedirs(target.parent, exist_ok=True)

        backup = await self._backup(target) if self.enable_backup else None

        tmp = target.with_name(f"{target.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(content)
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await aiofiles.os.replace(tmp, target)
        except BaseException:
            with contextlib.suppress(OSError):
                await aiofiles.os.remove(tmp)
            raise
        return WriteResult(path=target, backup=backup)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    async def _backup(self, target: Path) -> Path | None:
        if not await aiofiles.os.path.exists(target):
            return None

        # Stamps stay strictly increasing per target, even for two writes
        # in the same millisecond.
        stamp = _now_ms()
        existing = await list_backups(target)
        if existing:
            newest = backup_stamp(target, existing[0].name)
            if newest is not None and newest >= stamp:
                stamp = newest + 1
        backup = target.with_name(f"{target.name}.{stamp}{_BACKUP_SUFFIX}")

        try:
            await asyncio.to_thread(shutil.copyfile, target, backup)
        except FileNotFoundError:
            logger.debug("no backup for %s: file vanished before copy", target)
            return None
        except OSError as exc:
            logger.warning("backup of %s failed, writing without one (durability degraded): %s", target, exc)
            return None

        await self._prune(target)
        return backup

    async def _prune(self, target: Path) -> None:
        for stale in (await list_backups(target))[self.max_backups:]:
            try:
                await aiofiles.os.remove(stale)
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("could not remove old backup %s: %s", stale, exc)
