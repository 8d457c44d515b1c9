"""JSON document store rooted at one directory.

DocumentStore is the public API:
    store = DocumentStore(".context")
    data = await store.read("memory.json", {"version": 1, "entries": {}})
    await store.write("memory.json", data)
    checkpoints = store.sub_store("checkpoints")

Every read, write, append, delete and restore holds the per-path lock for the
file it touches, and every mutation goes through AtomicWriter (temp file +
rename, preceded by a rotated backup). exists() and list() are unlocked and
advisory.

A file that does not exist reads as the caller's default. A file that exists
but does not parse raises CorruptDocumentError; it is never treated as empty.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiofiles
import aiofiles.os

from ctxstore.atomic import DEFAULT_MAX_BACKUPS, AtomicWriter, WriteResult, backup_stamp, list_backups
from ctxstore.errors import CorruptDocumentError, StoreIOError
from ctxstore.locks import LockManager, default_lock_manager

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger("ctxstore.store")

_MISSING = object()


def _dumps(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, allow_nan=False)


def _reject_constant(token: str) -> Any:
    msg = f"non-standard JSON token {token}"
    raise ValueError(msg)


class DocumentStore:
    """Whole-document JSON persistence keyed by filename."""

    def __init__(
        self,
        base_path: Path | str,
        *,
        enable_backup: bool = True,
        max_backups: int = DEFAULT_MAX_BACKUPS,
        locks: LockManager | None = None,
    ) -> None:
        self.base_path = Path(os.path.abspath(base_path))
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.enable_backup = enable_backup
        self.max_backups = max_backups
        self._locks = locks if locks is not None else default_lock_manager
        self._writer = AtomicWriter(enable_backup=enable_backup, max_backups=max_backups)

    def __repr__(self) -> str:
        return f"DocumentStore({str(self.base_path)!r})"

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def path_for(self, filename: str) -> Path:
        return Path(LockManager.normalize(self.base_path / filename))

    def sub_store(self, subdir: str) -> DocumentStore:
        """A store rooted at base/subdir with the same backup settings."""
        return DocumentStore(
            self.base_path / subdir,
            enable_backup=self.enable_backup,
            max_backups=self.max_backups,
            locks=self._locks,
        )

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def read(self, filename: str, default: Any = None) -> Any:
        """Parsed document, or `default` if the file does not exist."""
        path = self.path_for(filename)
        async with self._locks.acquire(path):
            return await self._load(path, default)

    async def exists(self, filename: str) -> bool:
        return await aiofiles.os.path.exists(self.path_for(filename))

    async def list(self, subdir: str | None = None) -> list[str]:
        """Names of *.json documents in base (or base/subdir), sorted."""
        directory = self.base_path / subdir if subdir else self.base_path
        try:
            names = await aiofiles.os.listdir(directory)
        except (FileNotFoundError, NotADirectoryError):
            return []
        return sorted(n for n in names if n.endswith(".json"))

    async def backups(self, filename: str) -> Sequence[Path]:
        """Backups of one document, newest first."""
        return await list_backups(self.path_for(filename))

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def write(self, filename: str, data: Any) -> WriteResult:
        path = self.path_for(filename)
        content = _dumps(data)
        async with self._locks.acquire(path):
            return await self._replace(path, content)

    async def append(self, filename: str, item: Any) -> WriteResult:
        """Append one item to a JSON list document (read + write under one lock)."""
        path = self.path_for(filename)
        async with self._locks.acquire(path):
            try:
                existing = await self._load(path, [])
            except CorruptDocumentError:
                logger.warning("%s does not parse, starting a new list over it", path)
                existing = []
            if not isinstance(existing, list):
                logger.warning("%s holds %s, not a list; starting a new list over it", path, type(existing).__name__)
                existing = []
            existing.append(item)
            return await self._replace(path, _dumps(existing))

    async def delete(self, filename: str) -> bool:
        """Remove a document. Returns False if it was already gone."""
        path = self.path_for(filename)
        async with self._locks.acquire(path):
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                return False
            except OSError as exc:
                logger.error("error deleting %s: %s", path, exc)
                msg = f"Failed to delete {filename}: {exc}"
                raise StoreIOError(msg, path) from exc
        return True

    async def restore(self, filename: str, backup: Path | str | None = None) -> Path:
        """Write a backup's content back over `filename`. Returns the backup used.

        The current content is itself backed up first, like any other write.
        An explicit `backup` must be one of this document's own backups.
        """
        path = self.path_for(filename)
        if backup is not None:
            source = Path(LockManager.normalize(backup))
            if backup_stamp(path, source.name) is None or source.parent != path.parent:
                msg = f"{backup} is not a backup of {filename}"
                raise ValueError(msg)
        async with self._locks.acquire(path):
            if backup is None:
                candidates = await list_backups(path)
                if not candidates:
                    msg = f"No backups for {filename}"
                    raise FileNotFoundError(msg)
                source = candidates[0]
            snapshot = await self._load(source, _MISSING)
            if snapshot is _MISSING:
                msg = f"Backup not found: {source}"
                raise FileNotFoundError(msg)
            await self._replace(path, _dumps(snapshot))
        logger.info("restored %s from %s", path, source.name)
        return source

    # ------------------------------------------------------------------
    # Internal (callers hold the path lock)
    # ------------------------------------------------------------------

    async def _load(self, path: Path, default: Any) -> Any:
        try:
            async with aiofiles.open(path, encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            return default
        except UnicodeDecodeError as exc:
            msg = f"{path.name} is not valid UTF-8: {exc}"
            raise CorruptDocumentError(msg, path) from exc
        except OSError as exc:
            logger.error("error reading %s: %s", path, exc)
            msg = f"Failed to read {path.name}: {exc}"
            raise StoreIOError(msg, path) from exc
        try:
            return json.loads(content, parse_constant=_reject_constant)
        except ValueError as exc:
            logger.error("corrupt document %s: %s", path, exc)
            msg = f"{path.name} is not valid JSON: {exc}"
            raise CorruptDocumentError(msg, path) from exc

    async def _replace(self, path: Path, content: str) -> WriteResult:
        try:
            return await self._writer.write(path, content)
        except OSError as exc:
            logger.error("error writing %s: %s", path, exc)
            msg = f"Failed to write {path.name}: {exc}"
            raise StoreIOError(msg, path) from exc
