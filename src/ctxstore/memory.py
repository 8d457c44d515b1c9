"""Key-value memories with optional time-to-live.

memory.json:
    {"version": 1, "entries": {"<key>": {"key", "value", "tags", "createdAt", "updatedAt", "ttl"?}}}

Expiry is lazy: an entry is expired when now > updatedAt + ttl. get() removes
an expired entry as it finds it, listings skip expired entries, and sweep()
removes them all. Nothing runs in the background.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from ctxstore.base import DomainStore, load_document
from ctxstore.models import MemoryDocument, MemoryEntry, format_ts

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger("ctxstore.memory")

MEMORY_FILE = "memory.json"


def key_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a key pattern where `*` matches any run of characters."""
    parts = (re.escape(p) for p in pattern.split("*"))
    return re.compile("^" + ".*?".join(parts) + "$", re.IGNORECASE)


def _has_any_tag(entry: MemoryEntry, tags: Iterable[str]) -> bool:
    return any(t in entry.tags for t in tags)


class MemoryStore(DomainStore):
    """Persistent key-value memory backed by memory.json."""

    async def _read(self) -> MemoryDocument:
        return await load_document(self._store, MEMORY_FILE, MemoryDocument.from_dict, MemoryDocument)

    async def _save(self, doc: MemoryDocument) -> None:
        await self._store.write(MEMORY_FILE, doc.to_dict())

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def set(
        self,
        key: str,
        value: Any,
        *,
        tags: Iterable[str] | None = None,
        ttl: int | None = None,
    ) -> MemoryEntry:
        """Create or replace a memory. `ttl` is in milliseconds; 0/None never expires."""
        if ttl is not None and ttl < 0:
            msg = f"ttl must be >= 0, got {ttl}"
            raise ValueError(msg)
        async with self._lock:
            doc = await self._read()
            now = self._now()
            stamp = format_ts(now)
            existing = doc.entries.get(key)
            created = existing.created_at if existing and not existing.is_expired(now) else stamp
            entry = MemoryEntry(
                key=key,
                value=value,
                tags=list(tags or []),
                created_at=created or stamp,
                updated_at=stamp,
                ttl=ttl or None,
            )
            doc.entries[key] = entry
            await self._save(doc)
        return entry

    async def delete(self, key: str) -> bool:
        async with self._lock:
            doc = await self._read()
            if doc.entries.pop(key, None) is None:
                return False
            await self._save(doc)
        return True

    async def clear(self, *, tags: Iterable[str] | None = None, dry_run: bool = False) -> list[str]:
        """Remove all memories, or those carrying any of `tags`. Returns the keys."""
        tag_list = list(tags or [])
        async with self._lock:
            doc = await self._read()
            if tag_list:
                keys = [k for k, e in doc.entries.items() if _has_any_tag(e, tag_list)]
            else:
                keys = list(doc.entries)
            if dry_run or not keys:
                return keys
            for k in keys:
                del doc.entries[k]
            await self._save(doc)
        logger.info("cleared %d memories", len(keys))
        return keys

    async def sweep(self) -> int:
        """Delete every expired entry. Returns how many were removed."""
        async with self._lock:
            doc = await self._read()
            now = self._now()
            expired = [k for k, e in doc.entries.items() if e.is_expired(now)]
            if not expired:
                return 0
            for k in expired:
                del doc.entries[k]
            await self._save(doc)
        logger.info("swept %d expired memories", len(expired))
        return len(expired)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get(self, key: str) -> MemoryEntry | None:
        """Live entry for `key`. An expired entry is deleted and reported missing."""
        async with self._lock:
            doc = await self._read()
            entry = doc.entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._now()):
                del doc.entries[key]
                await self._save(doc)
                logger.info("memory %r expired, removed", key)
                return None
        return entry

    async def list(self) -> list[MemoryEntry]:
        doc = await self._read()
        now = self._now()
        return [e for e in doc.entries.values() if not e.is_expired(now)]

    async def search(
        self,
        pattern: str | None = None,
        *,
        tags: Iterable[str] | None = None,
    ) -> list[MemoryEntry]:
        """Live entries whose key matches `pattern` and that carry any of `tags`."""
        results = await self.list()
        if pattern:
            rx = key_pattern(pattern)
            results = [e for e in results if rx.match(e.key)]
        tag_list = list(tags or [])
        if tag_list:
            results = [e for e in results if _has_any_tag(e, tag_list)]
        return results
