"""Project tracker: an append-only log of decisions, changes, todos, notes, errors.

tracker.json:
    {"version": 1, "entries": [TrackerEntry, ...], "projectName"?: str}

The log is bounded. Whenever a save would leave more than `max_entries`
entries, only the newest `rotate_keep` are written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ctxstore.base import DomainStore, load_document
from ctxstore.models import (
    TODO_STATUSES,
    TRACKER_TYPES,
    TrackerDocument,
    TrackerEntry,
    format_ts,
    new_id,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from ctxstore.store import DocumentStore

logger = logging.getLogger("ctxstore.tracker")

TRACKER_FILE = "tracker.json"
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_ROTATE_KEEP = 800


@dataclass
class TrackerStatus:
    project_name: str | None
    total_entries: int
    decisions: list[TrackerEntry] = field(default_factory=list)
    pending_todos: list[TrackerEntry] = field(default_factory=list)
    recent_changes: list[TrackerEntry] = field(default_factory=list)
    recent_errors: list[TrackerEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        def brief(e: TrackerEntry) -> dict[str, Any]:
            return {"id": e.id, "content": e.content, "date": e.created_at}

        return {
            "projectName": self.project_name,
            "totalEntries": self.total_entries,
            "decisions": [brief(e) for e in self.decisions],
            "pendingTodos": [{"id": e.id, "content": e.content, "tags": e.tags} for e in self.pending_todos],
            "recentChanges": [brief(e) for e in self.recent_changes],
            "recentErrors": [brief(e) for e in self.recent_errors],
        }


def _last(entries: list[TrackerEntry], limit: int) -> list[TrackerEntry]:
    return entries[-limit:] if limit > 0 else []


class TrackerStore(DomainStore):
    """Bounded project log backed by tracker.json."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        rotate_keep: int = DEFAULT_ROTATE_KEEP,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_entries < 1 or rotate_keep < 1:
            msg = "max_entries and rotate_keep must be >= 1"
            raise ValueError(msg)
        if rotate_keep > max_entries:
            msg = f"rotate_keep ({rotate_keep}) cannot exceed max_entries ({max_entries})"
            raise ValueError(msg)
        super().__init__(store, clock=clock)
        self.max_entries = max_entries
        self.rotate_keep = rotate_keep

    async def _read(self) -> TrackerDocument:
        return await load_document(self._store, TRACKER_FILE, TrackerDocument.from_dict, TrackerDocument)

    async def _save(self, doc: TrackerDocument) -> None:
        if len(doc.entries) > self.max_entries:
            dropped = len(doc.entries) - self.rotate_keep
            doc.entries = doc.entries[-self.rotate_keep:]
            logger.info("tracker rotated: dropped %d oldest entries, kept %d", dropped, self.rotate_keep)
        await self._store.write(TRACKER_FILE, doc.to_dict())

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def log(
        self,
        entry_type: str,
        content: str,
        *,
        tags: Iterable[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TrackerEntry:
        if entry_type not in TRACKER_TYPES:
            msg = f"Unknown entry type: {entry_type!r} (expected one of {', '.join(TRACKER_TYPES)})"
            raise ValueError(msg)
        now = self._now()
        stamp = format_ts(now)
        entry = TrackerEntry(
            id=new_id(entry_type, now),
            type=entry_type,
            content=content,
            tags=list(tags or []),
            created_at=stamp,
            updated_at=stamp,
            status="pending" if entry_type == "todo" else None,
            metadata=metadata or None,
        )
        async with self._lock:
            doc = await self._read()
            doc.entries.append(entry)
            await self._save(doc)
        return entry

    async def update_todo(self, entry_id: str, status: str) -> TrackerEntry | None:
        """Set a todo's status. None if no entry has that id."""
        if status not in TODO_STATUSES:
            msg = f"Unknown status: {status!r} (expected one of {', '.join(TODO_STATUSES)})"
            raise ValueError(msg)
        async with self._lock:
            doc = await self._read()
            entry = next((e for e in doc.entries if e.id == entry_id), None)
            if entry is None:
                return None
            if entry.type != "todo":
                msg = f"Entry {entry_id} is not a todo"
                raise ValueError(msg)
            entry.status = status
            entry.updated_at = format_ts(self._now())
            await self._save(doc)
        return entry

    async def set_project(self, name: str) -> None:
        async with self._lock:
            doc = await self._read()
            doc.project_name = name
            await self._save(doc)

    async def set_project_if_unset(self, name: str) -> bool:
        """Set the project name only if none is stored. Returns True if it was set."""
        async with self._lock:
            doc = await self._read()
            if doc.project_name:
                return False
            doc.project_name = name
            await self._save(doc)
        return True

    async def cleanup(self, keep_count: int = 500, *, dry_run: bool = False) -> list[TrackerEntry]:
        """Drop all but the newest `keep_count` entries. Returns the dropped entries."""
        if keep_count < 0:
            msg = f"keep_count must be >= 0, got {keep_count}"
            raise ValueError(msg)
        async with self._lock:
            doc = await self._read()
            excess = len(doc.entries) - keep_count
            if excess <= 0:
                return []
            removed = doc.entries[:excess]
            if dry_run:
                return removed
            doc.entries = doc.entries[excess:]
            await self._save(doc)
        logger.info("tracker cleanup: removed %d entries", len(removed))
        return removed

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def entries(self) -> list[TrackerEntry]:
        return (await self._read()).entries

    async def project_name(self) -> str | None:
        return (await self._read()).project_name

    async def status(self, limit: int = 5) -> TrackerStatus:
        doc = await self._read()
        entries = doc.entries

        def of_type(t: str) -> list[TrackerEntry]:
            return [e for e in entries if e.type == t]

        return TrackerStatus(
            project_name=doc.project_name,
            total_entries=len(entries),
            decisions=_last(of_type("decision"), limit),
            pending_todos=_last([e for e in of_type("todo") if e.status == "pending"], limit),
            recent_changes=_last(of_type("change"), limit),
            recent_errors=_last(of_type("error"), limit),
        )

    async def search(
        self,
        *,
        entry_type: str | None = None,
        tags: Iterable[str] | None = None,
        query: str | None = None,
        limit: int = 20,
    ) -> list[TrackerEntry]:
        """Newest `limit` entries matching every given filter."""
        results = (await self._read()).entries
        if entry_type:
            results = [e for e in results if e.type == entry_type]
        tag_list = list(tags or [])
        if tag_list:
            results = [e for e in results if any(t in e.tags for t in tag_list)]
        if query:
            needle = query.lower()
            results = [e for e in results if needle in e.content.lower()]
        return _last(results, limit)
