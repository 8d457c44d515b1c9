"""Named snapshots of session state.

Layout under the `checkpoints/` sub-store:

    index.json        {"version": 1, "checkpoints": [CheckpointMeta, ...]}  oldest first
    <id>.json         the state object saved with that checkpoint

The index and the payloads are separate files, so no write covers both.
Writes are ordered instead:
    save:          payload, then index
    delete/prune:  index, then payloads
A crash between the two steps can leave a payload no index entry points to
(collect_orphans() removes those). It cannot leave an index entry whose
payload was never written.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ctxstore.base import DomainStore, load_document
from ctxstore.models import Checkpoint, CheckpointIndex, CheckpointMeta, format_ts, new_id

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from ctxstore.store import DocumentStore

logger = logging.getLogger("ctxstore.checkpoint")

CHECKPOINTS_DIR = "checkpoints"
INDEX_FILE = "index.json"
DEFAULT_MAX_CHECKPOINTS = 50


@dataclass
class StateChange:
    key: str
    change: str                        # added | removed | modified


@dataclass
class CheckpointDiff:
    first: CheckpointMeta
    second: CheckpointMeta
    state_changes: list[StateChange] = field(default_factory=list)
    files_added: list[str] = field(default_factory=list)
    files_removed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        def ref(m: CheckpointMeta) -> dict[str, Any]:
            return {"id": m.id, "name": m.name, "date": m.created_at}

        return {
            "checkpoint1": ref(self.first),
            "checkpoint2": ref(self.second),
            "stateChanges": [{"key": c.key, "change": c.change} for c in self.state_changes],
            "fileChanges": {"added": self.files_added, "removed": self.files_removed},
        }


def diff_state(old: dict[str, Any], new: dict[str, Any]) -> list[StateChange]:
    """Per-key changes between two state objects, compared by JSON value."""
    changes: list[StateChange] = []
    for key in dict.fromkeys([*old, *new]):
        if key not in old:
            changes.append(StateChange(key, "added"))
        elif key not in new:
            changes.append(StateChange(key, "removed"))
        elif json.dumps(old[key], sort_keys=True) != json.dumps(new[key], sort_keys=True):
            changes.append(StateChange(key, "modified"))
    return changes


class CheckpointStore(DomainStore):
    """Checkpoint index plus one payload document per checkpoint."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        max_checkpoints: int = DEFAULT_MAX_CHECKPOINTS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_checkpoints < 1:
            msg = f"max_checkpoints must be >= 1, got {max_checkpoints}"
            raise ValueError(msg)
        super().__init__(store.sub_store(CHECKPOINTS_DIR), clock=clock)
        self.max_checkpoints = max_checkpoints

    async def _read(self) -> CheckpointIndex:
        return await load_document(self._store, INDEX_FILE, CheckpointIndex.from_dict, CheckpointIndex)

    async def _save_index(self, index: CheckpointIndex) -> None:
        await self._store.write(INDEX_FILE, index.to_dict())

    async def _drop_payloads(self, metas: Iterable[CheckpointMeta]) -> None:
        for meta in metas:
            await self._store.delete(meta.payload_name)

    async def _load_state(self, meta: CheckpointMeta) -> dict[str, Any] | None:
        state = await self._store.read(meta.payload_name, None)
        if state is not None and not isinstance(state, dict):
            logger.warning("checkpoint payload %s is %s, not an object", meta.payload_name, type(state).__name__)
            return None
        return state

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def save(
        self,
        name: str,
        state: dict[str, Any],
        *,
        description: str | None = None,
        files: Iterable[str] | None = None,
    ) -> CheckpointMeta:
        if not isinstance(state, dict):
            msg = f"Checkpoint state must be an object, got {type(state).__name__}"
            raise TypeError(msg)
        now = self._now()
        meta = CheckpointMeta(
            id=new_id("cp", now),
            name=name,
            description=description or None,
            files=list(files or []),
            created_at=format_ts(now),
        )
        async with self._lock:
            await self._store.write(meta.payload_name, state)
            index = await self._read()
            index.checkpoints.append(meta)
            pruned: list[CheckpointMeta] = []
            if len(index.checkpoints) > self.max_checkpoints:
                excess = len(index.checkpoints) - self.max_checkpoints
                pruned = index.checkpoints[:excess]
                index.checkpoints = index.checkpoints[excess:]
            await self._save_index(index)
            await self._drop_payloads(pruned)
        if pruned:
            logger.info("pruned %d old checkpoints, kept %d", len(pruned), self.max_checkpoints)
        return meta

    async def delete(self, checkpoint_id: str) -> bool:
        async with self._lock:
            index = await self._read()
            meta = next((m for m in index.checkpoints if m.id == checkpoint_id), None)
            if meta is None:
                return False
            index.checkpoints.remove(meta)
            await self._save_index(index)
            await self._drop_payloads([meta])
        return True

    async def collect_orphans(self, *, dry_run: bool = False) -> list[str]:
        """Payload files that no index entry references. Removed unless dry_run."""
        async with self._lock:
            index = await self._read()
            referenced = {m.payload_name for m in index.checkpoints}
            orphans = [n for n in await self._store.list() if n != INDEX_FILE and n not in referenced]
            if dry_run:
                return orphans
            for name in orphans:
                await self._store.delete(name)
        if orphans:
            logger.info("removed %d orphaned checkpoint payloads", len(orphans))
        return orphans

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def index(self) -> list[CheckpointMeta]:
        return (await self._read()).checkpoints

    async def list(self, limit: int = 10) -> list[CheckpointMeta]:
        """Newest `limit` index entries, oldest first."""
        checkpoints = (await self._read()).checkpoints
        return checkpoints[-limit:] if limit > 0 else []

    async def find(self, checkpoint_id: str | None = None, name: str | None = None) -> CheckpointMeta | None:
        checkpoints = (await self._read()).checkpoints
        if checkpoint_id:
            return next((m for m in checkpoints if m.id == checkpoint_id), None)
        if name:
            needle = name.lower()
            matches = [m for m in checkpoints if needle in m.name.lower()]
            return matches[-1] if matches else None
        return checkpoints[-1] if checkpoints else None

    async def load(self, checkpoint_id: str | None = None, name: str | None = None) -> Checkpoint | None:
        """Checkpoint by exact id, by newest name match, or the latest one.

        `state` is None when the payload file is missing.
        """
        meta = await self.find(checkpoint_id, name)
        if meta is None:
            return None
        return Checkpoint(meta=meta, state=await self._load_state(meta))

    async def latest(self) -> Checkpoint | None:
        return await self.load()

    async def compare(self, first_id: str, second_id: str) -> CheckpointDiff | None:
        """Differences going from `first_id` to `second_id`. None if either is unknown."""
        checkpoints = {m.id: m for m in (await self._read()).checkpoints}
        first, second = checkpoints.get(first_id), checkpoints.get(second_id)
        if first is None or second is None:
            return None
        old = await self._load_state(first) or {}
        new = await self._load_state(second) or {}
        return CheckpointDiff(
            first=first,
            second=second,
            state_changes=diff_state(old, new),
            files_added=[f for f in second.files if f not in first.files],
            files_removed=[f for f in first.files if f not in second.files],
        )
