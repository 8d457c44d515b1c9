"""Session bootstrap: everything worth knowing when a new session starts."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ctxstore.models import Checkpoint, MemoryEntry, Summary
    from ctxstore.tracker import TrackerStatus
    from ctxstore.workspace import Workspace

logger = logging.getLogger("ctxstore.session")


@dataclass
class SessionSnapshot:
    checkpoint: Checkpoint | None
    status: TrackerStatus
    memories: list[MemoryEntry] = field(default_factory=list)
    summary: Summary | None = None
    expired_removed: int = 0

    def to_dict(self) -> dict[str, Any]:
        cp = self.checkpoint
        return {
            "projectName": self.status.project_name,
            "expiredMemoriesRemoved": self.expired_removed,
            "checkpoint": cp.to_dict() if cp else None,
            "tracker": self.status.to_dict(),
            "memories": {m.key: m.value for m in self.memories},
            "summary": self.summary.to_dict() if self.summary else None,
        }


async def init_session(ws: Workspace, project_name: str | None = None) -> SessionSnapshot:
    """Sweep expired memories, then load the latest state from every store.

    If `project_name` is given and the tracker has none yet, it is stored.
    """
    expired = await ws.memory.sweep()

    checkpoint, status, memories, summary = await asyncio.gather(
        ws.checkpoints.latest(),
        ws.tracker.status(),
        ws.memory.list(),
        ws.summaries.latest(),
    )

    if project_name and not status.project_name:
        if await ws.tracker.set_project_if_unset(project_name):
            logger.info("project name set to %r", project_name)
        status.project_name = await ws.tracker.project_name()

    return SessionSnapshot(
        checkpoint=checkpoint,
        status=status,
        memories=memories,
        summary=summary,
        expired_removed=expired,
    )
