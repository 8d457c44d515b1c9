"""Workspace: one opened store directory and its domain stores."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ctxstore.checkpoint import CheckpointStore
from ctxstore.config import CtxConfig, load_config
from ctxstore.memory import MemoryStore
from ctxstore.store import DocumentStore
from ctxstore.summary import SummaryStore
from ctxstore.tracker import TrackerStore

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from pathlib import Path

logger = logging.getLogger("ctxstore.workspace")


@dataclass
class Workspace:
    config: CtxConfig
    store: DocumentStore
    memory: MemoryStore
    tracker: TrackerStore
    checkpoints: CheckpointStore
    summaries: SummaryStore

    @property
    def path(self) -> Path:
        return self.store.base_path


async def open_workspace(
    config: CtxConfig | None = None,
    *,
    clock: Callable[[], datetime] | None = None,
) -> Workspace:
    """Open (creating if needed) the store directory described by `config`.

    With no config, ctx.toml is looked up from the current directory.
    """
    cfg = config or load_config()
    cfg.validate()
    store = DocumentStore(
        cfg.store_dir,
        enable_backup=cfg.store.backups,
        max_backups=cfg.store.max_backups,
    )
    r = cfg.retention
    ws = Workspace(
        config=cfg,
        store=store,
        memory=MemoryStore(store, clock=clock),
        tracker=TrackerStore(
            store,
            max_entries=r.tracker_max_entries,
            rotate_keep=r.tracker_rotate_keep,
            clock=clock,
        ),
        checkpoints=CheckpointStore(store, max_checkpoints=r.max_checkpoints, clock=clock),
        summaries=SummaryStore(store, max_summaries=r.max_summaries, clock=clock),
    )
    logger.debug("opened workspace at %s", ws.path)
    if cfg.memory.sweep_on_open:
        await ws.memory.sweep()
    return ws
