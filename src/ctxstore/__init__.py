"""Persistent context store: JSON documents on disk, written atomically.

Layout (under the store directory, default .context/):
    memory.json                    # key -> MemoryEntry, optional TTL
    tracker.json                   # decision/change/todo/note/error log, rotated
    checkpoints/
        index.json                 # CheckpointMeta list, oldest first
        <cp id>.json               # state payload of one checkpoint
    summaries/
        index.json                 # Summary list, capped
    <doc>.<epochMillis>.bak        # rotated backups beside every document

Every write replaces the whole document: temp file, fsync, rename. The
previous version is copied to a .bak first. Per-path asyncio locks serialize
writers within one process; nothing coordinates separate processes.
"""

from ctxstore.config import CtxConfig, init_config, load_config
from ctxstore.errors import CorruptDocumentError, StoreError, StoreIOError
from ctxstore.store import DocumentStore
from ctxstore.workspace import Workspace, open_workspace

__all__ = [
    "CorruptDocumentError",
    "CtxConfig",
    "DocumentStore",
    "StoreError",
    "StoreIOError",
    "Workspace",
    "init_config",
    "load_config",
    "open_workspace",
]
