"""Store statistics and integrity checks."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ctxstore.checkpoint import CHECKPOINTS_DIR
from ctxstore.checkpoint import INDEX_FILE as CHECKPOINT_INDEX
from ctxstore.errors import CorruptDocumentError
from ctxstore.memory import MEMORY_FILE
from ctxstore.models import CheckpointIndex, format_ts
from ctxstore.summary import INDEX_FILE as SUMMARY_INDEX
from ctxstore.summary import SUMMARIES_DIR
from ctxstore.tracker import TRACKER_FILE

if TYPE_CHECKING:
    from ctxstore.workspace import Workspace

LARGE_STORE_BYTES = 10 * 1024 * 1024
MANY_BACKUPS = 50


@dataclass
class FileStat:
    name: str                          # relative to the store root
    size: int
    modified: str


@dataclass
class StoreStats:
    total_size: int = 0
    files: list[FileStat] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.files)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSize": self.total_size,
            "fileCount": self.file_count,
            "files": [{"name": f.name, "size": f.size, "modified": f.modified} for f in self.files],
        }


@dataclass
class BackupStats:
    backup_count: int = 0
    total_size: int = 0
    oldest: str | None = None
    newest: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "backupCount": self.backup_count,
            "totalBackupSize": self.total_size,
            "oldestBackup": self.oldest,
            "newestBackup": self.newest,
        }


@dataclass
class HealthReport:
    issues: list[str] = field(default_factory=list)
    missing_payloads: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    stats: StoreStats = field(default_factory=StoreStats)
    backups: BackupStats = field(default_factory=BackupStats)

    @property
    def status(self) -> str:
        return "healthy" if not self.issues and not self.missing_payloads else "issues_found"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "issues": self.issues,
            "missingPayloads": self.missing_payloads,
            "recommendations": self.recommendations,
            "stats": {
                "totalSizeKB": round(self.stats.total_size / 1024),
                "fileCount": self.stats.file_count,
                "backupCount": self.backups.backup_count,
                "backupSizeKB": round(self.backups.total_size / 1024),
            },
        }


# ---------------------------------------------------------------------------
# Directory walks (run in a worker thread)
# ---------------------------------------------------------------------------


def _mtime(st: os.stat_result) -> str:
    return format_ts(datetime.fromtimestamp(st.st_mtime, UTC))


def _walk(base: Path, suffix: str) -> list[tuple[str, os.stat_result]]:
    found: list[tuple[str, os.stat_result]] = []
    for dirpath, _dirnames, filenames in os.walk(base):
        for name in sorted(filenames):
            if not name.endswith(suffix):
                continue
            full = Path(dirpath) / name
            try:
                st = full.stat()
            except FileNotFoundError:
                continue
            found.append((full.relative_to(base).as_posix(), st))
    return found


async def store_stats(base: Path | str) -> StoreStats:
    """Sizes and modification times of every *.json document under `base`."""
    stats = StoreStats()
    for name, st in await asyncio.to_thread(_walk, Path(base), ".json"):
        stats.total_size += st.st_size
        stats.files.append(FileStat(name=name, size=st.st_size, modified=_mtime(st)))
    return stats


async def backup_stats(base: Path | str) -> BackupStats:
    stats = BackupStats()
    found = await asyncio.to_thread(_walk, Path(base), ".bak")
    if not found:
        return stats
    stats.backup_count = len(found)
    stats.total_size = sum(st.st_size for _, st in found)
    by_age = sorted(st.st_mtime for _, st in found)
    stats.oldest = format_ts(datetime.fromtimestamp(by_age[0], UTC))
    stats.newest = format_ts(datetime.fromtimestamp(by_age[-1], UTC))
    return stats


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


async def check_health(ws: Workspace) -> HealthReport:
    """Parse every top-level document and cross-check the checkpoint index."""
    report = HealthReport()
    store = ws.store
    checkpoints = store.sub_store(CHECKPOINTS_DIR)
    documents = [
        (store, MEMORY_FILE, MEMORY_FILE),
        (store, TRACKER_FILE, TRACKER_FILE),
        (checkpoints, CHECKPOINT_INDEX, f"{CHECKPOINTS_DIR}/{CHECKPOINT_INDEX}"),
        (store.sub_store(SUMMARIES_DIR), SUMMARY_INDEX, f"{SUMMARIES_DIR}/{SUMMARY_INDEX}"),
    ]
    raw_index: Any = None
    for doc_store, filename, label in documents:
        try:
            raw = await doc_store.read(filename, None)
        except CorruptDocumentError as exc:
            report.issues.append(f"{label}: invalid JSON or corrupted - {exc}")
            continue
        if raw is not None and not isinstance(raw, dict):
            report.issues.append(f"{label}: expected an object, found {type(raw).__name__}")
            continue
        if doc_store is checkpoints:
            raw_index = raw

    if raw_index:
        for meta in CheckpointIndex.from_dict(raw_index).checkpoints:
            if not await checkpoints.exists(meta.payload_name):
                report.missing_payloads.append(meta.id)

    report.stats, report.backups = await asyncio.gather(store_stats(ws.path), backup_stats(ws.path))

    if report.stats.total_size > LARGE_STORE_BYTES:
        report.recommendations.append(
            "Store size is large (>10MB). Consider running tracker cleanup and deleting old checkpoints."
        )
    if report.backups.backup_count == 0:
        report.recommendations.append("No backups found. Backups are created automatically on writes.")
    elif report.backups.backup_count > MANY_BACKUPS:
        report.recommendations.append(
            f"Many backup files ({report.backups.backup_count}). This is normal but takes space."
        )
    if report.missing_payloads:
        report.recommendations.append("Delete checkpoints whose payload is missing with `ctx checkpoint delete`.")
    return report
