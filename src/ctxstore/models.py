"""Document schemas for the domain stores.

Attribute names are snake_case; the on-disk keys are camelCase so existing
data directories keep loading. Every from_dict() fills defaults for missing
fields, which is how older documents stay readable without migrations.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

STORAGE_VERSION = 1

TRACKER_TYPES = ("decision", "change", "todo", "note", "error")
TODO_STATUSES = ("pending", "done", "cancelled")


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_ts(ts: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    return ts.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_ts(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        ts = datetime.fromisoformat(value)
    except ValueError:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=UTC)


def new_id(kind: str, now: datetime | None = None) -> str:
    """Collection item ID: <kind>_<epochMillis>_<6 hex>."""
    millis = int((now or utc_now()).timestamp() * 1000)
    return f"{kind}_{millis}_{uuid.uuid4().hex[:6]}"


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def _str(value: Any, default: str = "") -> str:
    return value if isinstance(value, str) else default


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _int(value: Any, default: int) -> int:
    # bool is an int subclass but never a valid count
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not math.isfinite(value):
        return default
    return int(value)


def _version(d: dict[str, Any]) -> int:
    return _int(d.get("version"), STORAGE_VERSION) or STORAGE_VERSION


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------


@dataclass
class MemoryEntry:
    key: str
    value: Any
    tags: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    ttl: int | None = None             # milliseconds, measured from updated_at

    def expires_at(self) -> datetime | None:
        if not self.ttl:
            return None
        updated = parse_ts(self.updated_at)
        if updated is None:
            return None
        try:
            return updated + timedelta(milliseconds=self.ttl)
        except OverflowError:
            return None

    def is_expired(self, now: datetime) -> bool:
        expires = self.expires_at()
        return expires is not None and now > expires

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MemoryEntry:
        created_at = _str(d.get("createdAt"))
        return cls(
            key=_str(d.get("key")),
            value=d.get("value"),
            tags=_str_list(d.get("tags")),
            created_at=created_at,
            updated_at=_str(d.get("updatedAt"), created_at),
            ttl=_int(d.get("ttl"), 0) or None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "key": self.key,
            "value": self.value,
            "tags": self.tags,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.ttl:
            d["ttl"] = self.ttl
        return d


@dataclass
class MemoryDocument:
    """memory.json"""

    entries: dict[str, MemoryEntry] = field(default_factory=dict)
    version: int = STORAGE_VERSION

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> MemoryDocument:
        raw = d.get("entries")
        entries: dict[str, MemoryEntry] = {}
        if isinstance(raw, dict):
            for key, value in raw.items():
                if isinstance(value, dict):
                    entry = MemoryEntry.from_dict(value)
                    entry.key = entry.key or key
                    entries[key] = entry
        return cls(entries=entries, version=_version(d))

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STORAGE_VERSION,
            "entries": {k: e.to_dict() for k, e in self.entries.items()},
        }


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------


@dataclass
class TrackerEntry:
    id: str
    type: str                          # decision | change | todo | note | error
    content: str
    tags: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    status: str | None = None          # pending | done | cancelled (todos only)
    metadata: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TrackerEntry:
        metadata = d.get("metadata")
        created_at = _str(d.get("createdAt"))
        return cls(
            id=_str(d.get("id")),
            type=_str(d.get("type"), "note"),
            content=_str(d.get("content")),
            tags=_str_list(d.get("tags")),
            created_at=created_at,
            updated_at=_str(d.get("updatedAt"), created_at),
            status=_opt_str(d.get("status")),
            metadata=metadata if isinstance(metadata, dict) else None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "content": self.content,
            "tags": self.tags,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.status:
            d["status"] = self.status
        if self.metadata:
            d["metadata"] = self.metadata
        return d


@dataclass
class TrackerDocument:
    """tracker.json"""

    entries: list[TrackerEntry] = field(default_factory=list)
    project_name: str | None = None
    version: int = STORAGE_VERSION

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TrackerDocument:
        raw = d.get("entries")
        entries = [TrackerEntry.from_dict(e) for e in raw if isinstance(e, dict)] if isinstance(raw, list) else []
        return cls(
            entries=entries,
            project_name=_opt_str(d.get("projectName")),
            version=_version(d),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "version": STORAGE_VERSION,
            "entries": [e.to_dict() for e in self.entries],
        }
        if self.project_name:
            d["projectName"] = self.project_name
        return d


# ---------------------------------------------------------------------------
# Checkpoints
# ---------------------------------------------------------------------------


@dataclass
class CheckpointMeta:
    """Index entry; the state payload lives in checkpoints/<id>.json."""

    id: str
    name: str
    description: str | None = None
    files: list[str] = field(default_factory=list)
    created_at: str = ""

    @property
    def payload_name(self) -> str:
        return f"{self.id}.json"

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> CheckpointMeta:
        return cls(
            id=_str(d.get("id")),
            name=_str(d.get("name")),
            description=_opt_str(d.get("description")),
            files=_str_list(d.get("files")),
            created_at=_str(d.get("createdAt")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "files": self.files,
            "createdAt": self.created_at,
        }
        if self.description:
            d["description"] = self.description
        return d


@dataclass
class Checkpoint:
    meta: CheckpointMeta
    state: dict[str, Any] | None       # None when the payload file is missing

    def to_dict(self) -> dict[str, Any]:
        return {**self.meta.to_dict(), "state": self.state}


@dataclass
class CheckpointIndex:
    """checkpoints/index.json"""

    checkpoints: list[CheckpointMeta] = field(default_factory=list)
    version: int = STORAGE_VERSION

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> CheckpointIndex:
        raw = d.get("checkpoints")
        items = [CheckpointMeta.from_dict(c) for c in raw if isinstance(c, dict)] if isinstance(raw, list) else []
        return cls(checkpoints=items, version=_version(d))

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STORAGE_VERSION,
            "checkpoints": [c.to_dict() for c in self.checkpoints],
        }


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------


@dataclass
class Summary:
    id: str
    context: str
    key_points: list[str] = field(default_factory=list)
    decisions: list[str] = field(default_factory=list)
    action_items: list[str] = field(default_factory=list)
    original_length: int = 0
    summary_length: int = 0
    created_at: str = ""
    session_id: str | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Summary:
        context = _str(d.get("context"))
        return cls(
            id=_str(d.get("id")),
            context=context,
            key_points=_str_list(d.get("keyPoints")),
            decisions=_str_list(d.get("decisions")),
            action_items=_str_list(d.get("actionItems")),
            original_length=_int(d.get("originalLength"), 0) or len(context),
            summary_length=_int(d.get("summaryLength"), 0) or len(context),
            created_at=_str(d.get("createdAt")),
            session_id=_opt_str(d.get("sessionId")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "originalLength": self.original_length,
            "summaryLength": self.summary_length,
            "keyPoints": self.key_points,
            "decisions": self.decisions,
            "actionItems": self.action_items,
            "context": self.context,
            "createdAt": self.created_at,
        }
        if self.session_id:
            d["sessionId"] = self.session_id
        return d


@dataclass
class SummaryIndex:
    """summaries/index.json"""

    summaries: list[Summary] = field(default_factory=list)
    version: int = STORAGE_VERSION

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SummaryIndex:
        raw = d.get("summaries")
        items = [Summary.from_dict(s) for s in raw if isinstance(s, dict)] if isinstance(raw, list) else []
        return cls(summaries=items, version=_version(d))

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": STORAGE_VERSION,
            "summaries": [s.to_dict() for s in self.summaries],
        }
