"""CtxConfig: project-local config for the context store.

Default layout (all relative to the project root):

    ctx.toml              # project config (optional)
    .env                  # optional: CTX_* overrides (gitignore this)
    .context/
        memory.json
        tracker.json
        checkpoints/
            index.json
            <id>.json
        summaries/
            index.json
        *.<epochMillis>.bak   # rotated backups next to each document

ctx.toml example:

    [ctx]
    name = "my-project"

    [store]
    path = ".context"
    backups = true
    max_backups = 3

    [retention]
    max_checkpoints = 50
    max_summaries = 100
    tracker_max_entries = 1000
    tracker_rotate_keep = 800

    [memory]
    sweep_on_open = false

Precedence, highest first: process environment, .env, ctx.toml, defaults.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAME = "ctx.toml"
_DEFAULT_STORE_PATH = ".context"

# env var -> (section, key)
_ENV_OVERRIDES = {
    "CTX_STORE_PATH": ("store", "path"),
    "CTX_MAX_BACKUPS": ("store", "max_backups"),
    "CTX_MAX_CHECKPOINTS": ("retention", "max_checkpoints"),
    "CTX_MAX_SUMMARIES": ("retention", "max_summaries"),
    "CTX_TRACKER_MAX_ENTRIES": ("retention", "tracker_max_entries"),
    "CTX_TRACKER_ROTATE_KEEP": ("retention", "tracker_rotate_keep"),
}


@dataclass
class StoreConfig:
    path: str = _DEFAULT_STORE_PATH    # relative to the project root
    backups: bool = True
    max_backups: int = 3               # 0 disables backups


@dataclass
class RetentionConfig:
    max_checkpoints: int = 50
    max_summaries: int = 100
    tracker_max_entries: int = 1000
    tracker_rotate_keep: int = 800     # entries kept when the tracker rotates


@dataclass
class MemoryConfig:
    sweep_on_open: bool = False


@dataclass
class CtxConfig:
    """Resolved configuration for one project."""

    root: Path                         # directory that contains ctx.toml
    name: str = ""
    store: StoreConfig = field(default_factory=StoreConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)

    @property
    def store_dir(self) -> Path:
        return self.root / self.store.path

    def validate(self) -> None:
        if self.store.max_backups < 0:
            msg = f"store.max_backups must be >= 0, got {self.store.max_backups}"
            raise ValueError(msg)
        r = self.retention
        for key in ("max_checkpoints", "max_summaries", "tracker_max_entries", "tracker_rotate_keep"):
            if getattr(r, key) < 1:
                msg = f"retention.{key} must be >= 1, got {getattr(r, key)}"
                raise ValueError(msg)
        if r.tracker_rotate_keep > r.tracker_max_entries:
            msg = (
                f"retention.tracker_rotate_keep ({r.tracker_rotate_keep}) cannot exceed "
                f"retention.tracker_max_entries ({r.tracker_max_entries})"
            )
            raise ValueError(msg)


def _load_env(root: Path) -> dict[str, str]:
    """Parse a simple KEY=VALUE .env file (no external dependency)."""
    env_file = root / ".env"
    if not env_file.exists():
        return {}
    env: dict[str, str] = {}
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            env[k.strip()] = v.strip().strip('"').strip("'")
    return env


def _int(section: dict[str, Any], key: str, default: int, where: str) -> int:
    value = section.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        msg = f"{where}.{key} must be an integer, got {value!r}"
        raise ValueError(msg) from None


def load_config(root: Path | str | None = None) -> CtxConfig:
    """Load ctx.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    sections: dict[str, dict[str, Any]] = {
        name: dict(raw.get(name, {})) for name in ("ctx", "store", "retention", "memory")
    }

    # .env first, then the real environment on top
    overrides = {**_load_env(root_path), **os.environ}
    for var, (section, key) in _ENV_OVERRIDES.items():
        if overrides.get(var):
            sections[section][key] = overrides[var]

    store_s = sections["store"]
    ret_s = sections["retention"]
    mem_s = sections["memory"]

    cfg = CtxConfig(
        root=root_path,
        name=sections["ctx"].get("name", root_path.name),
        store=StoreConfig(
            path=str(store_s.get("path", _DEFAULT_STORE_PATH)),
            backups=bool(store_s.get("backups", True)),
            max_backups=_int(store_s, "max_backups", 3, "store"),
        ),
        retention=RetentionConfig(
            max_checkpoints=_int(ret_s, "max_checkpoints", 50, "retention"),
            max_summaries=_int(ret_s, "max_summaries", 100, "retention"),
            tracker_max_entries=_int(ret_s, "tracker_max_entries", 1000, "retention"),
            tracker_rotate_keep=_int(ret_s, "tracker_rotate_keep", 800, "retention"),
        ),
        memory=MemoryConfig(
            sweep_on_open=bool(mem_s.get("sweep_on_open", False)),
        ),
    )
    cfg.validate()
    return cfg


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for ctx.toml."""
    for directory in (start, *start.parents):
        if (directory / CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, name: str | None = None) -> Path:
    """Write a default ctx.toml at root. Raises if already exists."""
    config_path = root / CONFIG_FILENAME
    if config_path.exists():
        msg = f"ctx.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[ctx]
name = "{project_name}"

[store]
path = ".context"      # or set CTX_STORE_PATH
# backups = true
# max_backups = 3      # rotated copies kept per document; 0 disables

# [retention]
# max_checkpoints = 50
# max_summaries = 100
# tracker_max_entries = 1000
# tracker_rotate_keep = 800   # entries kept when the tracker log rotates

# [memory]
# sweep_on_open = false       # drop expired memories every time the store is opened
"""
    config_path.write_text(content)
    return config_path
