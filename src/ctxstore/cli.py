"""ctx CLI: inspect and maintain a context store directory.

Commands:
    ctx init [NAME]                     create ctx.toml + the store directory
    ctx session [--project NAME]        session bootstrap snapshot (JSON)
    ctx sweep                           remove expired memories
    ctx health                          integrity report
    ctx stats                           document and backup statistics
    ctx restore FILENAME [--backup P]   restore a document from a backup
    ctx memory set|get|list|delete|clear
    ctx tracker log|status|todo|search|cleanup|project
    ctx checkpoint save|list|show|delete|compare|gc
    ctx summary add|merge|list|show
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from ctxstore.config import CtxConfig, init_config, load_config
from ctxstore.errors import StoreError
from ctxstore.health import backup_stats, check_health, store_stats
from ctxstore.models import TODO_STATUSES, TRACKER_TYPES
from ctxstore.session import init_session
from ctxstore.workspace import Workspace, open_workspace

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

_LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg(ctx: click.Context) -> CtxConfig:
    try:
        cfg = load_config()
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc
    store_path = ctx.obj.get("store") if ctx.obj else None
    if store_path:
        cfg.store.path = store_path
    return cfg


def _run(ctx: click.Context, fn: Callable[[Workspace], Awaitable[Any]]) -> Any:
    """Open the workspace and run `fn` against it on a fresh event loop."""
    cfg = _load_cfg(ctx)

    async def main() -> Any:
        ws = await open_workspace(cfg)
        return await fn(ws)

    try:
        return asyncio.run(main())
    except (StoreError, ValueError, TypeError, FileNotFoundError) as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _parse_value(raw: str, as_json: bool, hint: str = "VALUE") -> Any:
    if not as_json:
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc}", param_hint=hint) from exc


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="ctxstore")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--store", "store", default=None, help="Store directory (overrides ctx.toml / CTX_STORE_PATH)")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, store: str | None) -> None:
    """Persistent context store for assistant sessions."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=_LOG_FORMAT)
    ctx.obj = {"store": store}


# ---------------------------------------------------------------------------
# ctx init / session / sweep
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
@click.pass_context
def init(ctx: click.Context, name: str | None, root: str) -> None:
    """Create ctx.toml and the store directory."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, name)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("ctx.toml already exists, skipping")

    try:
        cfg = load_config(root_path)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    if ctx.obj.get("store"):
        cfg.store.path = ctx.obj["store"]
    cfg.store_dir.mkdir(parents=True, exist_ok=True)
    click.echo(f"Store dir : {cfg.store_dir}")


@cli.command()
@click.option("--project", default=None, help="Project name to record if none is set")
@click.pass_context
def session(ctx: click.Context, project: str | None) -> None:
    """Print the session bootstrap snapshot."""
    snapshot = _run(ctx, lambda ws: init_session(ws, project))
    _echo_json(snapshot.to_dict())


@cli.command()
@click.pass_context
def sweep(ctx: click.Context) -> None:
    """Remove expired memories."""
    n = _run(ctx, lambda ws: ws.memory.sweep())
    click.echo(f"Removed {n} expired memories")


# ---------------------------------------------------------------------------
# ctx health / stats / restore
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check documents parse and checkpoint payloads exist."""
    report = _run(ctx, check_health)
    _echo_json(report.to_dict())
    if report.status != "healthy":
        ctx.exit(1)


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Document and backup statistics."""

    async def collect(ws: Workspace) -> dict[str, Any]:
        docs, baks = await asyncio.gather(store_stats(ws.path), backup_stats(ws.path))
        return {"path": str(ws.path), "documents": docs.to_dict(), "backups": baks.to_dict()}

    _echo_json(_run(ctx, collect))


@cli.command()
@click.argument("filename")
@click.option("--backup", "backup", default=None, help="Backup file to restore (default: newest)")
@click.option("--list", "list_only", is_flag=True, help="List available backups instead")
@click.pass_context
def restore(ctx: click.Context, filename: str, backup: str | None, list_only: bool) -> None:
    """Restore FILENAME (relative to the store) from a backup."""
    if list_only:
        for path in _run(ctx, lambda ws: ws.store.backups(filename)):
            click.echo(path.name)
        return

    def resolve(ws: Workspace) -> Path | None:
        if backup is None:
            return None
        # a bare name from --list lives next to the document
        if Path(backup).name == backup:
            return ws.store.path_for(filename).parent / backup
        return Path(backup)

    source = _run(ctx, lambda ws: ws.store.restore(filename, resolve(ws)))
    click.echo(f"Restored {filename} from {source.name}")


# ---------------------------------------------------------------------------
# ctx memory
# ---------------------------------------------------------------------------


@cli.group()
def memory() -> None:
    """Key-value memories."""


@memory.command("set")
@click.argument("key")
@click.argument("value")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--ttl", type=int, default=None, help="Time to live in milliseconds")
@click.option("--json", "as_json", is_flag=True, help="Parse VALUE as JSON")
@click.pass_context
def memory_set(ctx: click.Context, key: str, value: str, tags: tuple[str, ...], ttl: int | None, as_json: bool) -> None:
    parsed = _parse_value(value, as_json)
    entry = _run(ctx, lambda ws: ws.memory.set(key, parsed, tags=tags, ttl=ttl))
    suffix = f" (expires {entry.expires_at().isoformat()})" if entry.ttl else ""
    click.echo(f"Stored {key}{suffix}")


@memory.command("get")
@click.argument("key")
@click.pass_context
def memory_get(ctx: click.Context, key: str) -> None:
    entry = _run(ctx, lambda ws: ws.memory.get(key))
    if entry is None:
        raise click.ClickException(f"Memory not found: {key}")
    _echo_json(entry.to_dict())


@memory.command("list")
@click.option("--pattern", "-p", default=None, help="Key pattern, * is a wildcard")
@click.option("--tag", "tags", multiple=True)
@click.pass_context
def memory_list(ctx: click.Context, pattern: str | None, tags: tuple[str, ...]) -> None:
    entries = _run(ctx, lambda ws: ws.memory.search(pattern, tags=tags))
    for e in entries:
        tag_str = f"  [{', '.join(e.tags)}]" if e.tags else ""
        click.echo(f"{e.key} = {json.dumps(e.value, ensure_ascii=False)}{tag_str}")
    if not entries:
        click.echo("No memories")


@memory.command("delete")
@click.argument("key")
@click.pass_context
def memory_delete(ctx: click.Context, key: str) -> None:
    if not _run(ctx, lambda ws: ws.memory.delete(key)):
        raise click.ClickException(f"Memory not found: {key}")
    click.echo(f"Deleted {key}")


@memory.command("clear")
@click.option("--tag", "tags", multiple=True, help="Only memories with any of these tags")
@click.option("--dry-run", is_flag=True)
@click.pass_context
def memory_clear(ctx: click.Context, tags: tuple[str, ...], dry_run: bool) -> None:
    keys = _run(ctx, lambda ws: ws.memory.clear(tags=tags, dry_run=dry_run))
    verb = "Would delete" if dry_run else "Deleted"
    click.echo(f"{verb} {len(keys)} memories" + (f": {', '.join(keys)}" if keys else ""))


# ---------------------------------------------------------------------------
# ctx tracker
# ---------------------------------------------------------------------------


@cli.group()
def tracker() -> None:
    """Project log: decisions, changes, todos, notes, errors."""


@tracker.command("log")
@click.argument("entry_type", type=click.Choice(TRACKER_TYPES))
@click.argument("content")
@click.option("--tag", "tags", multiple=True)
@click.pass_context
def tracker_log(ctx: click.Context, entry_type: str, content: str, tags: tuple[str, ...]) -> None:
    entry = _run(ctx, lambda ws: ws.tracker.log(entry_type, content, tags=tags))
    click.echo(entry.id)


@tracker.command("status")
@click.option("--limit", "-l", default=5, show_default=True)
@click.pass_context
def tracker_status(ctx: click.Context, limit: int) -> None:
    status = _run(ctx, lambda ws: ws.tracker.status(limit))
    _echo_json(status.to_dict())


@tracker.command("todo")
@click.argument("entry_id")
@click.argument("status", type=click.Choice(TODO_STATUSES))
@click.pass_context
def tracker_todo(ctx: click.Context, entry_id: str, status: str) -> None:
    """Set a todo's status."""
    entry = _run(ctx, lambda ws: ws.tracker.update_todo(entry_id, status))
    if entry is None:
        raise click.ClickException(f"Entry not found: {entry_id}")
    click.echo(f"{entry_id}: {status}")


@tracker.command("search")
@click.option("--type", "entry_type", type=click.Choice(TRACKER_TYPES), default=None)
@click.option("--tag", "tags", multiple=True)
@click.option("--query", "-q", default=None, help="Case-insensitive substring")
@click.option("--limit", "-l", default=20, show_default=True)
@click.pass_context
def tracker_search(
    ctx: click.Context, entry_type: str | None, tags: tuple[str, ...], query: str | None, limit: int,
) -> None:
    entries = _run(ctx, lambda ws: ws.tracker.search(entry_type=entry_type, tags=tags, query=query, limit=limit))
    for e in entries:
        status = f" ({e.status})" if e.status else ""
        click.echo(f"{e.created_at}  {e.type}{status}  {e.content}  ←{e.id}")
    if not entries:
        click.echo("No entries")


@tracker.command("cleanup")
@click.option("--keep", "keep_count", default=500, show_default=True, help="Newest entries to keep")
@click.option("--dry-run", is_flag=True)
@click.pass_context
def tracker_cleanup(ctx: click.Context, keep_count: int, dry_run: bool) -> None:
    removed = _run(ctx, lambda ws: ws.tracker.cleanup(keep_count, dry_run=dry_run))
    verb = "Would remove" if dry_run else "Removed"
    click.echo(f"{verb} {len(removed)} entries")


@tracker.command("project")
@click.argument("name", required=False)
@click.pass_context
def tracker_project(ctx: click.Context, name: str | None) -> None:
    """Show the project name, or set it to NAME."""
    if name is None:
        current = _run(ctx, lambda ws: ws.tracker.project_name())
        click.echo(current or "No project name set")
        return
    _run(ctx, lambda ws: ws.tracker.set_project(name))
    click.echo(f"Project: {name}")


# ---------------------------------------------------------------------------
# ctx checkpoint
# ---------------------------------------------------------------------------


@cli.group()
def checkpoint() -> None:
    """Saved session snapshots."""


@checkpoint.command("save")
@click.argument("name")
@click.option("--state", "state_json", default="{}", show_default=True, help="State as a JSON object")
@click.option("--description", "-d", default=None)
@click.option("--file", "files", multiple=True, help="File touched in this session (repeatable)")
@click.pass_context
def checkpoint_save(
    ctx: click.Context, name: str, state_json: str, description: str | None, files: tuple[str, ...],
) -> None:
    state = _parse_value(state_json, True, "--state")
    if not isinstance(state, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--state")
    meta = _run(ctx, lambda ws: ws.checkpoints.save(name, state, description=description, files=files))
    click.echo(meta.id)


@checkpoint.command("list")
@click.option("--limit", "-l", default=10, show_default=True)
@click.pass_context
def checkpoint_list(ctx: click.Context, limit: int) -> None:
    metas = _run(ctx, lambda ws: ws.checkpoints.list(limit))
    for m in reversed(metas):
        desc = f"  {m.description}" if m.description else ""
        click.echo(f"{m.id}  {m.created_at}  {m.name}{desc}")
    if not metas:
        click.echo("No checkpoints")


@checkpoint.command("show")
@click.argument("checkpoint_id", required=False)
@click.option("--name", default=None, help="Newest checkpoint whose name contains this")
@click.pass_context
def checkpoint_show(ctx: click.Context, checkpoint_id: str | None, name: str | None) -> None:
    """Show a checkpoint (latest if no id or name is given)."""
    cp = _run(ctx, lambda ws: ws.checkpoints.load(checkpoint_id, name))
    if cp is None:
        raise click.ClickException("Checkpoint not found")
    _echo_json(cp.to_dict())


@checkpoint.command("delete")
@click.argument("checkpoint_id")
@click.pass_context
def checkpoint_delete(ctx: click.Context, checkpoint_id: str) -> None:
    if not _run(ctx, lambda ws: ws.checkpoints.delete(checkpoint_id)):
        raise click.ClickException(f"Checkpoint not found: {checkpoint_id}")
    click.echo(f"Deleted {checkpoint_id}")


@checkpoint.command("compare")
@click.argument("first_id")
@click.argument("second_id")
@click.pass_context
def checkpoint_compare(ctx: click.Context, first_id: str, second_id: str) -> None:
    diff = _run(ctx, lambda ws: ws.checkpoints.compare(first_id, second_id))
    if diff is None:
        raise click.ClickException("One or both checkpoints not found")
    _echo_json(diff.to_dict())


@checkpoint.command("gc")
@click.option("--dry-run", is_flag=True)
@click.pass_context
def checkpoint_gc(ctx: click.Context, dry_run: bool) -> None:
    """Remove payload files that no checkpoint references."""
    orphans = _run(ctx, lambda ws: ws.checkpoints.collect_orphans(dry_run=dry_run))
    verb = "Would remove" if dry_run else "Removed"
    click.echo(f"{verb} {len(orphans)} orphaned payloads")
    for name in orphans:
        click.echo(f"  {name}")


# ---------------------------------------------------------------------------
# ctx summary
# ---------------------------------------------------------------------------


@cli.group()
def summary() -> None:
    """Stored conversation summaries."""


@summary.command("add")
@click.argument("context")
@click.option("--key-point", "key_points", multiple=True)
@click.option("--decision", "decisions", multiple=True)
@click.option("--action-item", "action_items", multiple=True)
@click.option("--original-length", type=int, default=None, help="Length of the summarized text")
@click.option("--session", "session_id", default=None)
@click.pass_context
def summary_add(
    ctx: click.Context,
    context: str,
    key_points: tuple[str, ...],
    decisions: tuple[str, ...],
    action_items: tuple[str, ...],
    original_length: int | None,
    session_id: str | None,
) -> None:
    added = _run(ctx, lambda ws: ws.summaries.add(
        context,
        key_points=key_points,
        decisions=decisions,
        action_items=action_items,
        original_length=original_length,
        session_id=session_id,
    ))
    click.echo(added.id)


@summary.command("merge")
@click.argument("summary_ids", nargs=-1, required=True)
@click.option("--max-length", default=4000, show_default=True, help="Cut the merged context at this many chars")
@click.pass_context
def summary_merge(ctx: click.Context, summary_ids: tuple[str, ...], max_length: int) -> None:
    """Combine summaries into a new one."""
    merged = _run(ctx, lambda ws: ws.summaries.merge(summary_ids, max_length))
    if merged is None:
        raise click.ClickException("No matching summaries")
    click.echo(merged.id)


@summary.command("list")
@click.option("--session", "session_id", default=None)
@click.option("--limit", "-l", default=10, show_default=True)
@click.pass_context
def summary_list(ctx: click.Context, session_id: str | None, limit: int) -> None:
    summaries = _run(ctx, lambda ws: ws.summaries.list(session_id, limit))
    for s in reversed(summaries):
        click.echo(f"{s.id}  {s.created_at}  {s.original_length} -> {s.summary_length} chars")
    if not summaries:
        click.echo("No summaries")


@summary.command("show")
@click.argument("summary_id", required=False)
@click.pass_context
def summary_show(ctx: click.Context, summary_id: str | None) -> None:
    """Show a summary (latest if no id is given)."""
    found = _run(ctx, lambda ws: ws.summaries.get(summary_id) if summary_id else ws.summaries.latest())
    if found is None:
        raise click.ClickException("Summary not found")
    _echo_json(found.to_dict())
