"""Conversation summaries.

summaries/index.json:
    {"version": 1, "summaries": [Summary, ...]}   oldest first, at most max_summaries

Summaries are produced elsewhere; this store only keeps them, and merge()
combines several into one without rewriting their text.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ctxstore.base import DomainStore, load_document
from ctxstore.models import Summary, SummaryIndex, format_ts, new_id

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from ctxstore.store import DocumentStore

logger = logging.getLogger("ctxstore.summary")

SUMMARIES_DIR = "summaries"
INDEX_FILE = "index.json"
DEFAULT_MAX_SUMMARIES = 100
MERGE_SEPARATOR = "\n\n---\n\n"

# merged list caps: key points, decisions, action items
MERGE_MAX_KEY_POINTS = 15
MERGE_MAX_DECISIONS = 10
MERGE_MAX_ACTION_ITEMS = 15


def _union(groups: Iterable[list[str]], cap: int) -> list[str]:
    seen: dict[str, None] = {}
    for group in groups:
        for item in group:
            seen.setdefault(item, None)
    return list(seen)[:cap]


class SummaryStore(DomainStore):
    """Capped list of summaries in the `summaries/` sub-store."""

    def __init__(
        self,
        store: DocumentStore,
        *,
        max_summaries: int = DEFAULT_MAX_SUMMARIES,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if max_summaries < 1:
            msg = f"max_summaries must be >= 1, got {max_summaries}"
            raise ValueError(msg)
        super().__init__(store.sub_store(SUMMARIES_DIR), clock=clock)
        self.max_summaries = max_summaries

    async def _read(self) -> SummaryIndex:
        return await load_document(self._store, INDEX_FILE, SummaryIndex.from_dict, SummaryIndex)

    async def _save(self, index: SummaryIndex) -> None:
        if len(index.summaries) > self.max_summaries:
            dropped = len(index.summaries) - self.max_summaries
            index.summaries = index.summaries[-self.max_summaries:]
            logger.info("dropped %d old summaries, kept %d", dropped, self.max_summaries)
        await self._store.write(INDEX_FILE, index.to_dict())

    async def _append(self, summary: Summary) -> Summary:
        async with self._lock:
            index = await self._read()
            index.summaries.append(summary)
            await self._save(index)
        return summary

    async def add(
        self,
        context: str,
        *,
        key_points: Iterable[str] = (),
        decisions: Iterable[str] = (),
        action_items: Iterable[str] = (),
        original_length: int | None = None,
        session_id: str | None = None,
    ) -> Summary:
        now = self._now()
        return await self._append(Summary(
            id=new_id("sum", now),
            context=context,
            key_points=list(key_points),
            decisions=list(decisions),
            action_items=list(action_items),
            original_length=original_length if original_length is not None else len(context),
            summary_length=len(context),
            created_at=format_ts(now),
            session_id=session_id,
        ))

    async def merge(self, ids: Iterable[str], max_length: int = 4000) -> Summary | None:
        """Combine summaries into a new stored one. None if no id matches.

        Sources are taken in stored order. Lists are unioned without
        duplicates and the joined context is cut at `max_length` characters.
        """
        wanted = set(ids)
        sources = [s for s in (await self._read()).summaries if s.id in wanted]
        if not sources:
            return None
        context = MERGE_SEPARATOR.join(s.context for s in sources)
        if max_length > 0 and len(context) > max_length:
            context = context[:max_length]
        now = self._now()
        return await self._append(Summary(
            id=new_id("merged", now),
            context=context,
            key_points=_union((s.key_points for s in sources), MERGE_MAX_KEY_POINTS),
            decisions=_union((s.decisions for s in sources), MERGE_MAX_DECISIONS),
            action_items=_union((s.action_items for s in sources), MERGE_MAX_ACTION_ITEMS),
            original_length=sum(s.original_length for s in sources),
            summary_length=len(context),
            created_at=format_ts(now),
        ))

    async def get(self, summary_id: str) -> Summary | None:
        return next((s for s in (await self._read()).summaries if s.id == summary_id), None)

    async def list(self, session_id: str | None = None, limit: int = 10) -> list[Summary]:
        summaries = (await self._read()).summaries
        if session_id:
            summaries = [s for s in summaries if s.session_id == session_id]
        return summaries[-limit:] if limit > 0 else []

    async def latest(self) -> Summary | None:
        summaries = (await self._read()).summaries
        return summaries[-1] if summaries else None
