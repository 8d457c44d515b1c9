"""Shared plumbing for the domain stores."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from ctxstore.errors import CorruptDocumentError
from ctxstore.models import utc_now

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from ctxstore.store import DocumentStore

logger = logging.getLogger("ctxstore.recovery")

D = TypeVar("D")


async def load_document(
    store: DocumentStore,
    filename: str,
    parse: Callable[[dict[str, Any]], D],
    empty: Callable[[], D],
) -> D:
    """Read and parse a top-level document, resetting to empty if it is corrupt.

    Missing files are the normal first-run case and are not logged. Anything
    else that cannot become a document is logged at ERROR: the next save
    replaces it, and only the backup taken by that save still holds the old
    bytes.
    """
    try:
        raw = await store.read(filename, None)
    except CorruptDocumentError as exc:
        logger.error(
            "RECOVERY: %s is corrupt, continuing with an empty document (the next write keeps it as a backup): %s",
            exc.path, exc,
        )
        return empty()
    if raw is None:
        return empty()
    if not isinstance(raw, dict):
        logger.error(
            "RECOVERY: %s holds %s instead of an object, continuing with an empty document",
            store.path_for(filename), type(raw).__name__,
        )
        return empty()
    try:
        return parse(raw)
    except (TypeError, ValueError) as exc:
        logger.error(
            "RECOVERY: %s has malformed fields, continuing with an empty document: %s",
            store.path_for(filename), exc,
        )
        return empty()


class DomainStore:
    """Base for stores that own documents inside a DocumentStore.

    Read-modify-write cycles run under `self._lock` so that two coroutines
    using the same handle cannot interleave between read and write.
    """

    def __init__(self, store: DocumentStore, *, clock: Callable[[], datetime] | None = None) -> None:
        self._store = store
        self._clock = clock or utc_now
        self._lock = asyncio.Lock()

    @property
    def store(self) -> DocumentStore:
        return self._store

    def _now(self) -> datetime:
        return self._clock()
