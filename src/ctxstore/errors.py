"""Exceptions raised by the document store.

A missing document is never an error: reads return the caller's default and
lookups return None. Only corrupt content and failing I/O raise.
"""

from __future__ import annotations

from pathlib import Path


class StoreError(Exception):
    """Base class for document store failures."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class CorruptDocumentError(StoreError):
    """File exists but does not parse as JSON."""


class StoreIOError(StoreError):
    """Filesystem failure while reading, writing, renaming or deleting."""
