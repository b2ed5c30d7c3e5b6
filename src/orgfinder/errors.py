"""Exceptions raised by the note index."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class NoteIndexError(Exception):
    """Base class for all orgfinder errors."""

    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        self.message = message
        self.path = path
        super().__init__(message)


class ParseSkip(NoteIndexError):
    """A heading or property block was malformed and produced no entry."""


class StaleConnection(NoteIndexError):
    """The persisted backend is unreachable or locked."""


class WriteRejected(NoteIndexError):
    """The backend refused a write even after reconnecting."""


class BackendUnavailable(NoteIndexError):
    """The backend could not serve a read even after reconnecting."""


class SchemaMismatch(NoteIndexError):
    """The on-disk schema is older than the current one."""


class MigrationError(NoteIndexError):
    """Migrating an older schema failed; the backend cannot be used."""


class SnapshotCorrupt(NoteIndexError):
    """The in-memory backend's snapshot file could not be loaded."""


class DocumentExistsError(NoteIndexError):
    """A new document could not be given an unused filename."""
