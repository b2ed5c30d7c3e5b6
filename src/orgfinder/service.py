"""Note index service: owns the backend and exposes the editor-facing operations."""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional, Sequence, Tuple

from orgfinder.config import AppConfig
from orgfinder.errors import DocumentExistsError, NoteIndexError
from orgfinder.index.backend import NoteBackend
from orgfinder.index.indexer import Indexer
from orgfinder.index.memory import MemoryNoteStore
from orgfinder.index.search import NoteQuery
from orgfinder.index.storage import SQLiteNoteStore
from orgfinder.models import Entry, Location, SyncResult
from orgfinder.utils.files import atomic_write_text
from orgfinder.utils.text import document_filename, format_link

LOGGER = logging.getLogger(__name__)

MAX_NAME_ATTEMPTS = 100


def new_identifier() -> str:
    return str(uuid.uuid4())


class LinkTarget(NamedTuple):
    identifier: str
    title: str
    created: bool


def render_document(
    identifier: str,
    title: str,
    body: Optional[str] = None,
    tags: Sequence[str] = (),
) -> str:
    """Text of a freshly created document."""
    lines = [":PROPERTIES:", f":ID:       {identifier}", ":END:", f"#+title: {title}"]
    if tags:
        lines.append(f"#+filetags: :{':'.join(tags)}:")
    lines.append("")
    if body:
        lines.append(body.rstrip("\n"))
    return "\n".join(lines) + "\n"


def create_backend(config: AppConfig, base_dir: Path | None = None) -> NoteBackend:
    """Build the backend selected by ``config.backend``."""
    if config.backend == "memory":
        return MemoryNoteStore(config.resolve_snapshot_path(base_dir))
    db_path = config.resolve_db_path(base_dir)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return SQLiteNoteStore(db_path)


class NoteIndex:
    """Single owner of the index backend for one notes directory.

    The backend is opened on first use and released by ``close()``. All
    operations are serialised with a lock so the periodic resync timer never
    interleaves with a caller's command.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        base_dir: Path | None = None,
        backend: NoteBackend | None = None,
        id_factory: Callable[[], str] = new_identifier,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.config = config or AppConfig()
        self.base_dir = base_dir
        self.notes_dir = self.config.resolve_notes_dir(base_dir).resolve()
        self.id_factory = id_factory
        self.clock = clock
        self._backend = backend
        self._indexer: Optional[Indexer] = None
        self._lock = threading.RLock()
        self._timer: Optional[threading.Timer] = None
        self._sync_interval: Optional[float] = None

    # Lifecycle -----------------------------------------------------------

    @property
    def backend(self) -> NoteBackend:
        with self._lock:
            if self._backend is None:
                self._backend = create_backend(self.config, self.base_dir)
                LOGGER.debug("Opened %s backend for %s", self.config.backend, self.notes_dir)
            return self._backend

    @property
    def indexer(self) -> Indexer:
        with self._lock:
            if self._indexer is None or self._indexer.backend is not self.backend:
                self._indexer = Indexer(
                    self.backend,
                    self.notes_dir,
                    extensions=self.config.extensions,
                    prefix_chars=self.config.metadata_prefix_chars,
                )
            return self._indexer

    @property
    def query(self) -> NoteQuery:
        return NoteQuery(self.indexer)

    def open(self) -> "NoteIndex":
        self.backend
        return self

    def close(self) -> None:
        self.stop_periodic_sync()
        with self._lock:
            if self._backend is not None:
                self._backend.close()
            self._backend = None
            self._indexer = None

    def __enter__(self) -> "NoteIndex":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # Sync ----------------------------------------------------------------

    def ensure_up_to_date(self) -> SyncResult:
        with self._lock:
            return self.indexer.ensure_up_to_date()

    def scan_for_changes(self) -> SyncResult:
        with self._lock:
            return self.indexer.scan_for_changes()

    def rebuild(self) -> SyncResult:
        with self._lock:
            return self.indexer.rebuild()

    def reconnect(self) -> None:
        with self._lock:
            self.backend.reconnect()

    def fix(self) -> SyncResult:
        """Make sure the backend takes writes again, then catch up with the disk."""
        with self._lock:
            self.backend.ensure_writable()
            return self.indexer.ensure_up_to_date()

    def after_save(self, path: Path) -> Optional[SyncResult]:
        """Hook for editors: re-index one document right after it was saved."""
        with self._lock:
            return self.indexer.index_file(path)

    def startup_sync(self) -> Optional[SyncResult]:
        if not self.notes_dir.is_dir():
            LOGGER.info("Notes directory %s does not exist; skipping startup sync", self.notes_dir)
            return None
        return self.ensure_up_to_date()

    def start_periodic_sync(self, interval: float | None = None) -> None:
        """Resync every ``interval`` seconds on a daemon timer until stopped."""
        self.stop_periodic_sync()
        self._sync_interval = interval if interval is not None else self.config.sync_interval
        self._schedule()

    def stop_periodic_sync(self) -> None:
        with self._lock:
            self._sync_interval = None
            timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    @property
    def periodic_sync_running(self) -> bool:
        return self._sync_interval is not None

    def _schedule(self) -> None:
        with self._lock:
            if self._sync_interval is None:
                return
            timer = threading.Timer(self._sync_interval, self._periodic_tick)
            timer.daemon = True
            self._timer = timer
            timer.start()

    def _periodic_tick(self) -> None:
        try:
            self.ensure_up_to_date()
        except NoteIndexError as exc:
            LOGGER.warning("Periodic sync failed: %s", exc.message)
        finally:
            self._schedule()

    # Queries -------------------------------------------------------------

    def list_all(self) -> List[Tuple[str, Entry]]:
        with self._lock:
            return self.query.candidates()

    def find_document(self, title: str) -> Optional[Location]:
        with self._lock:
            return self.query.find_by_title(title)

    def resolve_identifier(self, identifier: str) -> Optional[Path]:
        with self._lock:
            return self.query.resolve_identifier(identifier)

    # Documents -----------------------------------------------------------

    def _unused_path(self, filename: str) -> Path:
        candidate = self.notes_dir / filename
        stem, suffix = candidate.stem, candidate.suffix
        for attempt in range(2, MAX_NAME_ATTEMPTS + 2):
            if not candidate.exists():
                return candidate
            candidate = self.notes_dir / f"{stem}-{attempt}{suffix}"
        raise DocumentExistsError(f"No free filename for {filename}", path=self.notes_dir / filename)

    def create_document(
        self,
        title: str,
        body: Optional[str] = None,
        *,
        tags: Sequence[str] = (),
    ) -> Entry:
        """Write a new document for ``title`` and register it in the index."""
        title = title.strip()
        if not title:
            raise ValueError("A document needs a non-empty title")

        with self._lock:
            identifier = self.id_factory()
            filename = document_filename(
                title, timestamp=self.clock(), extension=self.config.extensions[0]
            )
            path = self._unused_path(filename)
            atomic_write_text(path, render_document(identifier, title, body, tags))
            LOGGER.info("Created %s", path)
            self.indexer.index_file(path)
            for failure in self.indexer.last_failures:
                LOGGER.warning("%s was created but not indexed: %s", failure.path, failure.reason)
            return Entry(identifier=identifier, title=title, file_path=path.resolve())

    def link_or_create(self, title: str) -> LinkTarget:
        """Identifier to link ``title`` to, creating a document if none has that title."""
        title = title.strip()
        with self._lock:
            self.indexer.ensure_up_to_date()
            existing = self.backend.find_by_title(title)
            if existing:
                return LinkTarget(existing[0].identifier, title, False)
            entry = self.create_document(title)
            return LinkTarget(entry.identifier, title, True)

    def insert_link(self, title: str) -> str:
        """Org link text for ``title``; the caller inserts it at point."""
        target = self.link_or_create(title)
        return format_link(target.identifier, target.title)
