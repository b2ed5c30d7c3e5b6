"""Keeps the note index in step with the notes directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from orgfinder.errors import WriteRejected
from orgfinder.index.backend import NoteBackend
from orgfinder.ingestion.org_parser import DEFAULT_PREFIX_CHARS, parse_file
from orgfinder.models import SyncResult
from orgfinder.utils.files import iter_document_paths, modification_time

LOGGER = logging.getLogger(__name__)


def find_documents(notes_dir: Path, extensions: Iterable[str] = (".org",)) -> list[Path]:
    """Find all documents under the notes directory."""
    if not Path(notes_dir).is_dir():
        return []
    return list(iter_document_paths([notes_dir], extensions))


@dataclass(slots=True)
class SyncFailure:
    path: Path
    reason: str


@dataclass(slots=True)
class IndexStats:
    updated: int = 0
    removed: int = 0
    skipped: int = 0
    failures: List[SyncFailure] = field(default_factory=list)

    def fail(self, path: Path, reason: str) -> None:
        LOGGER.warning("Skipping %s: %s", path, reason)
        self.failures.append(SyncFailure(path, reason))

    def result(self) -> SyncResult:
        return SyncResult(self.updated, self.removed)


class Indexer:
    """Coordinates parsing documents and writing them to a backend."""

    def __init__(
        self,
        backend: NoteBackend,
        notes_dir: Path,
        *,
        extensions: Sequence[str] = (".org",),
        prefix_chars: int = DEFAULT_PREFIX_CHARS,
    ) -> None:
        self.backend = backend
        self.notes_dir = Path(notes_dir)
        self.extensions = tuple(extensions)
        self.prefix_chars = prefix_chars
        self.last_stats = IndexStats()

    @property
    def last_failures(self) -> List[SyncFailure]:
        return self.last_stats.failures

    def _index_single(self, path: Path, mtime: float, stats: IndexStats, *, known: bool) -> None:
        """Parse one changed file and write (or drop) its entries."""
        try:
            document = parse_file(path, prefix_chars=self.prefix_chars)
        except OSError as exc:
            stats.fail(path, f"unreadable ({exc})")
            return

        try:
            if document.entries:
                self.backend.write(path, document.entries, mtime, document.tags)
                stats.updated += 1
            elif known:
                # Lost its title or identifier since the last scan.
                self.backend.remove(path)
                stats.updated += 1
            else:
                LOGGER.debug("No title and identifier in %s", path)
                stats.skipped += 1
        except WriteRejected as exc:
            stats.fail(path, exc.message)

    def scan_for_changes(self) -> SyncResult:
        """Re-index documents whose mtime changed and drop vanished ones."""
        stats = IndexStats()
        self.backend.ensure_writable()
        with self.backend.batch():
            for path in find_documents(self.notes_dir, self.extensions):
                mtime = modification_time(path)
                if mtime is None:
                    continue
                recorded = self.backend.get_modification_time(path)
                if recorded is not None and recorded == mtime:
                    continue
                LOGGER.debug("Changed: %s", path)
                self._index_single(path, mtime, stats, known=recorded is not None)

            for path in sorted(self.backend.files()):
                if path.exists():
                    continue
                try:
                    self.backend.remove(path)
                except WriteRejected as exc:
                    stats.fail(path, exc.message)
                    continue
                LOGGER.debug("Removed: %s", path)
                stats.removed += 1

        self.last_stats = stats
        if stats.updated or stats.removed:
            LOGGER.info("Index updated: %d changed, %d removed", stats.updated, stats.removed)
        return stats.result()

    def populate(self) -> SyncResult:
        """Index every document from scratch, skipping ones without entries."""
        stats = IndexStats()
        self.backend.ensure_writable()
        with self.backend.batch():
            for path in find_documents(self.notes_dir, self.extensions):
                mtime = modification_time(path)
                if mtime is None:
                    continue
                self._index_single(path, mtime, stats, known=False)

        self.last_stats = stats
        LOGGER.info("Indexed %d documents from %s", stats.updated, self.notes_dir)
        return stats.result()

    def ensure_up_to_date(self) -> SyncResult:
        if self.backend.is_empty():
            return self.populate()
        return self.scan_for_changes()

    def rebuild(self) -> SyncResult:
        """Throw the index away and repopulate it from the notes directory."""
        LOGGER.info("Rebuilding index for %s", self.notes_dir)
        self.backend.destroy()
        return self.populate()

    def index_file(self, path: Path) -> Optional[SyncResult]:
        """Re-index a single document right away, e.g. after saving it."""
        path = Path(path).resolve()
        mtime = modification_time(path)
        if mtime is None:
            return None
        stats = IndexStats()
        self._index_single(path, mtime, stats, known=self.backend.get_modification_time(path) is not None)
        self.last_stats = stats
        return stats.result()
