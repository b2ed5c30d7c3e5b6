"""In-memory note store persisted to a JSON snapshot."""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from orgfinder.errors import SnapshotCorrupt, WriteRejected
from orgfinder.index.backend import NoteBackend
from orgfinder.models import Entry, FileRecord
from orgfinder.utils.files import atomic_write_text

LOGGER = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

Records = Dict[str, FileRecord]


def _encode(records: Records) -> Dict[str, Any]:
    return {
        "version": SNAPSHOT_VERSION,
        "files": {
            path: {
                "entries": [entry.to_dict() for entry in record.entries],
                "modification_time": record.modification_time,
                "tags": record.tags,
            }
            for path, record in records.items()
        },
    }


def _decode(payload: Dict[str, Any]) -> Records:
    version = payload.get("version")
    if version != SNAPSHOT_VERSION:
        raise ValueError(f"unsupported snapshot version {version!r}")
    records: Records = {}
    for path, data in payload["files"].items():
        records[path] = FileRecord(
            entries=[Entry.from_dict(item) for item in data["entries"]],
            modification_time=float(data["modification_time"]),
            tags=data.get("tags"),
        )
    return records


class MemoryNoteStore(NoteBackend):
    """Entries held in a file_path -> FileRecord mapping.

    The mapping is loaded from ``snapshot_path`` on first use and written back
    after every mutation, or once at the end of a ``batch()``. Without a
    snapshot path the store lives only as long as the process.
    """

    def __init__(self, snapshot_path: Optional[Path] = None) -> None:
        self.snapshot_path = Path(snapshot_path) if snapshot_path is not None else None
        self._records: Optional[Records] = None
        self._batch_depth = 0
        self._dirty = False

    @property
    def records(self) -> Records:
        if self._records is None:
            self._records = self._load()
        return self._records

    def _load(self) -> Records:
        if self.snapshot_path is None or not self.snapshot_path.exists():
            return {}
        try:
            payload = json.loads(self.snapshot_path.read_text(encoding="utf-8"))
            records = _decode(payload)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            error = SnapshotCorrupt(
                f"Snapshot {self.snapshot_path} is unreadable ({exc}); starting empty",
                path=self.snapshot_path,
            )
            LOGGER.warning("%s", error.message)
            return {}
        LOGGER.debug("Loaded %d files from %s", len(records), self.snapshot_path)
        return records

    def _save(self, records: Records) -> None:
        if self.snapshot_path is None:
            return
        try:
            atomic_write_text(self.snapshot_path, json.dumps(_encode(records), ensure_ascii=False))
        except OSError as exc:
            raise WriteRejected(
                f"Could not write snapshot {self.snapshot_path}: {exc}", path=self.snapshot_path
            ) from exc

    def _apply(self, mutate: Callable[[Records], None]) -> None:
        if self._batch_depth:
            mutate(self.records)
            self._dirty = True
            return
        # Outside a batch, persist first so a failed save leaves memory untouched.
        updated = dict(self.records)
        mutate(updated)
        self._save(updated)
        self._records = updated

    @contextmanager
    def batch(self) -> Iterator["MemoryNoteStore"]:
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._dirty:
                self._dirty = False
                self._save(self.records)

    def write(
        self,
        file_path: Path,
        entries: Sequence[Entry],
        modification_time: float,
        tags: Optional[str],
    ) -> None:
        if not entries:
            self.remove(file_path)
            return

        key = str(file_path)
        unique: Dict[str, Entry] = {}
        for entry in entries:
            unique[entry.identifier] = entry.with_file_state(modification_time, tags, file_path=Path(key))
        record = FileRecord(list(unique.values()), modification_time, tags)

        def mutate(records: Records) -> None:
            for other, existing in list(records.items()):
                if other == key:
                    continue
                kept = [entry for entry in existing.entries if entry.identifier not in unique]
                if len(kept) == len(existing.entries):
                    continue
                for moved in set(unique) - {entry.identifier for entry in kept}:
                    LOGGER.warning(
                        "Identifier %s moves from %s to %s; keeping the newer location",
                        moved,
                        other,
                        key,
                    )
                # An emptied record keeps its mtime so the file is not re-read.
                records[other] = FileRecord(kept, existing.modification_time, existing.tags)
            records[key] = record

        self._apply(mutate)

    def remove(self, file_path: Path) -> None:
        key = str(file_path)
        if key not in self.records:
            return
        self._apply(lambda records: records.pop(key, None))

    def _iter_entries(self) -> Iterator[Entry]:
        for record in self.records.values():
            yield from record.entries

    def list_all(self) -> List[Tuple[str, Entry]]:
        entries = sorted(
            self._iter_entries(),
            key=lambda entry: (entry.title, str(entry.file_path), entry.char_offset),
        )
        return [(entry.title, entry) for entry in entries]

    def get_by_identifier(self, identifier: str) -> Optional[Tuple[str, Path]]:
        for entry in self._iter_entries():
            if entry.identifier == identifier:
                return entry.title, entry.file_path
        return None

    def get_modification_time(self, file_path: Path) -> Optional[float]:
        record = self.records.get(str(file_path))
        return record.modification_time if record else None

    def find_by_title(self, title: str) -> List[Entry]:
        matches = [entry for entry in self._iter_entries() if entry.title == title]
        return sorted(
            matches,
            key=lambda entry: (not entry.is_file_entry, str(entry.file_path), entry.char_offset),
        )

    def files(self) -> Set[Path]:
        return {Path(path) for path in self.records}

    def is_empty(self) -> bool:
        return not any(record.entries for record in self.records.values())

    def writability_check(self) -> bool:
        if self.snapshot_path is None:
            return True
        directory = self.snapshot_path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.debug("Cannot create %s: %s", directory, exc)
            return False
        return os.access(directory, os.W_OK)

    def destroy(self) -> None:
        self._records = {}
        self._dirty = False
        if self.snapshot_path is not None:
            try:
                self.snapshot_path.unlink(missing_ok=True)
            except OSError as exc:
                raise WriteRejected(
                    f"Could not delete snapshot {self.snapshot_path}: {exc}", path=self.snapshot_path
                ) from exc

    def reconnect(self) -> None:
        # Re-read the snapshot on next use; there is nothing to reopen otherwise.
        if self.snapshot_path is not None and not self._dirty:
            self._records = None

    def close(self) -> None:
        if self._dirty:
            self._dirty = False
            self._save(self.records)
