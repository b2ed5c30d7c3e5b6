"""Read-side lookups used by editor-facing commands."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Tuple

from orgfinder.index.backend import NoteBackend
from orgfinder.index.indexer import Indexer
from orgfinder.models import Entry, Location


class NoteQuery:
    """High-level API to query the note index."""

    def __init__(self, indexer: Indexer) -> None:
        self.indexer = indexer

    @property
    def backend(self) -> NoteBackend:
        return self.indexer.backend

    def candidates(self) -> List[Tuple[str, Entry]]:
        """Fresh (title, entry) rows for interactive selection.

        One title can map to several entries, e.g. a file and one of its
        headings sharing a name.
        """
        self.indexer.ensure_up_to_date()
        return self.backend.list_all()

    def by_title(self) -> Dict[str, List[Entry]]:
        grouped: Dict[str, List[Entry]] = {}
        for title, entry in self.candidates():
            grouped.setdefault(title, []).append(entry)
        return grouped

    def find_by_title(self, title: str) -> Optional[Location]:
        matches = [entry for candidate, entry in self.candidates() if candidate == title]
        if not matches:
            return None
        # Prefer the whole file over a heading with the same title.
        entry = next((match for match in matches if match.is_file_entry), matches[0])
        return Location(entry.file_path, entry.char_offset, entry.is_file_entry)

    def resolve_identifier(self, identifier: str) -> Optional[Path]:
        found = self.backend.get_by_identifier(identifier)
        return found[1] if found else None
