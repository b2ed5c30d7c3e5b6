"""Core orgfinder data models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional


@dataclass(slots=True)
class Entry:
    """One addressable location (whole file or heading) inside a document."""

    identifier: str
    title: str
    file_path: Path
    modification_time: float = 0.0
    tags: Optional[str] = None
    heading_depth: int = 0
    char_offset: int = 1
    is_file_entry: bool = True

    def with_file_state(
        self,
        modification_time: float,
        tags: Optional[str],
        *,
        file_path: Optional[Path] = None,
    ) -> "Entry":
        """Return a copy carrying the owning file's mtime and tags."""
        return replace(
            self,
            file_path=file_path if file_path is not None else self.file_path,
            modification_time=modification_time,
            tags=tags,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "title": self.title,
            "file_path": str(self.file_path),
            "modification_time": self.modification_time,
            "tags": self.tags,
            "heading_depth": self.heading_depth,
            "char_offset": self.char_offset,
            "is_file_entry": self.is_file_entry,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Entry":
        return cls(
            identifier=str(data["identifier"]),
            title=str(data["title"]),
            file_path=Path(data["file_path"]),
            modification_time=float(data.get("modification_time", 0.0)),
            tags=data.get("tags"),
            heading_depth=int(data.get("heading_depth", 0)),
            char_offset=int(data.get("char_offset", 1)),
            is_file_entry=bool(data.get("is_file_entry", True)),
        )


@dataclass(slots=True)
class ParsedDocument:
    """Everything the parser extracted from one document."""

    file_path: Path
    title: Optional[str] = None
    identifier: Optional[str] = None
    tags: Optional[str] = None
    entries: List[Entry] = field(default_factory=list)


@dataclass(slots=True)
class FileRecord:
    """Per-file value held by the in-memory backend."""

    entries: List[Entry]
    modification_time: float
    tags: Optional[str] = None


@dataclass(slots=True)
class Location:
    """Navigation target for a resolved title."""

    file_path: Path
    char_offset: int
    is_file_entry: bool

    @property
    def jump_offset(self) -> Optional[int]:
        # File-level entries open at the top of the file.
        if self.is_file_entry:
            return None
        return self.char_offset


class SyncResult(NamedTuple):
    updated: int = 0
    removed: int = 0
