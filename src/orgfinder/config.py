"""Application configuration defaults."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

BACKENDS = ("sqlite", "memory")
DB_FILENAME = ".orgfinder.db"
SNAPSHOT_FILENAME = ".orgfinder-index.json"


def _get_default_notes_dir() -> Path:
    """Get the default notes directory."""
    # When running from a checkout, prefer a local notes/ directory if it exists
    local_dir = Path("notes")
    if local_dir.is_dir():
        return local_dir

    return Path.home() / "org"


@dataclass(slots=True)
class AppConfig:
    notes_dir: Path | None = None
    db_path: Path | None = None
    snapshot_path: Path | None = None
    backend: str = "sqlite"
    extensions: Tuple[str, ...] = (".org",)
    metadata_prefix_chars: int = 4096
    sync_interval: float = 300.0

    def __post_init__(self) -> None:
        if self.notes_dir is None:
            self.notes_dir = _get_default_notes_dir()
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown backend {self.backend!r}, expected one of {BACKENDS}")
        if self.metadata_prefix_chars <= 0:
            raise ValueError("metadata_prefix_chars must be positive")
        self.extensions = tuple(ext.lower() for ext in self.extensions)

    def resolve_notes_dir(self, base_dir: Path | None = None) -> Path:
        notes_dir = Path(self.notes_dir).expanduser()
        if notes_dir.is_absolute() or base_dir is None:
            return notes_dir
        return base_dir / notes_dir

    def resolve_db_path(self, base_dir: Path | None = None) -> Path:
        if self.db_path is None:
            return self.resolve_notes_dir(base_dir) / DB_FILENAME
        if Path(self.db_path).is_absolute() or base_dir is None:
            return Path(self.db_path)
        return base_dir / self.db_path

    def resolve_snapshot_path(self, base_dir: Path | None = None) -> Path:
        if self.snapshot_path is None:
            return self.resolve_notes_dir(base_dir) / SNAPSHOT_FILENAME
        if Path(self.snapshot_path).is_absolute() or base_dir is None:
            return Path(self.snapshot_path)
        return base_dir / self.snapshot_path
