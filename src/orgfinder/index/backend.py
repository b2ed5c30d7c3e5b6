"""Storage contract shared by the sqlite and in-memory note stores."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Set, Tuple

from orgfinder.errors import WriteRejected
from orgfinder.models import Entry

LOGGER = logging.getLogger(__name__)


class NoteBackend(ABC):
    """Catalog of entries keyed by identifier and grouped by file."""

    @abstractmethod
    def write(
        self,
        file_path: Path,
        entries: Sequence[Entry],
        modification_time: float,
        tags: Optional[str],
    ) -> None:
        """Atomically replace every entry of ``file_path`` with ``entries``.

        Identifiers held by other files move to ``file_path``; those files keep
        their recorded mtime. Empty ``entries`` removes the file.
        """

    @abstractmethod
    def remove(self, file_path: Path) -> None:
        """Delete every entry of ``file_path``."""

    @abstractmethod
    def list_all(self) -> List[Tuple[str, Entry]]:
        """All entries as (title, entry) pairs, ordered by title."""

    @abstractmethod
    def get_by_identifier(self, identifier: str) -> Optional[Tuple[str, Path]]:
        """(title, file_path) for ``identifier``, or None."""

    @abstractmethod
    def get_modification_time(self, file_path: Path) -> Optional[float]:
        """Recorded mtime for ``file_path``, or None if it is not indexed."""

    @abstractmethod
    def find_by_title(self, title: str) -> List[Entry]:
        """Entries whose title is exactly ``title``."""

    @abstractmethod
    def files(self) -> Set[Path]:
        """Every file path with a recorded mtime."""

    @abstractmethod
    def is_empty(self) -> bool: ...

    @abstractmethod
    def writability_check(self) -> bool:
        """Probe whether writes would currently succeed. Never raises."""

    @abstractmethod
    def destroy(self) -> None:
        """Discard all persisted state, leaving an empty, usable backend."""

    def ensure_writable(self) -> None:
        """Probe for writability, reconnecting once if the probe fails.

        Raises:
            WriteRejected: the store still refuses writes after reconnecting.
        """
        if self.writability_check():
            return
        LOGGER.warning("%s is not writable; reconnecting", type(self).__name__)
        try:
            self.reconnect()
        except Exception as exc:
            raise WriteRejected(f"Reconnecting {type(self).__name__} failed: {exc}") from exc
        if not self.writability_check():
            raise WriteRejected(f"{type(self).__name__} is not writable after reconnecting")

    def reconnect(self) -> None:
        """Reopen underlying resources. Stores without any have nothing to do."""

    def close(self) -> None:
        """Release underlying resources."""

    @contextmanager
    def batch(self) -> Iterator["NoteBackend"]:
        """Group several mutations; stores may defer persistence until exit."""
        yield self

    def __enter__(self) -> "NoteBackend":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
