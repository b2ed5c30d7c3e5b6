"""SQLite note store."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Set, Tuple, Type, TypeVar

from orgfinder.errors import BackendUnavailable, NoteIndexError, StaleConnection, WriteRejected
from orgfinder.index.backend import NoteBackend
from orgfinder.index.migration import COLUMNS, FILES_TABLE, TABLE, ensure_schema
from orgfinder.models import Entry

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_INSERT_SQL = (
    f"INSERT OR REPLACE INTO {TABLE}({', '.join(COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in COLUMNS)})"
)


def _row_to_entry(row: sqlite3.Row) -> Entry:
    return Entry(
        identifier=row["identifier"],
        title=row["title"],
        file_path=Path(row["file_path"]),
        modification_time=float(row["modification_time"]),
        tags=row["tags"],
        heading_depth=int(row["heading_depth"]),
        char_offset=int(row["char_offset"]),
        is_file_entry=bool(row["is_file_entry"]),
    )


class SQLiteNoteStore(NoteBackend):
    """Persistent entry catalog backed by sqlite."""

    def __init__(self, db_path: Path, *, timeout: float = 5.0) -> None:
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._conn = self._connect()

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly so schema
        # changes and multi-row writes share one BEGIN/COMMIT.
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        ensure_schema(conn)
        return conn

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def reconnect(self) -> None:
        LOGGER.info("Reconnecting to %s", self.db_path)
        try:
            self._conn.close()
        except sqlite3.Error as exc:
            LOGGER.debug("Ignoring error while closing stale connection: %s", exc)
        self._conn = self._connect()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        self._conn.execute("BEGIN")
        try:
            yield self._conn
            self._conn.execute("COMMIT")
        except Exception:
            self._conn.rollback()
            raise

    def _retrying(
        self,
        description: str,
        operation: Callable[[], T],
        error_cls: Type[NoteIndexError],
    ) -> T:
        """Run ``operation``; on a sqlite error try exactly once more.

        The connection is reopened first unless the write probe shows it is
        still usable.
        """
        try:
            return operation()
        except sqlite3.Error as exc:
            stale = StaleConnection(f"{description} failed: {exc}", path=self.db_path)
            LOGGER.warning("%s; retrying once", stale.message)

        try:
            if not self.writability_check():
                self.reconnect()
            return operation()
        except sqlite3.Error as exc:
            raise error_cls(f"{description} failed after reconnecting: {exc}", path=self.db_path) from exc

    def _warn_moved_identifiers(self, conn: sqlite3.Connection, path: str, entries: Sequence[Entry]) -> None:
        for entry in entries:
            row = conn.execute(
                f"SELECT file_path FROM {TABLE} WHERE identifier = ? AND file_path != ?",
                (entry.identifier, path),
            ).fetchone()
            if row is not None:
                LOGGER.warning(
                    "Identifier %s moves from %s to %s; keeping the newer location",
                    entry.identifier,
                    row["file_path"],
                    path,
                )

    def write(
        self,
        file_path: Path,
        entries: Sequence[Entry],
        modification_time: float,
        tags: Optional[str],
    ) -> None:
        path = str(file_path)
        rows = [
            (
                entry.identifier,
                entry.title,
                path,
                modification_time,
                tags,
                entry.heading_depth,
                entry.char_offset,
                int(entry.is_file_entry),
            )
            for entry in entries
        ]

        if not rows:
            self.remove(file_path)
            return

        def operation() -> None:
            with self.transaction() as conn:
                self._warn_moved_identifiers(conn, path, entries)
                conn.execute(f"DELETE FROM {TABLE} WHERE file_path = ?", (path,))
                # Rows of other files holding these identifiers are replaced;
                # those files keep their FILES_TABLE row.
                conn.executemany(_INSERT_SQL, rows)
                conn.execute(
                    f"INSERT OR REPLACE INTO {FILES_TABLE}(file_path, modification_time) VALUES (?, ?)",
                    (path, modification_time),
                )

        self._retrying(f"Writing entries for {path}", operation, WriteRejected)

    def remove(self, file_path: Path) -> None:
        path = str(file_path)

        def operation() -> None:
            with self.transaction() as conn:
                conn.execute(f"DELETE FROM {TABLE} WHERE file_path = ?", (path,))
                conn.execute(f"DELETE FROM {FILES_TABLE} WHERE file_path = ?", (path,))

        self._retrying(f"Removing entries for {path}", operation, WriteRejected)

    def list_all(self) -> List[Tuple[str, Entry]]:
        def operation() -> List[Tuple[str, Entry]]:
            rows = self._conn.execute(
                f"SELECT * FROM {TABLE} ORDER BY title, file_path, char_offset"
            ).fetchall()
            return [(row["title"], _row_to_entry(row)) for row in rows]

        return self._retrying("Listing entries", operation, BackendUnavailable)

    def get_by_identifier(self, identifier: str) -> Optional[Tuple[str, Path]]:
        def operation() -> Optional[Tuple[str, Path]]:
            row = self._conn.execute(
                f"SELECT title, file_path FROM {TABLE} WHERE identifier = ?", (identifier,)
            ).fetchone()
            return (row["title"], Path(row["file_path"])) if row else None

        return self._retrying(f"Resolving {identifier}", operation, BackendUnavailable)

    def get_modification_time(self, file_path: Path) -> Optional[float]:
        def operation() -> Optional[float]:
            row = self._conn.execute(
                f"SELECT modification_time FROM {FILES_TABLE} WHERE file_path = ?",
                (str(file_path),),
            ).fetchone()
            return float(row["modification_time"]) if row else None

        return self._retrying(f"Reading mtime of {file_path}", operation, BackendUnavailable)

    def find_by_title(self, title: str) -> List[Entry]:
        def operation() -> List[Entry]:
            rows = self._conn.execute(
                f"""
                SELECT * FROM {TABLE} WHERE title = ?
                ORDER BY is_file_entry DESC, file_path, char_offset
                """,
                (title,),
            ).fetchall()
            return [_row_to_entry(row) for row in rows]

        return self._retrying(f"Looking up title {title!r}", operation, BackendUnavailable)

    def files(self) -> Set[Path]:
        def operation() -> Set[Path]:
            rows = self._conn.execute(f"SELECT file_path FROM {FILES_TABLE}").fetchall()
            return {Path(row["file_path"]) for row in rows}

        return self._retrying("Listing indexed files", operation, BackendUnavailable)

    def is_empty(self) -> bool:
        def operation() -> bool:
            return self._conn.execute(f"SELECT 1 FROM {TABLE} LIMIT 1").fetchone() is None

        return self._retrying("Counting entries", operation, BackendUnavailable)

    def writability_check(self) -> bool:
        try:
            with self.transaction() as conn:
                conn.execute("CREATE TABLE IF NOT EXISTS _write_probe (value INTEGER)")
                conn.execute("INSERT INTO _write_probe(value) VALUES (1)")
                conn.execute("DELETE FROM _write_probe")
                conn.execute("DROP TABLE _write_probe")
        except sqlite3.Error as exc:
            LOGGER.debug("Write probe on %s failed: %s", self.db_path, exc)
            return False
        return True

    def destroy(self) -> None:
        def operation() -> None:
            with self.transaction() as conn:
                conn.execute(f"DROP TABLE IF EXISTS {TABLE}")
                conn.execute(f"DROP TABLE IF EXISTS {FILES_TABLE}")
            ensure_schema(self._conn)

        self._retrying(f"Dropping {TABLE}", operation, WriteRejected)
