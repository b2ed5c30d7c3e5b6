"""Schema creation and migration for the sqlite note store.

Version 1 stored one row per file (``file_path`` was UNIQUE). Version 2 adds
``heading_depth``, ``char_offset`` and ``is_file_entry`` so a file can own a
file-level row plus one row per identified heading, which means the UNIQUE
constraint has to go. SQLite cannot drop a constraint in place, so the table
is rebuilt and swapped inside a single transaction.

Version 3 adds the ``files`` table, which records a file's mtime even after
another file has taken all of its identifiers.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Dict, Tuple

from orgfinder.errors import MigrationError, SchemaMismatch

LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = 3
TABLE = "entries"

COLUMNS: Tuple[str, ...] = (
    "identifier",
    "title",
    "file_path",
    "modification_time",
    "tags",
    "heading_depth",
    "char_offset",
    "is_file_entry",
)

# Columns introduced by version 2, with the defaults used to backfill rows
# written by version 1 (which were always whole-file entries).
ADDED_COLUMNS: Dict[str, str] = {
    "heading_depth": "INTEGER NOT NULL DEFAULT 0",
    "char_offset": "INTEGER NOT NULL DEFAULT 1",
    "is_file_entry": "INTEGER NOT NULL DEFAULT 1",
}

INDEXES: Dict[str, str] = {
    "idx_entries_title": "title",
    "idx_entries_modification_time": "modification_time",
    "idx_entries_tags": "tags",
    "idx_entries_file_path": "file_path",
    "idx_entries_is_file_entry": "is_file_entry",
}

TABLE_SQL = """
    CREATE TABLE {name} (
        identifier TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        file_path TEXT NOT NULL,
        modification_time REAL NOT NULL,
        tags TEXT,
        heading_depth INTEGER NOT NULL DEFAULT 0,
        char_offset INTEGER NOT NULL DEFAULT 1,
        is_file_entry INTEGER NOT NULL DEFAULT 1
    )
"""

FILES_TABLE = "files"

FILES_TABLE_SQL = f"""
    CREATE TABLE IF NOT EXISTS {FILES_TABLE} (
        file_path TEXT PRIMARY KEY,
        modification_time REAL NOT NULL
    )
"""


def table_exists(conn: sqlite3.Connection, name: str = TABLE) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone()
    return row is not None


def schema_version(conn: sqlite3.Connection) -> int:
    return int(conn.execute("PRAGMA user_version").fetchone()[0])


def probe(conn: sqlite3.Connection) -> None:
    """Raise SchemaMismatch unless the table has the current column set."""
    try:
        conn.execute(
            f"SELECT heading_depth, char_offset, is_file_entry FROM {TABLE} LIMIT 1"
        ).fetchall()
    except sqlite3.OperationalError as exc:
        raise SchemaMismatch(f"{TABLE} table predates schema version {SCHEMA_VERSION}: {exc}") from exc


def create_indexes(conn: sqlite3.Connection) -> None:
    for name, column in INDEXES.items():
        conn.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {TABLE}({column})")


def create_files_table(conn: sqlite3.Connection) -> None:
    """Create ``files`` and fill it from the mtimes already held in ``entries``."""
    conn.execute(FILES_TABLE_SQL)
    conn.execute(
        f"""
        INSERT OR IGNORE INTO {FILES_TABLE}(file_path, modification_time)
        SELECT file_path, MAX(modification_time) FROM {TABLE} GROUP BY file_path
        """
    )


def create_schema(conn: sqlite3.Connection) -> None:
    conn.execute("BEGIN")
    try:
        conn.execute(TABLE_SQL.format(name=TABLE))
        create_files_table(conn)
        create_indexes(conn)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        conn.execute("COMMIT")
    except sqlite3.Error:
        conn.rollback()
        raise


def migrate(conn: sqlite3.Connection) -> None:
    """Bring a version 1 table up to the current shape without losing rows."""
    columns = ", ".join(COLUMNS)
    conn.execute("BEGIN")
    try:
        existing = {row[1] for row in conn.execute(f"PRAGMA table_info({TABLE})")}
        for name, ddl in ADDED_COLUMNS.items():
            if name not in existing:
                LOGGER.debug("Adding column %s to %s", name, TABLE)
                conn.execute(f"ALTER TABLE {TABLE} ADD COLUMN {name} {ddl}")
        conn.execute(
            f"""
            UPDATE {TABLE}
            SET heading_depth = COALESCE(heading_depth, 0),
                char_offset = COALESCE(char_offset, 1),
                is_file_entry = COALESCE(is_file_entry, 1)
            """
        )

        # Rebuild without the old UNIQUE(file_path) constraint.
        conn.execute(f"DROP TABLE IF EXISTS {TABLE}_new")
        conn.execute(TABLE_SQL.format(name=f"{TABLE}_new"))
        conn.execute(f"INSERT INTO {TABLE}_new ({columns}) SELECT {columns} FROM {TABLE}")
        conn.execute(f"DROP TABLE {TABLE}")
        conn.execute(f"ALTER TABLE {TABLE}_new RENAME TO {TABLE}")
        create_files_table(conn)
        create_indexes(conn)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        conn.execute("COMMIT")
    except sqlite3.Error as exc:
        conn.rollback()
        raise MigrationError(f"Could not migrate {TABLE} table: {exc}") from exc


def ensure_schema(conn: sqlite3.Connection) -> bool:
    """Create or migrate the schema. Returns True if a migration ran."""
    if not table_exists(conn):
        create_schema(conn)
        return False

    try:
        probe(conn)
    except SchemaMismatch as exc:
        LOGGER.info("Migrating note index: %s", exc.message)
        migrate(conn)
        return True

    if not table_exists(conn, FILES_TABLE):
        LOGGER.info("Migrating note index: adding %s table", FILES_TABLE)
        add_files_table(conn)
        return True

    create_indexes(conn)
    return False


def add_files_table(conn: sqlite3.Connection) -> None:
    """Upgrade a version 2 database, whose entries table is already current."""
    conn.execute("BEGIN")
    try:
        create_files_table(conn)
        create_indexes(conn)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        conn.execute("COMMIT")
    except sqlite3.Error as exc:
        conn.rollback()
        raise MigrationError(f"Could not add {FILES_TABLE} table: {exc}") from exc
