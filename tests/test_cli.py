"""Tests for CLI commands."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from orgfinder.cli import app, _setup_logging, _ensure_db_parent
from orgfinder.errors import WriteRejected


runner = CliRunner()

ALPHA = """:PROPERTIES:
:ID:       1111
:END:
#+title: Alpha

* Sub
:PROPERTIES:
:ID:       2222
:END:
"""


@pytest.fixture
def notes_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "notes"
    directory.mkdir()
    (directory / "alpha.org").write_text(ALPHA, encoding="utf-8")
    return directory


@pytest.fixture
def db_args(tmp_path: Path, notes_dir: Path) -> list:
    return ["--dir", str(notes_dir), "--db", str(tmp_path / "state" / "index.db")]


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("orgfinder.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("orgfinder.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.INFO


class TestEnsureDbParent:
    """Tests for _ensure_db_parent helper."""

    def test_ensure_db_parent_creates_directory(self, tmp_path: Path) -> None:
        """Creates parent directory if it doesn't exist."""
        db_path = tmp_path / "subdir" / "test.db"
        assert not db_path.parent.exists()
        _ensure_db_parent(db_path)
        assert db_path.parent.exists()

    def test_ensure_db_parent_existing_directory(self, tmp_path: Path) -> None:
        """Does not fail if directory already exists."""
        db_path = tmp_path / "test.db"
        _ensure_db_parent(db_path)
        assert db_path.parent.exists()


class TestSyncCommand:
    """Tests for the sync command."""

    def test_sync_indexes_notes(self, db_args: list, tmp_path: Path) -> None:
        """First sync indexes the document, the second finds nothing new."""
        result = runner.invoke(app, ["sync", *db_args])
        assert result.exit_code == 0
        assert "Updated: 1, removed: 0" in result.stdout
        assert (tmp_path / "state" / "index.db").exists()

        result = runner.invoke(app, ["sync", *db_args])
        assert result.exit_code == 0
        assert "Updated: 0, removed: 0" in result.stdout

    def test_sync_memory_backend(self, notes_dir: Path) -> None:
        """The memory backend keeps its snapshot in the notes directory."""
        result = runner.invoke(app, ["sync", "--dir", str(notes_dir), "--backend", "memory"])
        assert result.exit_code == 0
        assert "Updated: 1, removed: 0" in result.stdout
        assert (notes_dir / ".orgfinder-index.json").exists()

    def test_sync_missing_directory(self, tmp_path: Path) -> None:
        """Warns and creates nothing when the notes directory is missing."""
        missing = tmp_path / "missing"

        result = runner.invoke(app, ["sync", "--dir", str(missing)])

        assert result.exit_code == 0
        assert "not found" in result.stdout
        assert not missing.exists()

    def test_invalid_backend(self, notes_dir: Path) -> None:
        """Unknown backends are rejected."""
        result = runner.invoke(app, ["sync", "--dir", str(notes_dir), "--backend", "redis"])
        assert result.exit_code != 0

    def test_sync_verbose(self, db_args: list) -> None:
        """Verbose flag configures DEBUG logging."""
        with patch("orgfinder.cli._setup_logging") as mock_logging:
            result = runner.invoke(app, ["sync", *db_args, "--verbose"])
        assert result.exit_code == 0
        mock_logging.assert_called_once_with(True)


class TestListCommand:
    """Tests for the list command."""

    def test_list_entries(self, db_args: list) -> None:
        """Shows every indexed title."""
        result = runner.invoke(app, ["list", *db_args])
        assert result.exit_code == 0
        assert "Alpha" in result.stdout
        assert "Sub" in result.stdout

    def test_list_empty(self, tmp_path: Path) -> None:
        """Reports an empty index."""
        empty = tmp_path / "empty"
        empty.mkdir()

        result = runner.invoke(app, ["list", "--dir", str(empty)])

        assert result.exit_code == 0
        assert "No entries indexed" in result.stdout


class TestFindCommand:
    """Tests for the find command."""

    def test_find_file_entry(self, db_args: list, notes_dir: Path) -> None:
        """A file-level title prints just the path."""
        result = runner.invoke(app, ["find", "Alpha", *db_args])
        assert result.exit_code == 0
        assert str((notes_dir / "alpha.org").resolve()) in result.stdout.splitlines()

    def test_find_heading(self, db_args: list, notes_dir: Path) -> None:
        """A heading prints path and offset."""
        result = runner.invoke(app, ["find", "Sub", *db_args])
        assert result.exit_code == 0
        offset = ALPHA.index("* Sub") + 1
        assert f"{(notes_dir / 'alpha.org').resolve()}:{offset}" in result.stdout.splitlines()

    def test_find_unknown(self, db_args: list) -> None:
        """Unknown titles exit with an error code."""
        result = runner.invoke(app, ["find", "Missing", *db_args])
        assert result.exit_code == 1
        assert "No entry titled" in result.stdout


class TestResolveCommand:
    """Tests for the resolve command."""

    def test_resolve_known(self, db_args: list, notes_dir: Path) -> None:
        """Prints the file holding the identifier."""
        result = runner.invoke(app, ["resolve", "2222", *db_args])
        assert result.exit_code == 0
        assert str((notes_dir / "alpha.org").resolve()) in result.stdout.splitlines()

    def test_resolve_unknown(self, db_args: list) -> None:
        """Unknown identifiers exit with an error code."""
        result = runner.invoke(app, ["resolve", "ffff", *db_args])
        assert result.exit_code == 1
        assert "Unknown identifier" in result.stdout


class TestNewCommand:
    """Tests for the new command."""

    def test_new_creates_document(self, db_args: list, notes_dir: Path) -> None:
        """Creates a document that can be found right away."""
        result = runner.invoke(app, ["new", "Fresh Idea", "--tag", "draft", *db_args])
        assert result.exit_code == 0
        assert "Created" in result.stdout

        created = list(notes_dir.glob("*--fresh-idea.org"))
        assert len(created) == 1
        assert "#+filetags: :draft:" in created[0].read_text(encoding="utf-8")

        result = runner.invoke(app, ["find", "Fresh Idea", *db_args])
        assert result.exit_code == 0

    def test_new_rejects_blank_title(self, db_args: list) -> None:
        """Blank titles are a usage error."""
        result = runner.invoke(app, ["new", "  ", *db_args])
        assert result.exit_code != 0


class TestLinkCommand:
    """Tests for the link command."""

    def test_link_existing_title(self, db_args: list, notes_dir: Path) -> None:
        """Links to the existing identifier without creating a file."""
        result = runner.invoke(app, ["link", "Alpha", *db_args])
        assert result.exit_code == 0
        assert "[[id:1111][Alpha]]" in result.stdout.splitlines()
        assert [p.name for p in notes_dir.glob("*.org")] == ["alpha.org"]

    def test_link_new_title(self, db_args: list, notes_dir: Path) -> None:
        """Creates a document for a new title and links to it."""
        result = runner.invoke(app, ["link", "New Concept", *db_args])
        assert result.exit_code == 0
        links = [line for line in result.stdout.splitlines() if line.startswith("[[id:")]
        assert len(links) == 1
        assert links[0].endswith("][New Concept]]")
        assert len(list(notes_dir.glob("*--new-concept.org"))) == 1


class TestMaintenanceCommands:
    """Tests for rebuild, fix and watch."""

    def test_rebuild(self, db_args: list) -> None:
        """Rebuild reports the number of documents."""
        runner.invoke(app, ["sync", *db_args])

        result = runner.invoke(app, ["rebuild", *db_args])

        assert result.exit_code == 0
        assert "Rebuilt index with 1 documents" in result.stdout

    def test_fix(self, db_args: list) -> None:
        """Fix catches up with the notes directory."""
        result = runner.invoke(app, ["fix", *db_args])
        assert result.exit_code == 0
        assert "Updated: 1, removed: 0" in result.stdout

    def test_watch_stops_on_interrupt(self, db_args: list) -> None:
        """Watch syncs once and stops cleanly on Ctrl+C."""
        with patch("orgfinder.cli.time.sleep", side_effect=KeyboardInterrupt):
            result = runner.invoke(app, ["watch", "--interval", "3600", *db_args])

        assert result.exit_code == 0
        assert "Updated: 1, removed: 0" in result.stdout
        assert "Stopped." in result.stdout

    def test_watch_reports_failed_startup_sync(self, db_args: list) -> None:
        """A backend error during the first sync is a one-line failure."""
        with patch("orgfinder.cli.NoteIndex.startup_sync", side_effect=WriteRejected("index is read-only")):
            result = runner.invoke(app, ["watch", "--interval", "3600", *db_args])

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)
        assert "index is read-only" in result.stdout


class TestBracketsInOutput:
    """Titles, paths and messages are printed literally, never as markup."""

    @pytest.fixture
    def bracket_dir(self, tmp_path: Path) -> Path:
        directory = tmp_path / "[b]notes"
        directory.mkdir()
        (directory / "a.org").write_text(
            ":PROPERTIES:\n:ID:       abcd\n:END:\n#+title: Closing [/] tag\n", encoding="utf-8"
        )
        return directory

    @pytest.fixture
    def bracket_args(self, tmp_path: Path, bracket_dir: Path) -> list:
        return ["--dir", str(bracket_dir), "--db", str(tmp_path / "state" / "index.db")]

    def test_list_title_with_closing_tag(self, bracket_args: list) -> None:
        """A title containing [/] is listed instead of crashing."""
        result = runner.invoke(app, ["list", *bracket_args])
        assert result.exit_code == 0
        assert "[/]" in result.stdout

    def test_find_keeps_bracketed_path(self, bracket_args: list, bracket_dir: Path) -> None:
        """A directory named like a style tag survives in the output."""
        result = runner.invoke(app, ["find", "Closing [/] tag", *bracket_args])
        assert result.exit_code == 0
        assert str((bracket_dir / "a.org").resolve()) in result.stdout.splitlines()

    def test_resolve_keeps_bracketed_path(self, bracket_args: list, bracket_dir: Path) -> None:
        result = runner.invoke(app, ["resolve", "abcd", *bracket_args])
        assert result.exit_code == 0
        assert str((bracket_dir / "a.org").resolve()) in result.stdout.splitlines()

    def test_new_keeps_bracketed_path(self, bracket_args: list) -> None:
        result = runner.invoke(app, ["new", "Fresh", *bracket_args])
        assert result.exit_code == 0
        assert "[b]notes" in result.stdout

    def test_error_message_with_brackets(self, bracket_args: list) -> None:
        """Backend error text is shown verbatim."""
        error = WriteRejected("locked [/] by [b]other")
        with patch("orgfinder.cli.NoteIndex.ensure_up_to_date", side_effect=error):
            result = runner.invoke(app, ["sync", *bracket_args])

        assert result.exit_code == 1
        assert "locked [/] by [b]other" in result.stdout
