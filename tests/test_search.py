"""Tests for NoteQuery."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from orgfinder.index.indexer import Indexer
from orgfinder.index.memory import MemoryNoteStore
from orgfinder.index.search import NoteQuery
from orgfinder.models import Entry, Location

FILE = Path("/notes/alpha.org")
OTHER = Path("/notes/other.org")


@pytest.fixture
def backend():
    store = MemoryNoteStore()
    store.write(
        FILE,
        [
            Entry(identifier="1111", title="Alpha", file_path=FILE),
            Entry(
                identifier="2222",
                title="Sub",
                file_path=FILE,
                heading_depth=1,
                char_offset=48,
                is_file_entry=False,
            ),
        ],
        1.0,
        None,
    )
    store.write(
        OTHER,
        [
            Entry(identifier="4444", title="Other", file_path=OTHER),
            Entry(
                identifier="5555",
                title="Alpha",
                file_path=OTHER,
                heading_depth=2,
                char_offset=90,
                is_file_entry=False,
            ),
        ],
        1.0,
        None,
    )
    return store


@pytest.fixture
def indexer(backend):
    """Indexer whose freshness check is observable."""
    indexer = Mock(spec=Indexer)
    indexer.backend = backend
    return indexer


@pytest.fixture
def query(indexer):
    return NoteQuery(indexer)


class TestCandidates:
    """Test listing titles for selection."""

    def test_refreshes_before_listing(self, query, indexer):
        rows = query.candidates()

        indexer.ensure_up_to_date.assert_called_once()
        assert [title for title, _ in rows] == ["Alpha", "Alpha", "Other", "Sub"]

    def test_by_title_groups_entries(self, query):
        grouped = query.by_title()

        assert sorted(entry.identifier for entry in grouped["Alpha"]) == ["1111", "5555"]
        assert [entry.identifier for entry in grouped["Sub"]] == ["2222"]


class TestFindByTitle:
    """Test resolving a title to a location."""

    def test_file_entry_opens_at_top(self, query):
        location = query.find_by_title("Alpha")

        assert location == Location(FILE, 1, True)
        assert location.jump_offset is None

    def test_heading_jumps_to_offset(self, query):
        location = query.find_by_title("Sub")

        assert location == Location(FILE, 48, False)
        assert location.jump_offset == 48

    def test_unknown_title(self, query):
        assert query.find_by_title("Missing") is None

    def test_refreshes_before_lookup(self, query, indexer):
        query.find_by_title("Alpha")

        indexer.ensure_up_to_date.assert_called_once()


class TestResolveIdentifier:
    """Test identifier resolution."""

    def test_known_identifier(self, query):
        assert query.resolve_identifier("5555") == OTHER

    def test_unknown_identifier(self, query):
        assert query.resolve_identifier("ffff") is None
