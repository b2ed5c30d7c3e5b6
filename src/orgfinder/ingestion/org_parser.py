"""Org document parsing.

Extracts the file-level entry (``#+title:`` plus the first ``:ID:``
property) and one entry per heading whose properties drawer carries an
``:ID:``. Title and tags are only looked for in the first
``prefix_chars`` characters; identifiers are looked for everywhere.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple

from orgfinder.errors import ParseSkip
from orgfinder.models import Entry, ParsedDocument
from orgfinder.utils.files import read_text
from orgfinder.utils.text import dedupe

LOGGER = logging.getLogger(__name__)

DEFAULT_PREFIX_CHARS = 4096

TITLE_RE = re.compile(r"^#\+title:(.*)$", re.MULTILINE)
TAGS_RE = re.compile(r"^#\+(?:tags|filetags):(.*)$", re.MULTILINE)
ID_RE = re.compile(r"^[ \t]*:ID:[ \t]+([0-9A-Fa-f-]+)[ \t]*\r?$", re.MULTILINE)
HEADING_RE = re.compile(r"^(\*+)[ \t]+(.*)$")
TAG_SPLIT_RE = re.compile(r"[,\s:]+")

PROPERTIES_START = ":PROPERTIES:"
PROPERTIES_END = ":END:"


def extract_title(prefix: str) -> Optional[str]:
    match = TITLE_RE.search(prefix)
    if match is None:
        return None
    title = match.group(1).strip()
    return title or None


def extract_identifier(text: str) -> Optional[str]:
    match = ID_RE.search(text)
    return match.group(1) if match else None


def extract_tags(prefix: str) -> Optional[str]:
    """Collect ``#+tags:``/``#+filetags:`` tokens, space-joined, or None."""
    tokens: List[str] = []
    for match in TAGS_RE.finditer(prefix):
        tokens.extend(TAG_SPLIT_RE.split(match.group(1).strip()))
    unique = dedupe(tokens)
    return " ".join(unique) if unique else None


def _iter_lines(text: str) -> Iterator[Tuple[int, str]]:
    """Yield (0-based start offset, line without newline) pairs."""
    offset = 0
    for line in text.split("\n"):
        yield offset, line.rstrip("\r")
        offset += len(line) + 1


def _drawer_identifier(lines: List[Tuple[int, str]], heading_index: int) -> Optional[str]:
    """Return the :ID: from the drawer right below ``lines[heading_index]``.

    Returns None when there is no drawer; raises ParseSkip when the drawer is
    opened but never closed before the next heading or the end of file.
    """
    start = heading_index + 1
    if start >= len(lines) or lines[start][1].strip().upper() != PROPERTIES_START:
        return None

    identifier = None
    for _, line in lines[start + 1 :]:
        stripped = line.strip()
        if stripped.upper() == PROPERTIES_END:
            return identifier
        if HEADING_RE.match(line):
            break
        if identifier is None:
            match = ID_RE.match(line)
            if match:
                identifier = match.group(1)
    raise ParseSkip(f"Unterminated properties drawer under {lines[heading_index][1]!r}")


def parse_text(
    text: str,
    file_path: Path,
    *,
    prefix_chars: int = DEFAULT_PREFIX_CHARS,
) -> ParsedDocument:
    """Parse one document's text into its entries, in document order."""
    file_path = Path(file_path)
    prefix = text[:prefix_chars]
    document = ParsedDocument(
        file_path=file_path,
        title=extract_title(prefix),
        identifier=extract_identifier(text),
        tags=extract_tags(prefix),
    )
    seen: Set[str] = set()

    if document.title and document.identifier:
        document.entries.append(
            Entry(
                identifier=document.identifier,
                title=document.title,
                file_path=file_path,
                tags=document.tags,
                heading_depth=0,
                char_offset=1,
                is_file_entry=True,
            )
        )
        seen.add(document.identifier)

    lines = list(_iter_lines(text))
    for index, (offset, line) in enumerate(lines):
        match = HEADING_RE.match(line)
        if match is None:
            continue
        title = match.group(2).strip()
        if not title:
            continue
        try:
            identifier = _drawer_identifier(lines, index)
        except ParseSkip as exc:
            LOGGER.debug("%s: %s", file_path, exc)
            continue
        if identifier is None or identifier in seen:
            continue
        seen.add(identifier)
        document.entries.append(
            Entry(
                identifier=identifier,
                title=title,
                file_path=file_path,
                tags=document.tags,
                heading_depth=len(match.group(1)),
                # Offsets are 1-based, like the file-level entry's.
                char_offset=offset + 1,
                is_file_entry=False,
            )
        )

    return document


def parse_file(path: Path, *, prefix_chars: int = DEFAULT_PREFIX_CHARS) -> ParsedDocument:
    """Read and parse a document from disk. Raises OSError if unreadable."""
    return parse_text(read_text(path), path, prefix_chars=prefix_chars)
