"""Utility helpers for working with files."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable, Iterator, Optional


def _is_hidden(path: Path, root: Path) -> bool:
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        parts = path.parts
    return any(part.startswith(".") for part in parts)


def iter_document_paths(
    inputs: Iterable[Path], extensions: Iterable[str] = (".org",)
) -> Iterator[Path]:
    """Yield document paths from input paths, descending into directories.

    Hidden files and anything under a hidden directory are skipped. Paths are
    yielded absolute.
    """
    suffixes = {ext.lower() for ext in extensions}
    for item in inputs:
        item = Path(item)
        if item.is_dir():
            for child in sorted(item.rglob("*")):
                if child.is_file() and child.suffix.lower() in suffixes and not _is_hidden(child, item):
                    yield child.resolve()
        elif item.is_file() and item.suffix.lower() in suffixes:
            yield item.resolve()


def read_text(path: Path) -> str:
    """Read a whole document, replacing undecodable bytes."""
    return Path(path).read_text(encoding="utf-8", errors="replace")


def modification_time(path: Path) -> Optional[float]:
    """Return the file's mtime, or None if it does not exist."""
    try:
        return Path(path).stat().st_mtime
    except FileNotFoundError:
        return None


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` in one step.

    The content is written to a temporary file in the same directory and then
    moved over the target, so readers never see a half-written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
