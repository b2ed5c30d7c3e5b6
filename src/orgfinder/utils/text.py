"""Text helpers for filenames and links."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, List, Optional

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S"
_NON_ALNUM_RE = re.compile(r"[^0-9a-z]+")


def slugify(title: str) -> str:
    """Lowercase ``title`` and collapse every non-alphanumeric run to ``-``.

    >>> slugify("  New Concept: Part 2! ")
    'new-concept-part-2'
    """
    return _NON_ALNUM_RE.sub("-", title.lower()).strip("-")


def document_filename(title: str, *, timestamp: Optional[datetime] = None, extension: str = ".org") -> str:
    """Build ``<timestamp>--<slug><extension>`` for a new document."""
    stamp = (timestamp or datetime.now()).strftime(TIMESTAMP_FORMAT)
    slug = slugify(title) or "note"
    if not extension.startswith("."):
        extension = "." + extension
    return f"{stamp}--{slug}{extension}"


def dedupe(tokens: Iterable[str]) -> List[str]:
    """Drop empty and repeated tokens, keeping first-seen order."""
    seen: dict[str, None] = {}
    for token in tokens:
        if token:
            seen.setdefault(token, None)
    return list(seen)


def format_link(identifier: str, title: str) -> str:
    """Org link to an entry by identifier."""
    return f"[[id:{identifier}][{title}]]"
