"""Command line interface for orgfinder."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from orgfinder.config import BACKENDS, AppConfig
from orgfinder.errors import NoteIndexError
from orgfinder.service import NoteIndex
from orgfinder.utils.text import format_link


console = Console()
app = typer.Typer(help="orgfinder - title and ID index for a directory of Org notes")

DirOption = typer.Option(None, "--dir", "-d", help="Notes directory")
DbOption = typer.Option(None, "--db", help="SQLite database path")
BackendOption = typer.Option("sqlite", "--backend", "-b", help=f"Index backend: {', '.join(BACKENDS)}")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Verbose logging")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")


def _ensure_db_parent(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _open_index(notes_dir: Optional[Path], db: Optional[Path], backend: str) -> NoteIndex:
    try:
        config = AppConfig(notes_dir=notes_dir, db_path=db, backend=backend)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if config.backend == "sqlite" and db is not None:
        _ensure_db_parent(config.resolve_db_path(Path.cwd()))
    return NoteIndex(config, base_dir=Path.cwd())


def _fail(exc: NoteIndexError) -> NoReturn:
    console.print(f"[red]{escape(exc.message)}[/red]")
    raise typer.Exit(code=1)


@app.command()
def sync(
    notes_dir: Path = DirOption,
    db: Path = DbOption,
    backend: str = BackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """Bring the index up to date with the notes directory."""
    _setup_logging(verbose)
    with _open_index(notes_dir, db, backend) as index:
        if not index.notes_dir.is_dir():
            console.print(f"[yellow]Notes directory {escape(str(index.notes_dir))} not found.[/yellow]", soft_wrap=True)
            return
        try:
            result = index.ensure_up_to_date()
        except NoteIndexError as exc:
            _fail(exc)
        console.print(f"Updated: {result.updated}, removed: {result.removed}")


@app.command("list")
def list_entries(
    notes_dir: Path = DirOption,
    db: Path = DbOption,
    backend: str = BackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """List every indexed title."""
    _setup_logging(verbose)
    with _open_index(notes_dir, db, backend) as index:
        try:
            rows = index.list_all()
        except NoteIndexError as exc:
            _fail(exc)

        if not rows:
            console.print("[yellow]No entries indexed.[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Title")
        table.add_column("ID")
        table.add_column("Level")
        table.add_column("Tags")
        table.add_column("File")

        for title, entry in rows:
            location = f"{entry.file_path}" if entry.is_file_entry else f"{entry.file_path}:{entry.char_offset}"
            table.add_row(
                escape(title),
                escape(entry.identifier),
                str(entry.heading_depth),
                escape(entry.tags or ""),
                escape(location),
            )

        console.print(table)


@app.command()
def find(
    title: str = typer.Argument(..., help="Exact title to look up"),
    notes_dir: Path = DirOption,
    db: Path = DbOption,
    backend: str = BackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """Print where a title lives, as FILE or FILE:OFFSET for headings."""
    _setup_logging(verbose)
    with _open_index(notes_dir, db, backend) as index:
        try:
            location = index.find_document(title)
        except NoteIndexError as exc:
            _fail(exc)
        if location is None:
            console.print(f"[yellow]No entry titled {escape(repr(title))}.[/yellow]")
            raise typer.Exit(code=1)
        if location.jump_offset is None:
            console.print(str(location.file_path), soft_wrap=True, markup=False)
        else:
            console.print(f"{location.file_path}:{location.jump_offset}", soft_wrap=True, markup=False)


@app.command()
def resolve(
    identifier: str = typer.Argument(..., help="Entry identifier"),
    notes_dir: Path = DirOption,
    db: Path = DbOption,
    backend: str = BackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """Print the file that holds an identifier."""
    _setup_logging(verbose)
    with _open_index(notes_dir, db, backend) as index:
        try:
            path = index.resolve_identifier(identifier)
        except NoteIndexError as exc:
            _fail(exc)
        if path is None:
            console.print(f"[yellow]Unknown identifier {escape(identifier)}.[/yellow]")
            raise typer.Exit(code=1)
        console.print(str(path), soft_wrap=True, markup=False)


@app.command()
def new(
    title: str = typer.Argument(..., help="Title of the new document"),
    body: Optional[str] = typer.Option(None, "--body", help="Initial body text"),
    tags: Optional[List[str]] = typer.Option(None, "--tag", "-t", help="File tag (repeatable)"),
    notes_dir: Path = DirOption,
    db: Path = DbOption,
    backend: str = BackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """Create a new document and register it in the index."""
    _setup_logging(verbose)
    with _open_index(notes_dir, db, backend) as index:
        try:
            entry = index.create_document(title, body, tags=tags or ())
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        except NoteIndexError as exc:
            _fail(exc)
        console.print(f"Created [bold]{escape(str(entry.file_path))}[/bold] ({escape(entry.identifier)})", soft_wrap=True)


@app.command()
def link(
    title: str = typer.Argument(..., help="Title to link to"),
    notes_dir: Path = DirOption,
    db: Path = DbOption,
    backend: str = BackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """Print an ID link for a title, creating the document if it does not exist."""
    _setup_logging(verbose)
    with _open_index(notes_dir, db, backend) as index:
        try:
            target = index.link_or_create(title)
        except ValueError as exc:
            raise typer.BadParameter(str(exc)) from exc
        except NoteIndexError as exc:
            _fail(exc)
        console.print(format_link(target.identifier, target.title), soft_wrap=True, markup=False)


@app.command()
def rebuild(
    notes_dir: Path = DirOption,
    db: Path = DbOption,
    backend: str = BackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """Drop the index and rebuild it from the notes directory."""
    _setup_logging(verbose)
    with _open_index(notes_dir, db, backend) as index:
        try:
            result = index.rebuild()
        except NoteIndexError as exc:
            _fail(exc)
        console.print(f"Rebuilt index with {result.updated} documents.")


@app.command()
def fix(
    notes_dir: Path = DirOption,
    db: Path = DbOption,
    backend: str = BackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """Reconnect a stuck index and catch up with the notes directory."""
    _setup_logging(verbose)
    with _open_index(notes_dir, db, backend) as index:
        try:
            result = index.fix()
        except NoteIndexError as exc:
            _fail(exc)
        console.print(f"Updated: {result.updated}, removed: {result.removed}")


@app.command()
def watch(
    interval: float = typer.Option(AppConfig().sync_interval, help="Seconds between resyncs"),
    notes_dir: Path = DirOption,
    db: Path = DbOption,
    backend: str = BackendOption,
    verbose: bool = VerboseOption,
) -> None:
    """Sync once, then keep resyncing until interrupted."""
    _setup_logging(verbose)
    with _open_index(notes_dir, db, backend) as index:
        try:
            result = index.startup_sync()
        except NoteIndexError as exc:
            _fail(exc)
        if result is not None:
            console.print(f"Updated: {result.updated}, removed: {result.removed}")
        console.print(f"Resyncing {escape(str(index.notes_dir))} every {interval:g}s (Ctrl+C to stop)", soft_wrap=True)
        index.start_periodic_sync(interval)
        try:
            while index.periodic_sync_running:
                time.sleep(1)
        except KeyboardInterrupt:
            console.print("Stopped.")
