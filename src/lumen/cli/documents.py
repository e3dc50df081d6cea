"""lumen import / remove / list / rebuild: document lifecycle.

Usage:
  lumen import notes.md report.pdf
  lumen remove 3f2a --yes
  lumen list
  lumen rebuild --include-code
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from lumen.cli.context import open_kb
from lumen.cli.errors import (
    err_embedding,
    err_file_not_found,
    err_not_found,
    err_rejected,
    err_unreadable,
)
from lumen.errors import EmbeddingError, ExtractionError, IndexingCancelled, IndexingError, NotFound
from lumen.ingest.batching import CancelToken
from lumen.store.models import DocumentKind

console = Console()

HomeOption = Annotated[
    Path | None,
    typer.Option("--home", help="Library directory (overrides storage.home)."),
]


def import_cmd(
    paths: Annotated[list[Path], typer.Argument(help="Files to import.")],
    kind: Annotated[
        DocumentKind,
        typer.Option("--kind", "-k", help="Document kind."),
    ] = DocumentKind.GENERIC,
    home: HomeOption = None,
) -> None:
    """Import files into the library and index them."""
    kb = open_kb(home, embedding=True)
    failures = 0

    for path in paths:
        console.print(f"\n[bold]→ {path}[/]")
        if not path.is_file():
            console.print(err_file_not_found(str(path)))
            failures += 1
            continue
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
            console=console,
        ) as prog:
            prog.add_task("Indexing…", total=None)
            try:
                document, chunks = kb.import_file(path, kind=kind)
            except ExtractionError:
                console.print(err_unreadable(str(path)))
                failures += 1
                continue
            except IndexingError as exc:
                console.print(err_rejected(str(path), exc))
                failures += 1
                continue
            except EmbeddingError as exc:
                console.print(err_embedding(str(exc)))
                failures += 1
                continue
        console.print(
            f"  [green]✓[/] {document.title} [dim]({document.id[:8]})[/]  "
            f"{chunks} chunks, {document.word_count or 0:,} words"
        )

    if failures:
        raise typer.Exit(1)


def remove_cmd(
    document: Annotated[str, typer.Argument(help="Document id, id prefix or title.")],
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    home: HomeOption = None,
) -> None:
    """Remove a document with its chunks, vectors and stored original."""
    kb = open_kb(home)
    try:
        target = kb.find_document(document)
    except NotFound:
        console.print(err_not_found("Document", document, "lumen list"))
        raise typer.Exit(0)

    chunk_count = len(kb.library.chunks_for(target.index_source_id))
    console.print(f"\nRemove document: [bold]{target.title}[/] [dim]({target.id})[/]")
    console.print(f"  Chunks: {chunk_count}  |  Kind: {target.kind.value}")

    if not yes:
        if not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    kb.library.remove_document(target.id)
    console.print(f"\n[green]✓[/] Removed: {target.title}")


def list_cmd(
    kind: Annotated[
        DocumentKind | None,
        typer.Option("--kind", "-k", help="Only show this kind."),
    ] = None,
    home: HomeOption = None,
) -> None:
    """List documents in the library."""
    kb = open_kb(home)
    documents = [d for d in kb.library.documents if kind is None or d.kind is kind]
    if not documents:
        console.print("[dim]No documents yet.[/]  Run:  lumen import <file>")
        return

    table = Table(show_lines=False)
    table.add_column("ID", style="dim", width=8)
    table.add_column("Title", style="bold")
    table.add_column("Kind")
    table.add_column("Chunks", justify="right")
    table.add_column("Updated", style="dim")
    for d in sorted(documents, key=lambda d: d.updated_at, reverse=True):
        table.add_row(
            d.id[:8],
            d.title,
            d.kind.value,
            str(len(kb.library.chunks_for(d.index_source_id))),
            d.updated_at[:16].replace("T", " "),
        )
    console.print(table)


def rebuild_cmd(
    include_code: Annotated[
        bool,
        typer.Option("--include-code", help="Also re-embed workspace code documents."),
    ] = False,
    home: HomeOption = None,
) -> None:
    """Re-chunk and re-embed every document from its stored file."""
    kb = open_kb(home, embedding=True)
    cancel = CancelToken()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task(f"Rebuilding {len(kb.library.documents)} documents…", total=None)
        try:
            result = kb.rebuild(include_code=include_code, cancel=cancel)
        except KeyboardInterrupt:
            cancel.cancel()
            console.print("[yellow]Cancelled.[/] Index left unchanged.")
            raise typer.Exit(130)
        except IndexingCancelled:
            console.print("[yellow]Cancelled.[/] Index left unchanged.")
            raise typer.Exit(130)
        except EmbeddingError as exc:
            console.print(err_embedding(str(exc)))
            raise typer.Exit(1)
    console.print(f"[green]✓[/] {result.summary}")


def reset_cmd(
    wipe: Annotated[
        bool,
        typer.Option("--wipe", help="Also delete every document, workspace and stored original."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
    home: HomeOption = None,
) -> None:
    """Purge all vectors (documents stay), or wipe the whole library."""
    kb = open_kb(home)
    what = "EVERYTHING in the library" if wipe else "all chunks and vectors"
    if not yes:
        if not typer.confirm(f"Delete {what}?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)
    if wipe:
        kb.wipe_all()
        console.print("[green]✓[/] Library wiped.")
    else:
        kb.reset()
        console.print("[green]✓[/] Vector index purged.  Run:  lumen rebuild")
