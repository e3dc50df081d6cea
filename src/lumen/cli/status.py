"""lumen status: library, vector index, workspaces and inbox overview."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lumen.cli.context import open_kb
from lumen.cli.errors import warn_index_unhealthy
from lumen.kb import INBOX_REGISTRY, KnowledgeBase
from lumen.store.models import DocumentKind

console = Console()


def status_cmd(
    home: Annotated[
        Path | None,
        typer.Option("--home", help="Library directory (overrides storage.home)."),
    ] = None,
) -> None:
    """Show knowledge base status."""
    kb = open_kb(home)
    _show_library_panel(kb)
    _show_workspaces_panel(kb)
    _show_inbox_panel(kb)

    health = kb.health()
    if not health.is_healthy:
        console.print(warn_index_unhealthy(health.issues))


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_library_panel(kb: KnowledgeBase) -> None:
    documents = kb.library.documents
    code = sum(1 for d in documents if d.kind is DocumentKind.CODE)
    total_chunks = sum(len(kb.library.chunks_for(d.index_source_id)) for d in documents)
    vectors = kb.library.vectors

    lines = [
        f"Home:       {kb.home}",
        f"Documents:  [bold]{len(documents)}[/]  ({code} code)",
        f"Chunks:     [bold]{total_chunks:,}[/]  |  Vectors: [bold]{len(vectors):,}[/]"
        f"  |  Dimension: {vectors.dimension or '-'}",
        f"Embedding:  {kb.config.embedding.model}",
        f"Generation: {kb.config.generation.model}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Knowledge Base[/]", expand=False))


def _show_workspaces_panel(kb: KnowledgeBase) -> None:
    workspaces = kb.workspaces.workspaces
    if not workspaces:
        console.print(
            Panel(
                "[dim]No workspaces.[/]\n  Add one:  lumen workspace add <folder>",
                title="[bold]Workspaces[/]",
                expand=False,
            )
        )
        return

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Watch", width=3)
    table.add_column("Name", style="bold")
    table.add_column("Files", justify="right")
    table.add_column("Root", style="dim")
    for w in workspaces:
        files = sum(1 for d in kb.library.documents if d.workspace_id == w.id)
        table.add_row("[green]●[/]" if w.is_watching else "[dim]○[/]", w.name, str(files), w.root)
    console.print(Panel(table, title="[bold]Workspaces[/]", expand=False))


def _show_inbox_panel(kb: KnowledgeBase) -> None:
    folder = kb.inbox_folder
    if folder is None:
        body = "[dim]No inbox folder.[/]\n  Set one:  lumen inbox set <folder>"
    else:
        tracked = len(kb.registry(INBOX_REGISTRY))
        state = "[green]enabled[/]" if kb.config.inbox.enabled else "[yellow]disabled[/]"
        exists = "" if folder.is_dir() else "  [yellow]✗ missing[/]"
        body = f"Folder:  {folder}{exists}\nState:   {state}\nFiles:   {tracked}"
    console.print(Panel(body, title="[bold]Inbox[/]", expand=False))
