"""lumen workspace: code workspace management.

Usage:
  lumen workspace add ~/src/project --language py --ignore dist
  lumen workspace list
  lumen workspace index project
  lumen workspace watch project
  lumen workspace remove project --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from lumen.cli.context import open_kb
from lumen.cli.errors import err_embedding, err_not_found, err_scan
from lumen.errors import EmbeddingError, IndexingCancelled, NotFound, ScanError
from lumen.ingest.batching import CancelToken
from lumen.store.models import DEFAULT_IGNORE_PATTERNS

console = Console()

workspace_app = typer.Typer(help="Manage code workspaces.", no_args_is_help=True)

HomeOption = Annotated[
    Path | None,
    typer.Option("--home", help="Library directory (overrides storage.home)."),
]


@workspace_app.command("add")
def add_cmd(
    root: Annotated[Path, typer.Argument(help="Workspace root folder.")],
    name: Annotated[str | None, typer.Option("--name", help="Display name.")] = None,
    language: Annotated[
        list[str] | None,
        typer.Option("--language", "-l", help="File extension to index (repeatable)."),
    ] = None,
    ignore: Annotated[
        list[str] | None,
        typer.Option("--ignore", help="Extra ignore pattern (repeatable)."),
    ] = None,
    index: Annotated[bool, typer.Option("--index", help="Index right away.")] = False,
    home: HomeOption = None,
) -> None:
    """Register a code workspace."""
    if not root.is_dir():
        console.print(err_scan(str(root), "not a directory"))
        raise typer.Exit(1)
    kb = open_kb(home, embedding=index)
    patterns = None
    if ignore:
        defaults = list(DEFAULT_IGNORE_PATTERNS[:4])
        patterns = defaults + [p for p in ignore if p not in defaults]
    workspace = kb.add_workspace(root, name=name, languages=language, ignore_patterns=patterns)
    console.print(f"[green]✓[/] Workspace [bold]{workspace.name}[/] [dim]({workspace.id[:8]})[/]")
    if index:
        _run_index(kb, workspace.id)


@workspace_app.command("list")
def list_cmd(home: HomeOption = None) -> None:
    """List registered workspaces."""
    kb = open_kb(home)
    workspaces = kb.workspaces.workspaces
    if not workspaces:
        console.print("[dim]No workspaces.[/]  Run:  lumen workspace add <folder>")
        return
    table = Table()
    table.add_column("ID", style="dim", width=8)
    table.add_column("Name", style="bold")
    table.add_column("Watching")
    table.add_column("Languages")
    table.add_column("Root", style="dim")
    for w in workspaces:
        table.add_row(
            w.id[:8],
            w.name,
            "yes" if w.is_watching else "no",
            ", ".join(w.languages) or "(default)",
            w.root,
        )
    console.print(table)


@workspace_app.command("remove")
def remove_cmd(
    workspace: Annotated[str, typer.Argument(help="Workspace id, id prefix or name.")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    home: HomeOption = None,
) -> None:
    """Unregister a workspace and delete its indexed code."""
    kb = open_kb(home)
    try:
        target = kb.workspaces.get(workspace)
    except NotFound:
        console.print(err_not_found("Workspace", workspace, "lumen workspace list"))
        raise typer.Exit(0)

    if not yes:
        if not typer.confirm(f"Remove workspace '{target.name}'?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    removed, purged = kb.remove_workspace(target.id)
    console.print(f"[green]✓[/] Removed {removed.name} ({purged} documents)")


@workspace_app.command("index")
def index_cmd(
    workspace: Annotated[str, typer.Argument(help="Workspace id, id prefix or name.")],
    home: HomeOption = None,
) -> None:
    """Rescan a workspace and (re)index every file."""
    kb = open_kb(home, embedding=True)
    _run_index(kb, workspace)


@workspace_app.command("watch")
def watch_cmd(
    workspace: Annotated[str, typer.Argument(help="Workspace id, id prefix or name.")],
    home: HomeOption = None,
) -> None:
    """Toggle automatic re-indexing for a workspace (used by `lumen watch`)."""
    kb = open_kb(home)
    try:
        updated = kb.toggle_watch(workspace)
    except NotFound:
        console.print(err_not_found("Workspace", workspace, "lumen workspace list"))
        raise typer.Exit(1)
    state = "[green]on[/]" if updated.is_watching else "[dim]off[/]"
    console.print(f"Watching {updated.name}: {state}")


def _run_index(kb, ref: str) -> None:
    cancel = CancelToken()
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as prog:
            task = prog.add_task("Indexing…", total=None)
            result = kb.index_workspace(
                ref,
                cancel=cancel,
                on_progress=lambda done, total: prog.update(task, completed=done, total=total),
            )
    except NotFound:
        console.print(err_not_found("Workspace", ref, "lumen workspace list"))
        raise typer.Exit(1)
    except ScanError as exc:
        console.print(err_scan(exc.root, exc.cause))
        raise typer.Exit(1)
    except EmbeddingError as exc:
        console.print(err_embedding(str(exc)))
        raise typer.Exit(1)
    except (KeyboardInterrupt, IndexingCancelled):
        cancel.cancel()
        console.print("[yellow]Cancelled.[/] The workspace index is unchanged.")
        raise typer.Exit(130)
    console.print(f"[green]✓[/] {result.summary}")
