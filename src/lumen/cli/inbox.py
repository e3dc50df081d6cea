"""lumen inbox: the folder whose files are imported automatically."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from lumen.cli.context import open_kb
from lumen.cli.errors import err_no_inbox, err_scan
from lumen.errors import IndexingCancelled, NotFound, ScanError
from lumen.ingest.batching import CancelToken

console = Console()

inbox_app = typer.Typer(help="Manage the inbox folder.", no_args_is_help=True)

HomeOption = Annotated[
    Path | None,
    typer.Option("--home", help="Library directory (overrides storage.home)."),
]


@inbox_app.command("set")
def set_cmd(
    folder: Annotated[Path, typer.Argument(help="Folder to watch (created if missing).")],
    scan: Annotated[bool, typer.Option("--scan/--no-scan", help="Import its files now.")] = True,
    home: HomeOption = None,
) -> None:
    """Set the inbox folder (saved to lumen.yaml)."""
    kb = open_kb(home, embedding=scan)
    resolved = kb.set_inbox(folder)
    console.print(f"[green]✓[/] Inbox: {resolved}")
    if scan:
        _run_scan(kb, full_rescan=False)


@inbox_app.command("clear")
def clear_cmd(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
    home: HomeOption = None,
) -> None:
    """Forget the inbox folder and remove the documents it produced."""
    kb = open_kb(home)
    if kb.inbox_folder is None:
        console.print(err_no_inbox())
        raise typer.Exit(0)
    if not yes:
        if not typer.confirm("Remove every document imported from the inbox?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)
    removed = kb.clear_inbox()
    console.print(f"[green]✓[/] Inbox cleared ({removed} documents removed)")


@inbox_app.command("scan")
def scan_cmd(
    full: Annotated[
        bool,
        typer.Option("--full", help="Re-import every file, changed or not."),
    ] = False,
    home: HomeOption = None,
) -> None:
    """Import new and changed inbox files now."""
    kb = open_kb(home, embedding=True)
    _run_scan(kb, full_rescan=full)


def _run_scan(kb, full_rescan: bool) -> None:
    cancel = CancelToken()
    try:
        with console.status("Scanning inbox…"):
            result = kb.scan_inbox(full_rescan=full_rescan, cancel=cancel)
    except NotFound:
        console.print(err_no_inbox())
        raise typer.Exit(1)
    except ScanError as exc:
        console.print(err_scan(exc.root, exc.cause))
        raise typer.Exit(1)
    except (KeyboardInterrupt, IndexingCancelled):
        cancel.cancel()
        console.print("[yellow]Cancelled.[/]")
        raise typer.Exit(130)
    console.print(f"[green]✓[/] {result.summary}")
