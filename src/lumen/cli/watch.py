"""lumen watch: keep the inbox and watched workspaces indexed until Ctrl-C."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from lumen.cli.context import open_kb

console = Console()


def watch_cmd(
    home: Annotated[
        Path | None,
        typer.Option("--home", help="Library directory (overrides storage.home)."),
    ] = None,
) -> None:
    """Watch the inbox and workspaces; re-index after changes settle."""
    kb = open_kb(home, embedding=True)
    watchers = kb.watchers()
    if not watchers:
        console.print(
            "[yellow]Nothing to watch.[/]\n"
            "  Run:  lumen inbox set <folder>  or  lumen workspace watch <name>"
        )
        raise typer.Exit(0)

    for watcher in watchers:
        watcher.start()
        console.print(f"[green]●[/] Watching [bold]{watcher.name}[/] [dim]{watcher.root}[/]")
    console.print("[dim]Press Ctrl-C to stop.[/]")

    stop = threading.Event()
    try:
        while not stop.wait(1.0):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        for watcher in watchers:
            watcher.stop()
        console.print("[dim]Stopped.[/]")
