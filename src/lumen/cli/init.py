"""lumen init: create the global config and an empty library.

Creates:
  ~/.lumen/config.yaml   global model config (created once, mode 0o600)
  <home>/                library directory with empty catalog files
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from lumen.cli.context import load_cfg
from lumen.config import ensure_global_config
from lumen.store.library import DocumentLibrary

console = Console()


def init_cmd(
    home: Annotated[
        Path | None,
        typer.Option("--home", help="Library directory (overrides storage.home)."),
    ] = None,
) -> None:
    """Create the global config and an empty library."""
    cfg_path = ensure_global_config()
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    cfg = load_cfg(home)
    library = DocumentLibrary(cfg.storage.home_path, chunking=cfg.chunking)
    if library.documents_path.exists():
        console.print(f"  [yellow]⚠[/]  Library already exists at {library.root}")
    else:
        library.persist()
        console.print(f"  [green]✓[/] {library.root} (library)")

    console.print("\nNext steps:")
    console.print("  1. export OPENAI_API_KEY=sk-...        (embedding + generation)")
    console.print("  2. lumen import <file>                 (add documents)")
    console.print("  3. lumen ask \"<question>\"              (query your library)")
