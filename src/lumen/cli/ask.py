"""lumen ask: answer a question from the library with retrieval + LLM."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from lumen.cli.context import open_kb
from lumen.cli.errors import err_embedding, err_not_found
from lumen.errors import EmbeddingError, NotFound
from lumen.rag.retriever import build_context_block

console = Console()


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question to answer.")],
    workspace: Annotated[
        list[str] | None,
        typer.Option("--workspace", "-w", help="Limit code context to this workspace (repeatable)."),
    ] = None,
    sources_only: Annotated[
        bool,
        typer.Option("--sources-only", help="Show retrieved chunks without calling the LLM."),
    ] = False,
    show_context: Annotated[
        bool,
        typer.Option("--show-context", help="Print the context block sent to the LLM."),
    ] = False,
    home: Annotated[
        Path | None,
        typer.Option("--home", help="Library directory (overrides storage.home)."),
    ] = None,
) -> None:
    """Ask a question; the answer is grounded in your documents."""
    kb = open_kb(home, embedding=True, generation=not sources_only)

    workspace_ids: set[str] | None = None
    if workspace:
        workspace_ids = set()
        for ref in workspace:
            try:
                workspace_ids.add(kb.workspaces.get(ref).id)
            except NotFound:
                console.print(err_not_found("Workspace", ref, "lumen workspace list"))
                raise typer.Exit(1)

    try:
        if sources_only or show_context:
            chunks = kb.search(question, workspace_ids)
            if sources_only:
                _print_sources(chunks)
                return
            console.print(build_context_block(chunks, include_scores=True), markup=False)
            console.rule()
        for piece in kb.ask(question, workspace_ids):
            console.print(piece, end="", markup=False, highlight=False, soft_wrap=True)
        console.print()
    except EmbeddingError as exc:
        console.print(err_embedding(str(exc)))
        raise typer.Exit(1)


def _print_sources(chunks: list) -> None:
    if not chunks:
        console.print("[dim]No relevant documents found.[/]")
        return
    table = Table()
    table.add_column("#", justify="right", style="dim")
    table.add_column("Score", justify="right")
    table.add_column("Source")
    table.add_column("Excerpt", overflow="fold")
    for i, chunk in enumerate(chunks, start=1):
        title = chunk.metadata.get("title") or chunk.source_id
        excerpt = chunk.content[:120].replace("\n", " ")
        table.add_row(str(i), f"{chunk.score:.2f}", title, excerpt)
    console.print(table)
