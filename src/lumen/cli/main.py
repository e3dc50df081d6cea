"""Lumen CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from lumen.cli.ask import ask_cmd
from lumen.cli.context import setup_logging
from lumen.cli.documents import import_cmd, list_cmd, rebuild_cmd, remove_cmd, reset_cmd
from lumen.cli.inbox import inbox_app
from lumen.cli.init import init_cmd
from lumen.cli.status import status_cmd
from lumen.cli.watch import watch_cmd
from lumen.cli.workspace import workspace_app


def _version_callback(value: bool) -> None:
    if value:
        try:
            ver = importlib.metadata.version("lumen")
        except importlib.metadata.PackageNotFoundError:
            ver = "dev"
        typer.echo(f"lumen {ver}")
        raise typer.Exit()


app = typer.Typer(
    name="lumen",
    help=(
        "Lumen: local-first knowledge base with retrieval-augmented answers.\n\n"
        "  lumen import   Add documents to the library.\n"
        "  lumen ask      Answer a question from your documents."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """Lumen: local-first knowledge base."""
    setup_logging(verbose)


app.command("init")(init_cmd)
app.command("import")(import_cmd)
app.command("remove")(remove_cmd)
app.command("list")(list_cmd)
app.command("rebuild")(rebuild_cmd)
app.command("reset")(reset_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)
app.command("watch")(watch_cmd)
app.add_typer(workspace_app, name="workspace")
app.add_typer(inbox_app, name="inbox")


@app.command("version")
def version_cmd() -> None:
    """Show the installed Lumen version."""
    try:
        ver = importlib.metadata.version("lumen")
    except importlib.metadata.PackageNotFoundError:
        ver = "dev"
    typer.echo(f"lumen {ver}")


if __name__ == "__main__":
    app()
