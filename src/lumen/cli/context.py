"""Shared CLI plumbing: logging setup and knowledge base construction."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from lumen.cli.errors import err_config, err_no_api_key
from lumen.config import ConfigError, LumenConfig, load_config
from lumen.kb import KnowledgeBase
from lumen.rag.llm_client import validate_api_key

console = Console()


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # litellm and watchdog are chatty at DEBUG
    for name in ("LiteLLM", "litellm", "httpx", "watchdog"):
        logging.getLogger(name).setLevel(logging.WARNING)


def load_cfg(home: Path | None = None) -> LumenConfig:
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    if home is not None:
        cfg.storage.home = str(home)
    return cfg


def require_api_key(model: str) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError as exc:
        provider = model.split("/")[0] if "/" in model else "openai"
        console.print(err_no_api_key(provider))
        raise typer.Exit(1) from exc


def open_kb(
    home: Path | None = None,
    *,
    embedding: bool = False,
    generation: bool = False,
) -> KnowledgeBase:
    """Load config and open the knowledge base.

    Checks API keys up front for the capabilities the command will use.
    """
    cfg = load_cfg(home)
    if embedding:
        require_api_key(cfg.embedding.model)
    if generation:
        require_api_key(cfg.generation.model)
    return KnowledgeBase(cfg)
