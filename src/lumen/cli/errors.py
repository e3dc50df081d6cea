"""Lumen rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from lumen.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from lumen.errors import FileTooLarge, IndexingError


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "azure": "AZURE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_config(message: str) -> str:
    return f"[red]Error:[/] Invalid configuration.\n  {message}"


def err_file_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] File not found: '{path}'\n"
        "  Check the path and try again."
    )


def err_unreadable(path: str) -> str:
    """No extraction strategy produced text."""
    return (
        f"[red]Error:[/] Unable to read text from '{path}'.\n"
        "  Supported: UTF-8 / UTF-16 text, .rtf, .html, .pdf with a text layer."
    )


def err_rejected(path: str, exc: IndexingError) -> str:
    """Content validation rejected a file."""
    hint = {
        "too large": "Split the file into smaller parts before importing.",
        "binary": "Only text documents can be indexed.",
        "empty": "The file contains no text.",
    }.get(exc.reason, "Check the file's encoding (UTF-8 expected).")
    detail = str(exc) if isinstance(exc, FileTooLarge) else exc.reason
    return f"[red]Error:[/] '{path}' was not indexed ({detail}).\n  {hint}"


def err_embedding(detail: str) -> str:
    return (
        f"[red]Error:[/] Embedding failed: {detail}\n"
        "  Nothing was stored. Check the embedding model and network, then retry."
    )


def err_not_found(kind: str, ref: str, list_cmd: str) -> str:
    return (
        f"[yellow]{kind} not found:[/] '{ref}'\n"
        f"  Run:  {list_cmd}  to see what exists."
    )


def err_no_inbox() -> str:
    return (
        "[red]Error:[/] No inbox folder configured.\n"
        "  Run:  lumen inbox set <folder>"
    )


def err_scan(root: str, cause: str) -> str:
    return (
        f"[red]Error:[/] Cannot scan '{root}': {cause}\n"
        "  Check that the folder exists and is readable."
    )


def warn_index_unhealthy(issues: list[str]) -> str:
    listed = "\n".join(f"    - {issue}" for issue in issues)
    return (
        "[yellow]⚠[/] Vector index has integrity issues:\n"
        f"{listed}\n"
        "  Run:  lumen rebuild"
    )
