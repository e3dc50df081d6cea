"""Lumen configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (LUMEN_HOME, LUMEN_EMBEDDING_MODEL, LUMEN_GENERATION_MODEL)
  3. Per-project lumen.yaml  (current directory)
  4. Global ~/.lumen/config.yaml  (no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load() and never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".lumen"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "lumen.yaml"

# Matches api_key, apikey, api-key, api_secret, *_token, token, *_secret,
# secret, password, passwd, credential(s). Leaves max_tokens and top_k alone.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    [
        "storage",
        "chunking",
        "indexing",
        "embedding",
        "generation",
        "retrieval",
        "watch",
        "inbox",
    ]
)

DEFAULT_SYSTEM_PROMPT: str = (
    "You are a helpful assistant. Answer the question based on the provided context. "
    "If the context doesn't contain enough information, say so."
)

DEFAULT_INBOX_EXTENSIONS: tuple[str, ...] = ("txt", "md", "markdown", "rtf", "pdf", "html", "htm")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class StorageCfg:
    """Where the catalog, vectors and registries live (lumen.yaml: storage:)."""

    home: str = str(_GLOBAL_CONFIG_DIR / "library")

    @property
    def home_path(self) -> Path:
        return Path(self.home).expanduser()


@dataclass
class ChunkingCfg:
    """Window sizes for the text and code chunkers."""

    chunk_size: int = 1000
    overlap: int = 200
    code_max_lines: int = 80
    code_overlap: int = 10


@dataclass
class IndexingCfg:
    """Embedding backpressure and bulk-run limits.

    Attributes:
        batch_size: Chunks per embedding call.
        batch_pause: Seconds slept after each batch.
        max_bytes: Content size limit enforced by the validator.
        rebuild_max_file_bytes: Files above this are skipped by a rebuild.
        max_workers: Parallel per-file jobs during reconciliation.
    """

    batch_size: int = 2
    batch_pause: float = 0.02
    max_bytes: int = 10_000_000
    rebuild_max_file_bytes: int = 1_500_000
    max_workers: int = 2


@dataclass
class EmbeddingCfg:
    """Embedding model configuration (lumen.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"


@dataclass
class GenerationCfg:
    """LLM generation configuration (lumen.yaml: generation:)."""

    model: str = "openai/gpt-4o"
    max_tokens: int = 1024
    temperature: float = 0.7
    top_p: float = 0.9
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


@dataclass
class RetrievalCfg:
    """Retrieval configuration (lumen.yaml: retrieval:)."""

    top_k: int = 6
    workspace_top_k: int = 12
    workspace_candidates: int = 30
    include_scores: bool = False


@dataclass
class WatchCfg:
    """Folder watcher timing."""

    debounce: float = 1.0
    mtime_tolerance: float = 0.5
    retry_interval: float = 5.0


@dataclass
class InboxCfg:
    """Inbox folder (lumen.yaml: inbox:).

    Attributes:
        folder: Folder whose files are imported automatically; None disables it.
        enabled: Whether ``lumen watch`` should start the inbox watcher.
        extensions: Lower-case suffixes (without dot) that are imported.
    """

    folder: str | None = None
    enabled: bool = True
    extensions: list[str] = field(default_factory=lambda: list(DEFAULT_INBOX_EXTENSIONS))


@dataclass
class LumenConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    storage: StorageCfg = field(default_factory=StorageCfg)
    chunking: ChunkingCfg = field(default_factory=ChunkingCfg)
    indexing: IndexingCfg = field(default_factory=IndexingCfg)
    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    watch: WatchCfg = field(default_factory=WatchCfg)
    inbox: InboxCfg = field(default_factory=InboxCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' (ignored).",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: LumenConfig) -> None:
    ch = cfg.chunking
    if ch.chunk_size < 1 or ch.code_max_lines < 1:
        raise ConfigError("chunking.chunk_size and chunking.code_max_lines must be >= 1")
    if ch.overlap < 0 or ch.code_overlap < 0:
        raise ConfigError("chunking overlaps must be >= 0")
    if cfg.indexing.batch_size < 1:
        raise ConfigError("indexing.batch_size must be >= 1")
    if cfg.indexing.max_workers < 1:
        raise ConfigError("indexing.max_workers must be >= 1")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> LumenConfig:
    """Build a *LumenConfig* from a merged raw YAML dict."""
    cfg = LumenConfig()

    if "storage" in data:
        s = data["storage"] or {}
        cfg.storage = StorageCfg(home=str(s.get("home", cfg.storage.home)))

    if "chunking" in data:
        c = data["chunking"] or {}
        cfg.chunking = ChunkingCfg(
            chunk_size=int(c.get("chunk_size", cfg.chunking.chunk_size)),
            overlap=int(c.get("overlap", cfg.chunking.overlap)),
            code_max_lines=int(c.get("code_max_lines", cfg.chunking.code_max_lines)),
            code_overlap=int(c.get("code_overlap", cfg.chunking.code_overlap)),
        )

    if "indexing" in data:
        i = data["indexing"] or {}
        cfg.indexing = IndexingCfg(
            batch_size=int(i.get("batch_size", cfg.indexing.batch_size)),
            batch_pause=float(i.get("batch_pause", cfg.indexing.batch_pause)),
            max_bytes=int(i.get("max_bytes", cfg.indexing.max_bytes)),
            rebuild_max_file_bytes=int(
                i.get("rebuild_max_file_bytes", cfg.indexing.rebuild_max_file_bytes)
            ),
            max_workers=int(i.get("max_workers", cfg.indexing.max_workers)),
        )

    if "embedding" in data:
        e = data["embedding"] or {}
        cfg.embedding = EmbeddingCfg(model=str(e.get("model", cfg.embedding.model)))

    if "generation" in data:
        g = data["generation"] or {}
        cfg.generation = GenerationCfg(
            model=str(g.get("model", cfg.generation.model)),
            max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
            temperature=float(g.get("temperature", cfg.generation.temperature)),
            top_p=float(g.get("top_p", cfg.generation.top_p)),
            system_prompt=str(g.get("system_prompt", cfg.generation.system_prompt)),
        )

    if "retrieval" in data:
        r = data["retrieval"] or {}
        cfg.retrieval = RetrievalCfg(
            top_k=int(r.get("top_k", cfg.retrieval.top_k)),
            workspace_top_k=int(r.get("workspace_top_k", cfg.retrieval.workspace_top_k)),
            workspace_candidates=int(
                r.get("workspace_candidates", cfg.retrieval.workspace_candidates)
            ),
            include_scores=bool(r.get("include_scores", cfg.retrieval.include_scores)),
        )

    if "watch" in data:
        w = data["watch"] or {}
        cfg.watch = WatchCfg(
            debounce=float(w.get("debounce", cfg.watch.debounce)),
            mtime_tolerance=float(w.get("mtime_tolerance", cfg.watch.mtime_tolerance)),
            retry_interval=float(w.get("retry_interval", cfg.watch.retry_interval)),
        )

    if "inbox" in data:
        ib = data["inbox"] or {}
        cfg.inbox = InboxCfg(
            folder=ib.get("folder") or cfg.inbox.folder,
            enabled=bool(ib.get("enabled", cfg.inbox.enabled)),
            extensions=[
                str(x).lower().lstrip(".") for x in ib.get("extensions", cfg.inbox.extensions)
            ],
        )

    return cfg


def _apply_env_overrides(cfg: LumenConfig) -> LumenConfig:
    """Apply LUMEN_* environment variable overrides."""
    if home := os.environ.get("LUMEN_HOME"):
        cfg.storage.home = home
    if model := os.environ.get("LUMEN_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("LUMEN_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> LumenConfig:
    """Load and return a merged *LumenConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *lumen.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *LumenConfig* with env var overrides applied.

    Raises:
        ConfigError: If global config contains API-key-like fields or a
            value is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _cfg_from_dict(merged)
    cfg = _apply_env_overrides(cfg)
    _validate(cfg)
    return cfg


def ensure_global_config(
    global_config_path: Path | None = None,
) -> Path:
    """Create ``~/.lumen/config.yaml`` with defaults if it does not exist.

    Creates parent directory with mode 0o700 and the config file with
    mode 0o600 (owner-readable only).
    """
    target = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    target.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    if not target.exists():
        content = (
            "# Lumen global configuration.\n"
            "# NEVER store API keys here. Use environment variables:\n"
            "#   export OPENAI_API_KEY=sk-...\n"
            "\n"
            "embedding:\n"
            "  model: openai/text-embedding-3-small\n"
            "\n"
            "generation:\n"
            "  model: openai/gpt-4o\n"
        )
        target.write_text(content, encoding="utf-8")
        target.chmod(0o600)

    return target


def save_inbox_folder(folder: str | None, project_dir: Path | None = None) -> Path:
    """Persist ``inbox.folder`` into the project ``lumen.yaml``.

    Other keys in the file are preserved. Passing None clears the folder.
    """
    target = (project_dir if project_dir is not None else Path.cwd()) / _PROJECT_CONFIG_NAME
    data: dict[str, Any] = {}
    if target.exists():
        data = yaml.safe_load(target.read_text(encoding="utf-8")) or {}
    inbox = dict(data.get("inbox") or {})
    if folder is None:
        inbox.pop("folder", None)
    else:
        inbox["folder"] = folder
    data["inbox"] = inbox
    target.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return target
