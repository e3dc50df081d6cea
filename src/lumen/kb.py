"""Knowledge base: wires library, indexers, watchers and retrieval together.

This is the headless application state the CLI drives. It owns one
``DocumentLibrary`` under ``config.storage.home`` plus the workspace catalog
and the per-tree change registries stored next to it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from pathlib import Path

from lumen.config import LumenConfig, save_inbox_folder
from lumen.errors import EmbeddingError, IndexingError, NotFound
from lumen.ingest.batching import CancelToken, IndexingResult
from lumen.ingest.indexer import DocumentIndexer
from lumen.rag.llm_client import (
    Embedder,
    GenerationConfig,
    LanguageModel,
    LiteLLMChat,
    LiteLLMEmbedder,
)
from lumen.rag.retriever import RAGConfig, Retriever
from lumen.store.library import DocumentLibrary
from lumen.store.models import Document, DocumentKind, RetrievedChunk, Workspace
from lumen.store.registry import ChangeRegistry
from lumen.store.vectors import IndexHealth
from lumen.store.workspaces import WorkspaceStore
from lumen.watch.inbox import InboxSource
from lumen.watch.reconciler import Reconciler
from lumen.watch.watcher import FolderWatcher
from lumen.watch.workspace import WorkspaceIndexer, WorkspaceSource

logger = logging.getLogger(__name__)

INBOX_REGISTRY = "inbox"


class KnowledgeBase:
    def __init__(
        self,
        config: LumenConfig,
        embedder: Embedder | None = None,
        llm: LanguageModel | None = None,
    ) -> None:
        self.config = config
        self.home = config.storage.home_path
        self.embedder = embedder if embedder is not None else LiteLLMEmbedder(config.embedding.model)
        self.llm = llm if llm is not None else LiteLLMChat(config.generation.model)

        self.library = DocumentLibrary(self.home, chunking=config.chunking)
        self.library.load()
        self.workspaces = WorkspaceStore(self.home / "workspaces.json")
        self.workspaces.load()

        self.indexer = DocumentIndexer(
            self.embedder, self.library, config=config.indexing, chunking=config.chunking
        )
        self.workspace_indexer = WorkspaceIndexer(self.library, self.indexer)
        self.retriever = Retriever(self.embedder, self.library, self.llm)

        self._registries: dict[str, ChangeRegistry] = {}
        self._registry_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def import_file(
        self, path: Path, kind: DocumentKind | str = DocumentKind.GENERIC
    ) -> tuple[Document, int]:
        """Import *path* and index it; the document is dropped if indexing fails.

        Raises:
            ExtractionError: No text could be read.
            IndexingError: Content rejected by validation.
            EmbeddingError: The embedding capability failed.
        """
        document, text = self.library.import_document_text(path, kind=kind)
        try:
            chunks = self.indexer.index_document(
                document.index_source_id,
                text,
                kind=document.kind,
                metadata={
                    "title": document.title,
                    "kind": document.kind.value,
                    "document_id": document.id,
                    "file_path": str(path),
                },
            )
        except (IndexingError, EmbeddingError):
            self.library.remove_document(document.id)
            raise
        return document, chunks

    def find_document(self, ref: str) -> Document:
        """Return the document whose id (or unique id prefix / title) is *ref*."""
        document = self.library.document(ref)
        if document is not None:
            return document
        matches = [d for d in self.library.documents if d.id.startswith(ref) or d.title == ref]
        if len(matches) != 1:
            raise NotFound(f"No unique document matches '{ref}'")
        return matches[0]

    def remove_document(self, ref: str) -> Document:
        document = self.find_document(ref)
        self.library.remove_document(document.id)
        return document

    def rebuild(self, include_code: bool = False, cancel: CancelToken | None = None) -> IndexingResult:
        return self.library.rebuild_index(
            self.embedder,
            include_code=include_code,
            cancel=cancel,
            max_file_bytes=self.config.indexing.rebuild_max_file_bytes,
            indexing=self.config.indexing,
        )

    def reset(self) -> None:
        """Purge every chunk and vector; documents stay cataloged."""
        self.indexer.reset()

    def wipe_all(self) -> None:
        """Delete every document, vector, workspace registration and registry."""
        self.library.wipe_all()
        for workspace in self.workspaces.workspaces:
            self.workspaces.remove(workspace.id)
        with self._registry_lock:
            for registry in self._registries.values():
                registry.clear()
                registry.save()
            self._registries.clear()
        registries_dir = self.home / "registries"
        if registries_dir.exists():
            for path in registries_dir.glob("*.json"):
                path.unlink()

    def health(self) -> IndexHealth:
        return self.library.health()

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def rag_config(self, workspace_ids: set[str] | None = None) -> RAGConfig:
        r, g = self.config.retrieval, self.config.generation
        return RAGConfig(
            top_k=r.top_k,
            system_prompt=g.system_prompt,
            include_scores=r.include_scores,
            workspace_ids=workspace_ids,
            workspace_top_k=r.workspace_top_k,
            workspace_candidates=r.workspace_candidates,
            generation=GenerationConfig(
                max_tokens=g.max_tokens,
                temperature=g.temperature,
                top_p=g.top_p,
            ),
        )

    def search(self, query: str, workspace_ids: set[str] | None = None) -> list[RetrievedChunk]:
        return self.retriever.retrieve(query, self.rag_config(workspace_ids))

    def ask(self, query: str, workspace_ids: set[str] | None = None) -> Iterator[str]:
        return self.retriever.stream_answer(query, self.rag_config(workspace_ids))

    # ------------------------------------------------------------------
    # Registries
    # ------------------------------------------------------------------

    def registry(self, name: str) -> ChangeRegistry:
        with self._registry_lock:
            registry = self._registries.get(name)
            if registry is None:
                registry = ChangeRegistry(self.home / "registries" / f"{name}.json")
                registry.load()
                self._registries[name] = registry
            return registry

    def _drop_registry(self, name: str) -> None:
        with self._registry_lock:
            registry = self._registries.pop(name, None)
        path = registry.path if registry else self.home / "registries" / f"{name}.json"
        path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Workspaces
    # ------------------------------------------------------------------

    def add_workspace(
        self,
        root: Path,
        name: str | None = None,
        languages: list[str] | None = None,
        ignore_patterns: list[str] | None = None,
    ) -> Workspace:
        return self.workspaces.add(root, name=name, languages=languages, ignore_patterns=ignore_patterns)

    def remove_workspace(self, ref: str) -> tuple[Workspace, int]:
        """Unregister a workspace and delete its documents and vectors."""
        workspace = self.workspaces.get(ref)
        purged = self.workspace_indexer.remove_workspace(workspace)
        self.workspaces.remove(workspace.id)
        self._drop_registry(f"workspace-{workspace.id}")
        return workspace, len(purged)

    def index_workspace(
        self,
        ref: str,
        cancel: CancelToken | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> IndexingResult:
        workspace = self.workspaces.get(ref)
        result = self.workspace_indexer.index_workspace(workspace, cancel, on_progress)
        # a full index supersedes whatever the watcher had recorded
        registry = self.registry(f"workspace-{workspace.id}")
        registry.clear()
        for document in self.library.documents:
            if document.workspace_id == workspace.id:
                try:
                    registry.set(document.file_ref, document.id, Path(document.file_ref).stat().st_mtime)
                except OSError:
                    continue
        registry.save()
        return result

    def toggle_watch(self, ref: str) -> Workspace:
        return self.workspaces.toggle_watch(ref)

    def workspace_reconciler(self, workspace: Workspace) -> Reconciler:
        source = WorkspaceSource(workspace, self.workspace_indexer, self.library)
        return Reconciler(
            source,
            self.registry(f"workspace-{workspace.id}"),
            tolerance=self.config.watch.mtime_tolerance,
            max_workers=self.config.indexing.max_workers,
        )

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    @property
    def inbox_folder(self) -> Path | None:
        folder = self.config.inbox.folder
        return Path(folder).expanduser() if folder else None

    def set_inbox(self, folder: Path, project_dir: Path | None = None) -> Path:
        resolved = Path(folder).expanduser().resolve()
        resolved.mkdir(parents=True, exist_ok=True)
        self.config.inbox.folder = str(resolved)
        self.config.inbox.enabled = True
        save_inbox_folder(str(resolved), project_dir)
        return resolved

    def clear_inbox(self, project_dir: Path | None = None) -> int:
        """Forget the inbox folder and remove every document it produced."""
        registry = self.registry(INBOX_REGISTRY)
        removed = 0
        for path in registry.paths():
            entry = registry.pop(path)
            if entry is not None and self.library.remove_document(entry.document_id):
                removed += 1
        registry.save()
        self.config.inbox.folder = None
        save_inbox_folder(None, project_dir)
        return removed

    def inbox_reconciler(self) -> Reconciler:
        folder = self.inbox_folder
        if folder is None:
            raise NotFound("No inbox folder configured")
        source = InboxSource(folder, self.library, self.indexer, self.config.inbox.extensions)
        return Reconciler(
            source,
            self.registry(INBOX_REGISTRY),
            tolerance=self.config.watch.mtime_tolerance,
            max_workers=self.config.indexing.max_workers,
        )

    def scan_inbox(self, full_rescan: bool = False, cancel: CancelToken | None = None) -> IndexingResult:
        return self.inbox_reconciler().reconcile(full_rescan=full_rescan, cancel=cancel)

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    def watchers(self) -> list[FolderWatcher]:
        """Build (unstarted) watchers for the inbox and watched workspaces."""
        w = self.config.watch
        watchers: list[FolderWatcher] = []
        if self.config.inbox.enabled and self.inbox_folder is not None:
            reconciler = self.inbox_reconciler()
            watchers.append(
                FolderWatcher(
                    self.inbox_folder,
                    reconciler.reconcile,
                    debounce=w.debounce,
                    retry_interval=w.retry_interval,
                    name="inbox",
                )
            )
        for workspace in self.workspaces.workspaces:
            if not workspace.is_watching:
                continue
            reconciler = self.workspace_reconciler(workspace)
            watchers.append(
                FolderWatcher(
                    Path(workspace.root),
                    reconciler.reconcile,
                    debounce=w.debounce,
                    retry_interval=w.retry_interval,
                    name=workspace.name,
                )
            )
        return watchers
