"""Code workspace indexing.

Each file of a workspace becomes a ``code`` document whose chunks are filed
under ``file://<workspace-id>/<relative-path>``. A full index embeds every
file first and then swaps the results in for the workspace's old documents,
so rescans never duplicate them and a cancelled run changes nothing. A
watched workspace is kept current incrementally through the reconciler.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

from lumen.errors import IndexingError, ScanError
from lumen.ingest.batching import CancelToken, IndexingResult
from lumen.ingest.indexer import DocumentIndexer
from lumen.store.library import DocumentLibrary
from lumen.store.models import (
    Chunk,
    Document,
    DocumentKind,
    EmbeddedChunk,
    RegistryEntry,
    Workspace,
    code_source_id,
)
from lumen.store.registry import normalize_path
from lumen.watch.reconciler import ProcessOutcome

logger = logging.getLogger(__name__)

DEFAULT_CODE_EXTENSIONS: frozenset[str] = frozenset(
    ["swift", "m", "mm", "py", "js", "ts", "tsx", "jsx", "java", "kt", "rb", "rs", "c", "cc", "cpp", "h", "hpp"]
)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def should_ignore(relative_path: str, patterns: list[str]) -> bool:
    """True if *relative_path* matches any ignore pattern.

    A pattern matches the exact relative path, anything below it
    (``pattern/``), any file with its extension (``*.ext``), or any path
    whose last component equals it.
    """
    relative_path = relative_path.strip("/")
    name = relative_path.rsplit("/", 1)[-1]
    suffix = name.rsplit(".", 1)[-1] if "." in name else ""
    for pattern in patterns:
        if relative_path == pattern or relative_path.startswith(pattern + "/"):
            return True
        if pattern.startswith("*.") and suffix == pattern[2:]:
            return True
        if name == pattern:
            return True
    return False


def is_allowed_extension(path: Path, languages: list[str]) -> bool:
    allowed = {x.lower().lstrip(".") for x in languages} if languages else DEFAULT_CODE_EXTENSIONS
    return path.suffix.lower().lstrip(".") in allowed


def list_workspace_files(workspace: Workspace) -> dict[str, float]:
    """Map absolute path → mtime for every indexable file of *workspace*.

    Hidden entries, ignored paths and disallowed extensions are skipped.

    Raises:
        ScanError: The root is missing or unreadable.
    """
    root = Path(workspace.root)
    if not root.is_dir():
        raise ScanError(str(root), "workspace root not found")

    patterns = workspace.effective_ignore_patterns()
    found: dict[str, float] = {}

    def _on_error(exc: OSError) -> None:
        logger.debug("Skipping unreadable %s: %s", exc.filename, exc)

    try:
        with os.scandir(root) as entries:
            next(entries, None)
    except OSError as exc:
        raise ScanError(str(root), exc.strerror or str(exc)) from exc

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        rel_dir = os.path.relpath(dirpath, root)
        rel_dir = "" if rel_dir == "." else rel_dir.replace(os.sep, "/")
        dirnames[:] = sorted(
            d
            for d in dirnames
            if not d.startswith(".") and not should_ignore(f"{rel_dir}/{d}".strip("/"), patterns)
        )
        for filename in filenames:
            if filename.startswith("."):
                continue
            rel = f"{rel_dir}/{filename}".strip("/")
            path = Path(dirpath) / filename
            if should_ignore(rel, patterns) or not is_allowed_extension(path, workspace.languages):
                continue
            try:
                found[normalize_path(path)] = path.stat().st_mtime
            except OSError:
                continue
    return found


def relative_path(workspace: Workspace, path: Path | str) -> str:
    return Path(path).resolve().relative_to(Path(workspace.root).resolve()).as_posix()


# ---------------------------------------------------------------------------
# Indexer
# ---------------------------------------------------------------------------


class WorkspaceIndexer:
    """Index the files of code workspaces into the library."""

    def __init__(self, library: DocumentLibrary, indexer: DocumentIndexer) -> None:
        self._library = library
        self._indexer = indexer

    def scan_workspace(self, workspace: Workspace) -> list[Document]:
        """Return one new, uncataloged code document per eligible file.

        Raises:
            ScanError: The workspace root is missing.
        """
        files = list_workspace_files(workspace)
        return [self._new_document(workspace, Path(p)) for p in sorted(files)]

    def register_file(self, workspace: Workspace, path: Path) -> Document:
        rel = relative_path(workspace, path)
        return self._library.register_code_document(
            path,
            title=rel,
            workspace_id=workspace.id,
            source_id=code_source_id(workspace.id, rel),
        )

    def index_workspace(
        self,
        workspace: Workspace,
        cancel: CancelToken | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> IndexingResult:
        """Rescan *workspace* and re-index every file.

        Every file is chunked and embedded before anything is stored. The
        workspace's old documents are then replaced in one library swap.

        Raises:
            ScanError: The workspace root is missing.
            IndexingCancelled: *cancel* was set; the index is unchanged.
            EmbeddingError: A batch failed; the index is unchanged.
        """
        candidates = self.scan_workspace(workspace)
        result = IndexingResult()
        documents: list[Document] = []
        sources: dict[str, tuple[list[Chunk], list[EmbeddedChunk]]] = {}

        for i, document in enumerate(candidates):
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                sources[document.index_source_id] = self._prepare(workspace, document, cancel)
            except FileNotFoundError:
                result.skip("deleted")
            except IndexingError as exc:
                result.skip(exc.reason)
                documents.append(document)
            except OSError as exc:
                logger.warning("Cannot read %s: %s", document.file_ref, exc)
                result.skip("read error")
                documents.append(document)
            else:
                result.add_indexed(len(sources[document.index_source_id][0]))
                documents.append(document)
            if on_progress is not None:
                on_progress(i + 1, len(candidates))

        if cancel is not None:
            cancel.raise_if_cancelled()
        self._library.replace_workspace(workspace.id, documents, sources)
        logger.info("Workspace %s indexed: %s", workspace.name, result.summary)
        return result

    def index_document(
        self, workspace: Workspace, document: Document, cancel: CancelToken | None = None
    ) -> int:
        """Index one cataloged code document in place."""
        chunks, entries = self._prepare(workspace, document, cancel)
        self._library.replace_source(document.index_source_id, chunks, entries)
        return len(chunks)

    def remove_workspace(self, workspace: Workspace) -> list[Document]:
        """Drop every document, chunk and vector of *workspace*."""
        return self._library.purge_code_documents(workspace.id)

    def _new_document(self, workspace: Workspace, path: Path) -> Document:
        rel = relative_path(workspace, path)
        return Document(
            title=rel,
            file_ref=str(path.resolve()),
            kind=DocumentKind.CODE,
            workspace_id=workspace.id,
            source_id=code_source_id(workspace.id, rel),
        )

    def _prepare(
        self, workspace: Workspace, document: Document, cancel: CancelToken | None
    ) -> tuple[list[Chunk], list[EmbeddedChunk]]:
        path = Path(document.file_ref)
        content = path.read_bytes()
        metadata = {
            "file_path": relative_path(workspace, path),
            "workspace_id": workspace.id,
            "language": path.suffix.lstrip("."),
            "kind": DocumentKind.CODE.value,
            "document_id": document.id,
            "title": document.title,
        }
        self._library.touch(document, content.decode("utf-8", errors="replace"))
        return self._indexer.prepare(
            document.index_source_id,
            content,
            kind=DocumentKind.CODE,
            metadata=metadata,
            cancel=cancel,
        )


class WorkspaceSource:
    """Reconciler source for a watched workspace."""

    def __init__(self, workspace: Workspace, indexer: WorkspaceIndexer, library: DocumentLibrary) -> None:
        self.workspace = workspace
        self._indexer = indexer
        self._library = library

    def list_files(self) -> dict[str, float]:
        return list_workspace_files(self.workspace)

    def process(self, path: Path, previous: RegistryEntry | None) -> ProcessOutcome:
        document = self._indexer.register_file(self.workspace, path)
        try:
            chunks = self._indexer.index_document(self.workspace, document)
        except IndexingError as exc:
            # stale vectors from an earlier version must not outlive the edit
            self._library.remove_source(document.index_source_id)
            return ProcessOutcome(document.id, skip_reason=exc.reason)
        return ProcessOutcome(document.id, chunks)

    def remove(self, document_id: str) -> None:
        self._library.remove_document(document_id)
