"""Inbox folder: every supported file dropped in becomes a library document.

The inbox is a shallow-or-deep tree of user files. Changed files are
re-imported from scratch (the old document is removed first); files that
disappear take their document with them.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from lumen.errors import EmbeddingError, ExtractionError, IndexingError, ScanError
from lumen.ingest.indexer import DocumentIndexer
from lumen.store.library import DocumentLibrary
from lumen.store.models import RegistryEntry
from lumen.store.registry import normalize_path
from lumen.watch.reconciler import ProcessOutcome

logger = logging.getLogger(__name__)


def is_supported(path: Path, extensions: list[str]) -> bool:
    return path.suffix.lower().lstrip(".") in {e.lower().lstrip(".") for e in extensions}


class InboxSource:
    """Reconciler source that imports inbox files as generic documents."""

    def __init__(
        self,
        folder: Path,
        library: DocumentLibrary,
        indexer: DocumentIndexer,
        extensions: list[str],
    ) -> None:
        self.folder = Path(folder)
        self._library = library
        self._indexer = indexer
        self._extensions = list(extensions)

    def list_files(self) -> dict[str, float]:
        if not self.folder.is_dir():
            raise ScanError(str(self.folder), "inbox folder not found")
        found: dict[str, float] = {}
        try:
            for dirpath, dirnames, filenames in os.walk(self.folder):
                dirnames[:] = [d for d in dirnames if not d.startswith(".")]
                for filename in filenames:
                    path = Path(dirpath) / filename
                    if filename.startswith(".") or not is_supported(path, self._extensions):
                        continue
                    found[normalize_path(path)] = path.stat().st_mtime
        except OSError as exc:
            raise ScanError(str(self.folder), str(exc)) from exc
        return found

    def process(self, path: Path, previous: RegistryEntry | None) -> ProcessOutcome:
        if previous is not None and previous.document_id:
            self._library.remove_document(previous.document_id)

        try:
            document, text = self._library.import_document_text(path)
        except ExtractionError as exc:
            # recorded without a document; the file is retried once it changes
            logger.warning("Inbox import failed for %s: %s", path, exc)
            return ProcessOutcome(None, skip_reason="read error")
        except FileNotFoundError:
            raise
        except OSError as exc:
            logger.warning("Inbox import failed for %s: %s", path, exc)
            return ProcessOutcome(None, skip_reason="read error", retry=True)

        metadata = {
            "title": document.title,
            "kind": document.kind.value,
            "document_id": document.id,
            "file_path": str(path),
        }
        try:
            chunks = self._indexer.index_document(
                document.index_source_id, text, kind=document.kind, metadata=metadata
            )
        except IndexingError as exc:
            # the import-time chunks have no vectors
            self._library.remove_source(document.index_source_id)
            return ProcessOutcome(document.id, skip_reason=exc.reason)
        except EmbeddingError as exc:
            logger.warning("Embedding failed for inbox file %s: %s", path, exc)
            self._library.remove_document(document.id)
            return ProcessOutcome(None, skip_reason="embedding failed", retry=True)
        return ProcessOutcome(document.id, chunks)

    def remove(self, document_id: str) -> None:
        self._library.remove_document(document_id)
