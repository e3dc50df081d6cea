"""Document library: the catalog of documents, their chunks and vectors.

Layout under the library root::

    documents.json      catalog of Document records
    chunks.json         {source_id: [Chunk, ...]}
    vectors.json        VectorIndex snapshot
    files/<doc-id>/     managed copies of imported originals

The library is the only writer of these files. Every mutation runs under one
re-entrant lock and ends with an atomic ``persist()``.
"""

from __future__ import annotations

import logging
import shutil
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from lumen.config import ChunkingCfg, IndexingCfg
from lumen.errors import IndexingError, LumenError
from lumen.ingest.batching import CancelToken, IndexingResult, embed_in_batches
from lumen.ingest.code import chunker_for
from lumen.ingest.extract import extract_text
from lumen.store.jsonio import read_json, write_json
from lumen.store.models import (
    Chunk,
    Document,
    DocumentKind,
    EmbeddedChunk,
    RetrievedChunk,
    utc_now,
)
from lumen.store.vectors import IndexHealth, VectorIndex

if TYPE_CHECKING:
    from lumen.rag.llm_client import Embedder

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200


def _word_count(text: str) -> int:
    return len(text.split())


class DocumentLibrary:
    """Persistent catalog of documents, chunks and the vector index."""

    def __init__(
        self,
        root: Path,
        chunking: ChunkingCfg | None = None,
    ) -> None:
        self.root = Path(root)
        self._chunking = chunking or ChunkingCfg()
        self._lock = threading.RLock()
        self._documents: list[Document] = []
        self._chunks: dict[str, list[Chunk]] = {}
        self.vectors = VectorIndex()

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def documents_path(self) -> Path:
        return self.root / "documents.json"

    @property
    def chunks_path(self) -> Path:
        return self.root / "chunks.json"

    @property
    def vectors_path(self) -> Path:
        return self.root / "vectors.json"

    @property
    def files_dir(self) -> Path:
        return self.root / "files"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Read the catalog from disk; unreadable files load as empty."""
        raw_docs = read_json(self.documents_path, default=[])
        raw_chunks = read_json(self.chunks_path, default={})

        documents: list[Document] = []
        chunks: dict[str, list[Chunk]] = {}
        try:
            documents = [Document.from_dict(d) for d in raw_docs]
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Document catalog is malformed, starting empty: %s", exc)
        try:
            chunks = {
                str(source): [Chunk.from_dict(c) for c in items]
                for source, items in dict(raw_chunks).items()
            }
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Chunk catalog is malformed, starting empty: %s", exc)

        with self._lock:
            self._documents = documents
            self._chunks = chunks
            self.vectors.load(self.vectors_path)
        logger.debug(
            "Loaded %d documents, %d chunk sources, %d vectors",
            len(documents),
            len(chunks),
            len(self.vectors),
        )

    def persist(self) -> None:
        with self._lock:
            write_json(self.documents_path, [d.to_dict() for d in self._documents])
            write_json(
                self.chunks_path,
                {source: [c.to_dict() for c in items] for source, items in self._chunks.items()},
            )
            self.vectors.save(self.vectors_path)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def documents(self) -> list[Document]:
        return list(self._documents)

    def document(self, document_id: str) -> Document | None:
        return next((d for d in self._documents if d.id == document_id), None)

    def document_for_file(self, path: Path | str) -> Document | None:
        ref = str(Path(path).resolve())
        return next((d for d in self._documents if d.file_ref == ref), None)

    def document_for_source(self, source_id: str) -> Document | None:
        return next((d for d in self._documents if d.index_source_id == source_id), None)

    def chunks_for(self, source_id: str) -> list[Chunk]:
        return list(self._chunks.get(source_id, []))

    def text_content(self, document: Document) -> str:
        """Extract the current text of *document*'s file."""
        return extract_text(Path(document.file_ref))

    def health(self) -> IndexHealth:
        return self.vectors.check_integrity()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def import_document(
        self,
        source: Path,
        kind: DocumentKind | str = DocumentKind.GENERIC,
        title: str | None = None,
    ) -> Document:
        """Copy *source* into managed storage and catalog it.

        The document is chunked but not embedded; pass it to
        ``DocumentIndexer.index_document`` to make it searchable.

        Raises:
            ExtractionError: If no extraction strategy yields text.
        """
        return self.import_document_text(source, kind, title)[0]

    def import_document_text(
        self,
        source: Path,
        kind: DocumentKind | str = DocumentKind.GENERIC,
        title: str | None = None,
    ) -> tuple[Document, str]:
        """Like :meth:`import_document`, also returning the extracted text."""
        source = Path(source)
        text = extract_text(source)
        kind = DocumentKind(kind)

        document = Document(title=title or source.stem, file_ref="", kind=kind)
        target_dir = self.files_dir / document.id
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / source.name
        shutil.copy2(source, target)

        document.file_ref = str(target.resolve())
        document.preview = text[:PREVIEW_CHARS]
        document.word_count = _word_count(text)
        chunks = chunker_for(kind, self._chunking).chunk(
            document.id, text, self._chunk_metadata(document)
        )

        with self._lock:
            self._documents.append(document)
            self._chunks[document.id] = chunks
            self.persist()
        logger.info("Imported %s as %s (%d chunks)", source, document.id, len(chunks))
        return document, text

    def remove_document(self, document_id: str) -> Document | None:
        """Delete a document with its chunks, vectors and managed original.

        Unknown ids are ignored and return None.
        """
        with self._lock:
            document = self.document(document_id)
            if document is None:
                return None
            self._documents = [d for d in self._documents if d.id != document_id]
            self._chunks.pop(document.index_source_id, None)
            self.vectors.remove_entries(document.index_source_id)
            self.persist()
        self._delete_managed_copy(document)
        logger.info("Removed document %s (%s)", document.id, document.title)
        return document

    def register_code_document(
        self,
        file_ref: Path | str,
        title: str,
        workspace_id: str,
        source_id: str | None = None,
    ) -> Document:
        """Upsert a code document keyed by its file path."""
        ref = str(Path(file_ref).resolve())
        with self._lock:
            document = next((d for d in self._documents if d.file_ref == ref), None)
            if document is None:
                document = Document(
                    title=title,
                    file_ref=ref,
                    kind=DocumentKind.CODE,
                    workspace_id=workspace_id,
                    source_id=source_id,
                )
                self._documents.append(document)
            else:
                document.title = title
                document.kind = DocumentKind.CODE
                document.workspace_id = workspace_id
                document.source_id = source_id
                document.updated_at = utc_now()
            self.persist()
        return document

    def purge_code_documents(self, workspace_id: str) -> list[Document]:
        """Remove every code document of *workspace_id* with chunks and vectors."""
        with self._lock:
            purged = [
                d
                for d in self._documents
                if d.kind is DocumentKind.CODE and d.workspace_id == workspace_id
            ]
            if not purged:
                return []
            ids = {d.id for d in purged}
            self._documents = [d for d in self._documents if d.id not in ids]
            for document in purged:
                self._chunks.pop(document.index_source_id, None)
                self.vectors.remove_entries(document.index_source_id)
            self.persist()
        logger.info("Purged %d code documents of workspace %s", len(purged), workspace_id)
        return purged

    def replace_workspace(
        self,
        workspace_id: str,
        documents: list[Document],
        sources: dict[str, tuple[list[Chunk], list[EmbeddedChunk]]],
    ) -> list[Document]:
        """Swap every code document of *workspace_id* for *documents*.

        *sources* maps a source ID to its chunks and vectors. The purge and
        the insert happen under one lock and end in a single persist.

        Returns:
            The documents that were replaced.
        """
        with self._lock:
            purged = [
                d
                for d in self._documents
                if d.kind is DocumentKind.CODE and d.workspace_id == workspace_id
            ]
            ids = {d.id for d in purged}
            self._documents = [d for d in self._documents if d.id not in ids]
            for document in purged:
                self._chunks.pop(document.index_source_id, None)
                self.vectors.remove_entries(document.index_source_id)
            self._documents.extend(documents)
            for source_id, (chunks, entries) in sources.items():
                self._chunks[source_id] = list(chunks)
                self.vectors.add_entries(entries)
            self.persist()
        logger.info(
            "Replaced workspace %s: %d documents out, %d in",
            workspace_id,
            len(purged),
            len(documents),
        )
        return purged

    def touch(self, document: Document, text: str) -> None:
        """Refresh preview, word count and ``updated_at`` from *text*."""
        with self._lock:
            document.preview = text[:PREVIEW_CHARS]
            document.word_count = _word_count(text)
            document.updated_at = utc_now()

    # ------------------------------------------------------------------
    # Chunks + vectors
    # ------------------------------------------------------------------

    def replace_source(
        self,
        source_id: str,
        chunks: list[Chunk],
        entries: list[EmbeddedChunk],
    ) -> None:
        """Atomically replace the chunks and vectors filed under *source_id*."""
        with self._lock:
            if chunks:
                self._chunks[source_id] = list(chunks)
            else:
                self._chunks.pop(source_id, None)
            self.vectors.replace_entries(source_id, entries)
            self.persist()

    def remove_source(self, source_id: str) -> None:
        with self._lock:
            self._chunks.pop(source_id, None)
            self.vectors.remove_entries(source_id)
            self.persist()

    def clear_index(self) -> None:
        """Drop every chunk and vector; the document catalog is kept."""
        with self._lock:
            self._chunks = {}
            self.vectors.clear()
            self.persist()

    def query_similar_chunks(self, vector: list[float], top_k: int) -> list[RetrievedChunk]:
        """Return the *top_k* stored chunks most similar to *vector*."""
        chunks = self._chunks
        results: list[RetrievedChunk] = []
        for entry, score in self.vectors.query_scored(vector, top_k):
            chunk = next(
                (c for c in chunks.get(entry.document_id, []) if c.id == entry.chunk_id),
                None,
            )
            if chunk is None:
                logger.debug("Vector %s has no chunk; skipped", entry.id)
                continue
            results.append(
                RetrievedChunk(
                    source_id=entry.document_id,
                    chunk_index=entry.index,
                    content=chunk.text,
                    score=score,
                    metadata=dict(chunk.metadata),
                )
            )
        return results

    def rebuild_index(
        self,
        embedder: Embedder,
        include_code: bool = False,
        cancel: CancelToken | None = None,
        max_file_bytes: int = 1_500_000,
        indexing: IndexingCfg | None = None,
    ) -> IndexingResult:
        """Re-chunk and re-embed every eligible document.

        Chunks and vectors are swapped in only after every batch succeeded;
        a cancellation or embedding failure leaves the index untouched.
        Code sources are preserved as-is when *include_code* is False.

        Raises:
            IndexingCancelled: *cancel* was set.
            EmbeddingError: Any batch failed.
        """
        indexing = indexing or IndexingCfg()
        result = IndexingResult()
        rebuilt: dict[str, list[Chunk]] = {}

        for document in self.documents:
            if document.kind is DocumentKind.CODE and not include_code:
                continue
            path = Path(document.file_ref)
            try:
                if path.stat().st_size > max_file_bytes:
                    result.skip("too large")
                    continue
                text = self.text_content(document)
            except (OSError, LumenError) as exc:
                logger.warning("Skipping %s during rebuild: %s", document.title, exc)
                result.skip(exc.reason if isinstance(exc, IndexingError) else "read error")
                continue
            source_id = document.index_source_id
            chunks = chunker_for(document.kind, self._chunking).chunk(
                source_id, text, self._chunk_metadata(document)
            )
            if not chunks:
                result.skip("empty")
                continue
            rebuilt[source_id] = chunks
            result.add_indexed(len(chunks))

        ordered = [c for chunks in rebuilt.values() for c in chunks]
        vectors = embed_in_batches(
            embedder,
            [c.text for c in ordered],
            batch_size=indexing.batch_size,
            pause=indexing.batch_pause,
            cancel=cancel,
        )

        with self._lock:
            # documents removed while embedding ran must not come back
            for source_id in [s for s in rebuilt if self.document_for_source(s) is None]:
                del rebuilt[source_id]
            fresh = VectorIndex()
            new_chunks: dict[str, list[Chunk]] = {}
            if not include_code:
                code_sources = {
                    d.index_source_id for d in self._documents if d.kind is DocumentKind.CODE
                }
                new_chunks = {s: c for s, c in self._chunks.items() if s in code_sources}
                fresh.add_entries(
                    [e for e in self.vectors.entries if e.document_id in code_sources]
                )
            new_chunks.update(rebuilt)
            fresh.add_entries(
                [
                    EmbeddedChunk(
                        chunk_id=c.id, document_id=c.document_id, index=c.index, vector=v
                    )
                    for c, v in zip(ordered, vectors)
                    if c.document_id in rebuilt
                ]
            )
            self._chunks = new_chunks
            self.vectors.swap(fresh)
            self.persist()

        logger.info("Rebuilt index: %s", result.summary)
        return result

    def wipe_all(self) -> None:
        """Delete every document, chunk, vector and managed original."""
        with self._lock:
            self._documents = []
            self._chunks = {}
            self.vectors.clear()
            if self.files_dir.exists():
                shutil.rmtree(self.files_dir)
            self.persist()
        logger.info("Wiped library at %s", self.root)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _chunk_metadata(document: Document) -> dict[str, str]:
        metadata = {
            "title": document.title,
            "kind": document.kind.value,
            "document_id": document.id,
            "file_path": document.file_ref,
        }
        if document.workspace_id:
            metadata["workspace_id"] = document.workspace_id
        return metadata

    def _delete_managed_copy(self, document: Document) -> None:
        path = Path(document.file_ref)
        managed = self.files_dir.resolve()
        if not path.is_relative_to(managed):
            return
        folder = path.parent
        shutil.rmtree(folder, ignore_errors=True)
