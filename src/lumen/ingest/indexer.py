"""Document indexer: validate → chunk → embed in batches → store.

A document is either fully indexed or left as it was. Chunks and vectors are
handed to the library in one ``replace_source`` call only after every batch
succeeded, so an embedding failure or a cancellation persists nothing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from lumen.config import ChunkingCfg, IndexingCfg
from lumen.errors import EmptyContent
from lumen.ingest.batching import CancelToken, embed_in_batches
from lumen.ingest.code import chunker_for
from lumen.ingest.validator import validate_content
from lumen.store.models import Chunk, DocumentKind, EmbeddedChunk

if TYPE_CHECKING:
    from lumen.rag.llm_client import Embedder
    from lumen.store.library import DocumentLibrary

logger = logging.getLogger(__name__)


class DocumentIndexer:
    """Turn document text into stored chunks and vectors.

    Args:
        embedder: Embedding capability used for every batch.
        library: Library that owns chunks and the vector index.
        config: Batch size, pause and size limit.
        chunking: Window sizes for the chunkers.
    """

    def __init__(
        self,
        embedder: Embedder,
        library: DocumentLibrary,
        config: IndexingCfg | None = None,
        chunking: ChunkingCfg | None = None,
    ) -> None:
        self._embedder = embedder
        self._library = library
        self._config = config or IndexingCfg()
        self._chunking = chunking or ChunkingCfg()

    def prepare(
        self,
        source_id: str,
        content: str | bytes,
        kind: DocumentKind | str = DocumentKind.GENERIC,
        metadata: dict[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> tuple[list[Chunk], list[EmbeddedChunk]]:
        """Validate, chunk and embed *content* without storing anything.

        Raises:
            IndexingError: Content rejected by validation, or no chunks.
            EmbeddingError: An embedding batch failed.
            IndexingCancelled: *cancel* was set between batches.
        """
        text = validate_content(content, self._config.max_bytes)
        chunks = chunker_for(kind, self._chunking).chunk(source_id, text, metadata)
        if not chunks:
            raise EmptyContent()

        vectors = embed_in_batches(
            self._embedder,
            [c.text for c in chunks],
            batch_size=self._config.batch_size,
            pause=self._config.batch_pause,
            cancel=cancel,
        )
        entries = [
            EmbeddedChunk(chunk_id=c.id, document_id=source_id, index=c.index, vector=v)
            for c, v in zip(chunks, vectors)
        ]
        return chunks, entries

    def index_document(
        self,
        source_id: str,
        content: str | bytes,
        kind: DocumentKind | str = DocumentKind.GENERIC,
        metadata: dict[str, Any] | None = None,
        cancel: CancelToken | None = None,
    ) -> int:
        """Index *content* under *source_id*, replacing anything stored there.

        Returns:
            Number of chunks stored.

        Raises:
            IndexingError: Content rejected by validation, or no chunks.
            EmbeddingError: An embedding batch failed; nothing was stored.
            IndexingCancelled: *cancel* was set between batches.
        """
        chunks, entries = self.prepare(source_id, content, kind, metadata, cancel)
        self._library.replace_source(source_id, chunks, entries)
        logger.debug("Indexed %s: %d chunks", source_id, len(chunks))
        return len(chunks)

    def delete_document(self, source_id: str) -> None:
        """Remove all chunks and vectors of *source_id*. Idempotent."""
        self._library.remove_source(source_id)

    def reset(self) -> None:
        """Drop every chunk and vector in the index. Idempotent."""
        self._library.clear_index()
