"""Retrieval-augmented answering over the document library.

Pipeline:
  1. Embed the question with the same embedder used at index time.
  2. Query the vector index for the top-K most similar chunks. When a
     workspace scope is given, over-fetch candidates, drop code chunks from
     other workspaces and truncate.
  3. Render the chunks into a numbered context block.
  4. Send system + user messages to the language model and return (or
     stream) its output verbatim.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lumen.config import DEFAULT_SYSTEM_PROMPT
from lumen.errors import EmbeddingMismatch
from lumen.rag.llm_client import GenerationConfig
from lumen.store.models import DocumentKind, RetrievedChunk

if TYPE_CHECKING:
    from lumen.rag.llm_client import Embedder, LanguageModel
    from lumen.store.library import DocumentLibrary

logger = logging.getLogger(__name__)

NO_CONTEXT = "No relevant documents found."


@dataclass
class RAGConfig:
    """Configuration for a single retrieval.

    Attributes:
        top_k: Chunks returned for an unscoped query.
        system_prompt: System message sent ahead of the context.
        include_scores: Append ``(relevance: 0.87)`` to each context header.
        workspace_ids: Restrict code chunks to these workspaces. None means
            no restriction.
        workspace_top_k: Chunks kept after workspace filtering.
        workspace_candidates: Chunks fetched before workspace filtering.
        generation: Sampling parameters passed to the language model.
    """

    top_k: int = 6
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    include_scores: bool = False
    workspace_ids: set[str] | None = None
    workspace_top_k: int = 12
    workspace_candidates: int = 30
    generation: GenerationConfig = field(default_factory=GenerationConfig)


def build_context_block(chunks: list[RetrievedChunk], include_scores: bool = False) -> str:
    """Render *chunks* as numbered ``[i] Source: ...`` blocks."""
    if not chunks:
        return NO_CONTEXT
    blocks: list[str] = []
    for i, chunk in enumerate(chunks, start=1):
        header = f"[{i}] Source: {chunk.source_id}"
        if include_scores:
            header += f" (relevance: {chunk.score:.2f})"
        blocks.append(f"{header}\n{chunk.content}")
    return "\n\n".join(blocks)


def build_messages(query: str, context: str, system_prompt: str) -> list[dict[str, str]]:
    prompt = f"Context:\n{context}\n\nQuestion: {query}"
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": prompt},
    ]


class Retriever:
    def __init__(
        self,
        embedder: Embedder,
        library: DocumentLibrary,
        llm: LanguageModel | None = None,
    ) -> None:
        self._embedder = embedder
        self._library = library
        self._llm = llm

    def retrieve(self, query: str, config: RAGConfig | None = None) -> list[RetrievedChunk]:
        """Return the chunks most similar to *query*, best first.

        Raises:
            EmbeddingError: The query could not be embedded.
        """
        config = config or RAGConfig()
        vectors = self._embedder.embed([query])
        if len(vectors) != 1:
            raise EmbeddingMismatch(1, len(vectors))
        vector = vectors[0]

        if config.workspace_ids is None:
            return self._library.query_similar_chunks(vector, config.top_k)

        candidates = self._library.query_similar_chunks(vector, config.workspace_candidates)
        scoped = [c for c in candidates if self._in_scope(c, config.workspace_ids)]
        logger.debug(
            "Workspace filter kept %d of %d candidates", len(scoped), len(candidates)
        )
        return scoped[: config.workspace_top_k]

    def answer(self, query: str, config: RAGConfig | None = None) -> str:
        return "".join(self.stream_answer(query, config))

    def stream_answer(self, query: str, config: RAGConfig | None = None) -> Iterator[str]:
        """Yield the language model's answer to *query* as it is generated."""
        if self._llm is None:
            raise RuntimeError("Retriever has no language model configured")
        config = config or RAGConfig()
        chunks = self.retrieve(query, config)
        context = build_context_block(chunks, config.include_scores)
        messages = build_messages(query, context, config.system_prompt)
        yield from self._llm.stream(messages, config.generation)

    def _in_scope(self, chunk: RetrievedChunk, workspace_ids: set[str]) -> bool:
        document = self._library.document_for_source(chunk.source_id)
        if document is not None:
            kind, workspace_id = document.kind, document.workspace_id
        else:
            kind = DocumentKind(chunk.metadata.get("kind", DocumentKind.GENERIC.value))
            workspace_id = chunk.metadata.get("workspace_id")
        if kind is not DocumentKind.CODE:
            return True
        return workspace_id in workspace_ids
