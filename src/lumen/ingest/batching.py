"""Batched embedding with backpressure, cancellation and bulk-run accounting."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from lumen.errors import EmbeddingMismatch, IndexingCancelled

if TYPE_CHECKING:
    from lumen.rag.llm_client import Embedder


class CancelToken:
    """Cooperative cancellation flag checked between embedding batches."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise IndexingCancelled("Indexing cancelled")


@dataclass
class IndexingResult:
    """Outcome of a bulk indexing run.

    Attributes:
        indexed: Documents whose chunks and vectors were stored.
        skipped: Documents rejected or failed; see ``skip_reasons``.
        skip_reasons: Count per reason tag (``"too large"``, ``"binary"``...).
        chunks_created: Total chunks stored across indexed documents.
        removed: Documents dropped because their file disappeared.
    """

    indexed: int = 0
    skipped: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)
    chunks_created: int = 0
    removed: int = 0

    def add_indexed(self, chunks: int) -> None:
        self.indexed += 1
        self.chunks_created += chunks

    def skip(self, reason: str) -> None:
        self.skipped += 1
        self.skip_reasons[reason] = self.skip_reasons.get(reason, 0) + 1

    def merge(self, other: IndexingResult) -> None:
        self.indexed += other.indexed
        self.chunks_created += other.chunks_created
        self.removed += other.removed
        for reason, count in other.skip_reasons.items():
            self.skipped += count
            self.skip_reasons[reason] = self.skip_reasons.get(reason, 0) + count

    @property
    def summary(self) -> str:
        parts = [f"Indexed: {self.indexed} documents", f"{self.chunks_created} chunks"]
        if self.skipped:
            parts.append(f"Skipped: {self.skipped}")
            reasons = ", ".join(
                f"{reason} ({count})" for reason, count in sorted(self.skip_reasons.items())
            )
            parts.append(reasons)
        if self.removed:
            parts.append(f"Removed: {self.removed}")
        return " • ".join(parts)


def embed_in_batches(
    embedder: Embedder,
    texts: list[str],
    *,
    batch_size: int = 2,
    pause: float = 0.02,
    cancel: CancelToken | None = None,
) -> list[list[float]]:
    """Embed *texts* in fixed-size batches, sleeping *pause* seconds after each.

    Returns one vector per text, in order.

    Raises:
        IndexingCancelled: *cancel* was set before a batch started.
        EmbeddingMismatch: A batch returned the wrong number of vectors or
            vectors of differing length.
        EmbeddingError: Propagated from the embedder unchanged.
    """
    vectors: list[list[float]] = []
    dimension = 0
    for start in range(0, len(texts), batch_size):
        if cancel is not None:
            cancel.raise_if_cancelled()
        batch = texts[start : start + batch_size]
        result = embedder.embed(batch)
        if len(result) != len(batch):
            raise EmbeddingMismatch(len(batch), len(result))
        for vector in result:
            if dimension == 0:
                dimension = len(vector)
            elif len(vector) != dimension:
                raise EmbeddingMismatch(dimension, len(vector), what="dimension")
        vectors.extend(list(v) for v in result)
        if pause > 0:
            time.sleep(pause)
    return vectors
