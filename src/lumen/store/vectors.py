"""In-memory vector index with cosine top-K search and JSON snapshots.

The index holds one flat list of ``EmbeddedChunk`` entries sharing a single
``dimension``. The first vector added after the index is empty establishes
the dimension; later entries of any other length are dropped so a query can
never hit a mismatched row.

Mutations are serialized by one lock. Queries read the current entry list
(replaced, never mutated in place) and do not take the lock while scoring.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from lumen.store.jsonio import read_json, write_json
from lumen.store.models import EmbeddedChunk

logger = logging.getLogger(__name__)


@dataclass
class IndexHealth:
    is_healthy: bool
    entry_count: int
    dimension: int
    issues: list[str] = field(default_factory=list)

    @property
    def summary(self) -> str:
        if self.is_healthy:
            return f"Vector index healthy: {self.entry_count} chunks, dimension {self.dimension}"
        return f"Issues found: {', '.join(self.issues)}"


class VectorIndex:
    """Single-writer store of embedding vectors."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: list[EmbeddedChunk] = []
        self._dimension = 0

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def entries(self) -> list[EmbeddedChunk]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def query(self, vector: list[float], top_k: int) -> list[EmbeddedChunk]:
        """Return at most *top_k* entries ordered by cosine similarity."""
        return [entry for entry, _ in self.query_scored(vector, top_k)]

    def query_scored(self, vector: list[float], top_k: int) -> list[tuple[EmbeddedChunk, float]]:
        """Like ``query`` but also returns each entry's similarity score.

        Returns ``[]`` when the index is empty, *top_k* is not positive, or
        the query length differs from the index dimension. Ties keep
        insertion order.
        """
        entries, dimension = self._entries, self._dimension
        if dimension == 0 or top_k <= 0 or len(vector) != dimension or not entries:
            return []

        matrix = np.asarray([e.vector for e in entries], dtype=np.float64)
        scores = cosine_scores(np.asarray(vector, dtype=np.float64), matrix)
        order = np.argsort(-scores, kind="stable")[:top_k]
        return [(entries[i], float(scores[i])) for i in order]

    def check_integrity(self) -> IndexHealth:
        """Verify the dimension invariant over the stored entries."""
        entries, dimension = self._entries, self._dimension
        issues: list[str] = []
        if entries and dimension == 0:
            issues.append("Entries present but no dimension recorded")
        if not entries and dimension != 0:
            issues.append(f"Empty index still records dimension {dimension}")
        bad = sum(1 for e in entries if len(e.vector) != dimension)
        if bad:
            issues.append(f"{bad} entries disagree with dimension {dimension}")
        return IndexHealth(
            is_healthy=not issues,
            entry_count=len(entries),
            dimension=dimension,
            issues=issues,
        )

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def add_entries(self, new_entries: list[EmbeddedChunk]) -> None:
        with self._lock:
            self._entries = self._appended(self._entries, new_entries)

    def replace_entries(self, document_id: str, new_entries: list[EmbeddedChunk]) -> None:
        """Drop every entry of *document_id*, then add *new_entries*."""
        with self._lock:
            kept = [e for e in self._entries if e.document_id != document_id]
            if not kept:
                self._dimension = 0
            self._entries = self._appended(kept, new_entries)

    def remove_entries(self, document_id: str) -> None:
        with self._lock:
            self._entries = [e for e in self._entries if e.document_id != document_id]
            if not self._entries:
                self._dimension = 0

    def clear(self) -> None:
        with self._lock:
            self._entries = []
            self._dimension = 0

    def swap(self, other: VectorIndex) -> None:
        """Replace this index's contents with *other*'s in one step."""
        with self._lock:
            self._entries = list(other._entries)
            self._dimension = other._dimension

    def _appended(
        self, base: list[EmbeddedChunk], new_entries: list[EmbeddedChunk]
    ) -> list[EmbeddedChunk]:
        if not new_entries:
            return base
        if self._dimension == 0:
            self._dimension = len(new_entries[0].vector)
        accepted = [e for e in new_entries if self._dimension > 0 and len(e.vector) == self._dimension]
        dropped = len(new_entries) - len(accepted)
        if dropped:
            logger.warning(
                "Dropped %d vectors not matching index dimension %d", dropped, self._dimension
            )
        if not base and not accepted:
            self._dimension = 0
        return base + accepted

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Path) -> None:
        with self._lock:
            snapshot = {
                "dimension": self._dimension,
                "entries": [e.to_dict() for e in self._entries],
            }
            write_json(path, snapshot)

    def load(self, path: Path) -> None:
        """Load a snapshot; a missing or malformed file yields an empty index."""
        raw = read_json(path, default=None)
        entries: list[EmbeddedChunk] = []
        dimension = 0
        if isinstance(raw, dict):
            try:
                dimension = int(raw.get("dimension", 0))
                entries = [EmbeddedChunk.from_dict(e) for e in raw.get("entries", [])]
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Vector snapshot %s is malformed, starting empty: %s", path, exc)
                entries, dimension = [], 0
        if entries and any(len(e.vector) != dimension for e in entries):
            logger.warning("Vector snapshot %s violates its dimension, starting empty", path)
            entries, dimension = [], 0
        if not entries:
            dimension = 0
        with self._lock:
            self._entries = entries
            self._dimension = dimension


def cosine_scores(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of *query* against each row of *matrix*.

    A zero-norm vector scores 0.0 against anything.
    """
    dots = matrix @ query
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    scores = np.zeros_like(dots)
    np.divide(dots, norms, out=scores, where=norms > 0)
    return scores
