"""Base chunker interface shared by the text and code strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from lumen.store.models import Chunk


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses split content into *units* (characters or lines) and let
    ``_split_window()`` walk them with a fixed window and overlap. The next
    window starts ``min(overlap, size)`` units before the previous end, so
    consecutive chunks share at most ``overlap`` units and together cover
    the whole input.
    """

    def __init__(self, size: int, overlap: int) -> None:
        if size < 1:
            raise ValueError("size must be >= 1")
        if overlap < 0:
            raise ValueError("overlap must be >= 0")
        self.size = size
        self.overlap = overlap

    @abstractmethod
    def split(self, content: str) -> list[str]:
        """Return the trimmed, non-empty segments of *content* in order."""

    def chunk(
        self,
        source_id: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> list[Chunk]:
        """Split *content* into Chunk objects filed under *source_id*.

        Args:
            source_id: Source the chunks belong to (document id or file URI).
            content: Full decoded text.
            metadata: Copied onto every chunk.

        Returns:
            Ordered list of Chunk objects with contiguous ``index`` from 0.
        """
        return self._make_chunks(source_id, self.split(content), metadata)

    def _split_window(self, units: list[str], joiner: str) -> list[str]:
        count = len(units)
        if count == 0:
            return []

        back = min(self.overlap, self.size)
        segments: list[str] = []
        start = 0
        while start < count:
            end = min(start + self.size, count)
            segment = joiner.join(units[start:end]).strip()
            if segment:
                segments.append(segment)
            if end >= count:
                break
            # overlap >= size would never advance; force one unit forward
            start = max(end - back, start + 1)
        return segments

    @staticmethod
    def _make_chunks(
        source_id: str, texts: list[str], metadata: dict[str, Any] | None = None
    ) -> list[Chunk]:
        return [
            Chunk(document_id=source_id, index=i, text=t, metadata=dict(metadata or {}))
            for i, t in enumerate(texts)
        ]
