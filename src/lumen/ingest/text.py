"""Plain text chunker: fixed character window with overlap."""

from __future__ import annotations

from lumen.ingest.base import BaseChunker


class TextChunker(BaseChunker):
    """Split prose into character windows.

    Default: 1000 characters / 200 overlap. Line endings are normalised to
    ``\\n`` before splitting so Windows files chunk the same way.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        super().__init__(size=chunk_size, overlap=overlap)

    @property
    def chunk_size(self) -> int:
        return self.size

    def split(self, content: str) -> list[str]:
        normalized = content.replace("\r\n", "\n")
        if not normalized.strip():
            return []
        return self._split_window(list(normalized), "")
