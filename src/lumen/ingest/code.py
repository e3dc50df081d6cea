"""Source code chunker: line windows that never split a line."""

from __future__ import annotations

from typing import TYPE_CHECKING

from lumen.ingest.base import BaseChunker
from lumen.ingest.text import TextChunker
from lumen.store.models import DocumentKind

if TYPE_CHECKING:
    from lumen.config import ChunkingCfg


class CodeChunker(BaseChunker):
    """Split source files into windows of at most ``max_lines`` lines.

    Empty lines are kept so a chunk reproduces the original layout.
    """

    def __init__(self, max_lines: int = 80, overlap: int = 10) -> None:
        super().__init__(size=max_lines, overlap=overlap)

    @property
    def max_lines(self) -> int:
        return self.size

    def split(self, content: str) -> list[str]:
        normalized = content.replace("\r\n", "\n")
        if not normalized.strip():
            return []
        return self._split_window(normalized.split("\n"), "\n")


def chunker_for(kind: DocumentKind | str, config: ChunkingCfg | None = None) -> BaseChunker:
    """Return the chunking strategy for a document *kind*.

    Code is chunked by lines; every other kind by characters.
    """
    kind = DocumentKind(kind)
    if kind is DocumentKind.CODE:
        if config is None:
            return CodeChunker()
        return CodeChunker(max_lines=config.code_max_lines, overlap=config.code_overlap)
    if config is None:
        return TextChunker()
    return TextChunker(chunk_size=config.chunk_size, overlap=config.overlap)
