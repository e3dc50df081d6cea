"""Lumen ingest pipeline: validation, chunking, batched embedding."""

from lumen.ingest.base import BaseChunker
from lumen.ingest.batching import CancelToken, IndexingResult
from lumen.ingest.code import CodeChunker, chunker_for
from lumen.ingest.text import TextChunker
from lumen.ingest.validator import validate_content

__all__ = [
    "BaseChunker",
    "CancelToken",
    "CodeChunker",
    "IndexingResult",
    "TextChunker",
    "chunker_for",
    "validate_content",
]
