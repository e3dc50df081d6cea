"""Structured error hierarchy for the lumen indexing core.

Every failure carries an explicit cause. Callers branch on the exception
type (or the ``reason`` tag for bulk accounting), never on message text.
"""

from __future__ import annotations


class LumenError(Exception):
    """Base class for all lumen errors."""


# ---------------------------------------------------------------------------
# Validation errors: counted per bulk run, never fatal
# ---------------------------------------------------------------------------


class IndexingError(LumenError):
    """Content was rejected before chunking.

    Attributes:
        reason: Short category tag used in ``IndexingResult.skip_reasons``.
    """

    reason: str = "invalid"


class FileTooLarge(IndexingError):
    reason = "too large"

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"File too large ({size / 1_000_000:.1f}MB, limit: {limit / 1_000_000:.1f}MB)"
        )


class BinaryContent(IndexingError):
    reason = "binary"

    def __init__(self) -> None:
        super().__init__("Binary content detected")


class EmptyContent(IndexingError):
    reason = "empty"

    def __init__(self) -> None:
        super().__init__("Empty or whitespace-only content")


class InvalidContent(IndexingError):
    reason = "invalid"

    def __init__(self, reason: str) -> None:
        self.detail = reason
        super().__init__(f"Invalid content: {reason}")


# ---------------------------------------------------------------------------
# Embedding errors: abort the current document only
# ---------------------------------------------------------------------------


class EmbeddingError(LumenError):
    """The embedding capability failed for a batch."""


class EmbeddingUnavailable(EmbeddingError):
    """No embedding capability is configured or reachable."""


class EmbeddingMismatch(EmbeddingError):
    """The capability broke its contract (vector count or dimension)."""

    def __init__(self, expected: int, got: int, what: str = "vectors") -> None:
        self.expected = expected
        self.got = got
        super().__init__(f"Embedding {what} mismatch: expected {expected}, got {got}")


# ---------------------------------------------------------------------------
# Everything else
# ---------------------------------------------------------------------------


class ExtractionError(LumenError):
    """No extraction strategy produced text for a file."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Unable to read text contents for {path}")


class ScanError(LumenError):
    """A watched root or workspace could not be scanned."""

    def __init__(self, root: str, cause: str) -> None:
        self.root = root
        self.cause = cause
        super().__init__(f"Cannot scan {root}: {cause}")


class IndexingCancelled(LumenError):
    """Cooperative cancellation was requested between batches."""


class NotFound(LumenError):
    """A document or workspace id is unknown."""
