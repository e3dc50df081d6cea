"""Shared pytest fixtures."""

from __future__ import annotations

import threading

import pytest

from lumen.config import ChunkingCfg, IndexingCfg, LumenConfig
from lumen.errors import EmbeddingError
from lumen.ingest.indexer import DocumentIndexer
from lumen.kb import KnowledgeBase
from lumen.store.library import DocumentLibrary

VOCABULARY = ("alpha", "beta", "gamma", "delta", "swift", "python")


class FakeEmbedder:
    """Deterministic bag-of-words embedder over a tiny vocabulary.

    Every vector carries a small constant component so no text embeds to
    the zero vector.
    """

    def __init__(self, dimension_extra: int = 0) -> None:
        self.calls: list[list[str]] = []
        self._extra = dimension_extra
        self._lock = threading.Lock()

    def embed(self, texts: list[str]) -> list[list[float]]:
        with self._lock:
            self.calls.append(list(texts))
        return [self.vector(t) for t in texts]

    def vector(self, text: str) -> list[float]:
        words = text.lower().split()
        counts = [float(sum(1 for w in words if w.strip(".,:;") == v)) for v in VOCABULARY]
        return counts + [0.01] + [0.0] * self._extra


class FailingEmbedder:
    """Fails on the *fail_on*-th call (1-based); earlier calls succeed."""

    def __init__(self, fail_on: int = 1) -> None:
        self.fail_on = fail_on
        self.calls = 0
        self._inner = FakeEmbedder()

    def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        if self.calls >= self.fail_on:
            raise EmbeddingError("service unavailable")
        return self._inner.embed(texts)


class FakeLLM:
    def __init__(self, pieces: tuple[str, ...] = ("The ", "answer.")) -> None:
        self.pieces = pieces
        self.messages: list[list[dict[str, str]]] = []

    def stream(self, messages, config):
        self.messages.append(messages)
        yield from self.pieces


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fast_indexing() -> IndexingCfg:
    return IndexingCfg(batch_pause=0.0)


@pytest.fixture
def library(tmp_path) -> DocumentLibrary:
    lib = DocumentLibrary(tmp_path / "library")
    lib.load()
    return lib


@pytest.fixture
def indexer(embedder, library, fast_indexing) -> DocumentIndexer:
    return DocumentIndexer(embedder, library, config=fast_indexing, chunking=ChunkingCfg())


@pytest.fixture
def kb_config(tmp_path) -> LumenConfig:
    cfg = LumenConfig()
    cfg.storage.home = str(tmp_path / "library")
    cfg.indexing.batch_pause = 0.0
    return cfg


@pytest.fixture
def kb(kb_config, embedder) -> KnowledgeBase:
    return KnowledgeBase(kb_config, embedder=embedder, llm=FakeLLM())
