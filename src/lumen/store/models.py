"""Domain models for the lumen catalog, vector index and watchers."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


class DocumentKind(str, Enum):
    JOURNAL = "journal"
    NOTE = "note"
    GENERIC = "generic"
    CODE = "code"


@dataclass
class Document:
    title: str
    file_ref: str
    kind: DocumentKind = DocumentKind.GENERIC
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    preview: str | None = None
    word_count: int | None = None
    workspace_id: str | None = None
    source_id: str | None = None  # vector-index key; None means the document id

    @property
    def index_source_id(self) -> str:
        return self.source_id or self.id

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Document:
        return cls(
            id=str(data["id"]),
            title=str(data["title"]),
            file_ref=str(data["file_ref"]),
            kind=DocumentKind(data.get("kind", "generic")),
            created_at=str(data.get("created_at") or utc_now()),
            updated_at=str(data.get("updated_at") or utc_now()),
            preview=data.get("preview"),
            word_count=data.get("word_count"),
            workspace_id=data.get("workspace_id"),
            source_id=data.get("source_id"),
        )


@dataclass
class Chunk:
    document_id: str
    index: int
    text: str
    id: str = field(default_factory=_new_id)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Chunk:
        return cls(
            id=str(data["id"]),
            document_id=str(data["document_id"]),
            index=int(data["index"]),
            text=str(data["text"]),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class EmbeddedChunk:
    chunk_id: str
    document_id: str
    index: int
    vector: list[float]
    id: str = field(default_factory=_new_id)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EmbeddedChunk:
        return cls(
            id=str(data["id"]),
            chunk_id=str(data["chunk_id"]),
            document_id=str(data["document_id"]),
            index=int(data["index"]),
            vector=[float(v) for v in data["vector"]],
        )


@dataclass
class RetrievedChunk:
    """A chunk returned by similarity search, with its cosine score."""

    source_id: str
    chunk_index: int
    content: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RegistryEntry:
    document_id: str
    modified_at: float

    def to_dict(self) -> dict[str, Any]:
        return {"document_id": self.document_id, "modified_at": self.modified_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistryEntry:
        return cls(document_id=str(data["document_id"]), modified_at=float(data["modified_at"]))


DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (".git", "build", "DerivedData", "node_modules", ".DS_Store")


@dataclass
class Workspace:
    """A named, rooted code tree indexed independently of generic documents."""

    name: str
    root: str
    id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    languages: list[str] = field(default_factory=list)
    ignore_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS[:4]))
    is_watching: bool = False

    def effective_ignore_patterns(self) -> list[str]:
        """Built-in defaults plus user patterns, deduplicated, order preserved."""
        merged: list[str] = []
        for pattern in (*DEFAULT_IGNORE_PATTERNS, *self.ignore_patterns):
            if pattern and pattern not in merged:
                merged.append(pattern)
        return merged

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Workspace:
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            root=str(data["root"]),
            created_at=str(data.get("created_at") or utc_now()),
            updated_at=str(data.get("updated_at") or utc_now()),
            languages=[str(x) for x in data.get("languages", [])],
            ignore_patterns=[str(x) for x in data.get("ignore_patterns", [])],
            is_watching=bool(data.get("is_watching", False)),
        )


def code_source_id(workspace_id: str, relative_path: str) -> str:
    """Canonical vector-index source id for a workspace file."""
    return f"file://{workspace_id}/{relative_path.strip('/')}"
