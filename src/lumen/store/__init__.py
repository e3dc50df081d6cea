"""Lumen storage layer: catalog models, vector index, registries."""

from lumen.store.models import (
    Chunk,
    Document,
    DocumentKind,
    EmbeddedChunk,
    RegistryEntry,
    RetrievedChunk,
    Workspace,
    code_source_id,
)
from lumen.store.registry import ChangeRegistry
from lumen.store.vectors import IndexHealth, VectorIndex
from lumen.store.workspaces import WorkspaceStore

__all__ = [
    "ChangeRegistry",
    "Chunk",
    "Document",
    "DocumentKind",
    "EmbeddedChunk",
    "IndexHealth",
    "RegistryEntry",
    "RetrievedChunk",
    "VectorIndex",
    "Workspace",
    "WorkspaceStore",
    "code_source_id",
]
