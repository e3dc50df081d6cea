"""Lumen: local-first RAG indexing core."""

__version__ = "0.1.0"
