"""Retrieval and external model capabilities."""
