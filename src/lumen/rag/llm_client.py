"""LiteLLM-backed embedding and generation capabilities.

The indexing core only depends on the two narrow protocols defined here;
``LiteLLMEmbedder`` and ``LiteLLMChat`` are the production implementations.
Failed embedding batches are not retried (``num_retries=0``): the caller
sees the error and nothing is persisted.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Protocol

import litellm

from lumen.errors import EmbeddingError, EmbeddingMismatch, EmbeddingUnavailable

# Disable LiteLLM verbose logging unless explicitly enabled
litellm.suppress_debug_info = True


# ------------------------------------------------------------------
# Capability interfaces
# ------------------------------------------------------------------


class Embedder(Protocol):
    def embed(self, texts: list[str]) -> list[list[float]]:
        """Return one vector per text, all of the same length."""
        ...


@dataclass
class GenerationConfig:
    max_tokens: int = 1024
    temperature: float = 0.7
    top_p: float = 0.9


class LanguageModel(Protocol):
    def stream(self, messages: list[dict[str, str]], config: GenerationConfig) -> Iterator[str]:
        """Yield the response text piece by piece."""
        ...


# ------------------------------------------------------------------
# Provider → env var mapping for API key validation
# ------------------------------------------------------------------

_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "ollama": None,  # Local, no key required
    "ollama_chat": None,
}


def validate_api_key(model: str) -> None:
    """Check that the required API key env var is set for *model*.

    Args:
        model: LiteLLM model string in 'provider/model' format.

    Raises:
        EnvironmentError: If the required key is missing from environment.
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider)

    if env_var is None:
        return

    if not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider}'. "
            f"Set the {env_var} environment variable."
        )


# ------------------------------------------------------------------
# Implementations
# ------------------------------------------------------------------


class LiteLLMEmbedder:
    """Embed batches of text with ``litellm.embedding()``."""

    def __init__(self, model: str) -> None:
        self.model = model

    def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = litellm.embedding(model=self.model, input=texts, num_retries=0)
        except litellm.exceptions.AuthenticationError as exc:
            raise EmbeddingUnavailable(f"Embedding model '{self.model}' rejected credentials") from exc
        except Exception as exc:
            raise EmbeddingError(f"Embedding call to '{self.model}' failed: {exc}") from exc

        vectors = [list(item["embedding"]) for item in response.data]
        if len(vectors) != len(texts):
            raise EmbeddingMismatch(len(texts), len(vectors))
        dimension = len(vectors[0])
        for vector in vectors:
            if len(vector) != dimension:
                raise EmbeddingMismatch(dimension, len(vector), what="dimension")
        return vectors


class LiteLLMChat:
    """Stream chat completions from ``litellm.completion(stream=True)``."""

    def __init__(self, model: str) -> None:
        self.model = model

    def stream(self, messages: list[dict[str, str]], config: GenerationConfig) -> Iterator[str]:
        response = litellm.completion(
            model=self.model,
            messages=messages,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            top_p=config.top_p,
            stream=True,
        )
        for part in response:
            delta = part.choices[0].delta.content
            if delta:
                yield delta
