"""Abstract embedding provider and factory function."""

from abc import ABC, abstractmethod
from typing import Any

# Providers are not required to chunk; the core truncates before calling.
MAX_EMBED_CHARS = 8000


class ProviderError(Exception):
    """Raised when an embedding backend cannot produce a vector."""


def truncate_for_embedding(text: str, max_chars: int = MAX_EMBED_CHARS) -> str:
    """Cap text at max_chars characters."""
    return text if len(text) <= max_chars else text[:max_chars]


class EmbeddingProvider(ABC):
    """Produces a fixed-length float vector from text."""

    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Embed a document. Raises ProviderError on empty text or backend failure."""

    def embed_query(self, text: str) -> list[float]:
        """Embed a search query. Backends with asymmetric models override this."""
        return self.embed(text)


def get_embedding_provider(config: dict[str, Any]) -> EmbeddingProvider:
    """Factory: return the embedding provider named in config."""
    backend = config.get("embedding_backend", "sentence-transformers")

    if backend == "sentence-transformers":
        from .embedder import SentenceTransformerProvider
        return SentenceTransformerProvider(
            config.get("embedding_model", "intfloat/e5-large-v2"),
            max_chars=config.get("enrichment", {}).get("max_chars", MAX_EMBED_CHARS),
        )
    else:
        raise ValueError(f"Unknown embedding_backend: {backend}")
