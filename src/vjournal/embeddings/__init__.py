"""Embedding providers and vector math."""

from .base import EmbeddingProvider, ProviderError, get_embedding_provider, truncate_for_embedding
from .vectors import cosine_similarity

__all__ = [
    "EmbeddingProvider",
    "ProviderError",
    "get_embedding_provider",
    "truncate_for_embedding",
    "cosine_similarity",
]
