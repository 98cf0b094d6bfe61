"""Entry embedding using sentence-transformers."""

import logging

from .base import MAX_EMBED_CHARS, EmbeddingProvider, ProviderError, truncate_for_embedding

logger = logging.getLogger(__name__)


class SentenceTransformerProvider(EmbeddingProvider):
    """Embeds journal text with a local sentence-transformers model."""

    def __init__(self, model_name: str = "intfloat/e5-large-v2", max_chars: int = MAX_EMBED_CHARS):
        self.model_name = model_name
        self.max_chars = max_chars
        self._model = None

    @property
    def model(self):
        """Lazy-load the embedding model."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
                self._model = SentenceTransformer(self.model_name)
            except Exception as e:
                raise ProviderError(f"Could not load embedding model {self.model_name}: {e}") from e
        return self._model

    def _uses_e5_prefixes(self) -> bool:
        return "e5" in self.model_name.lower()

    def _encode(self, text: str, prefix: str) -> list[float]:
        if not text or not text.strip():
            raise ProviderError("Cannot embed empty text")

        text = truncate_for_embedding(text, self.max_chars)
        # e5 models need "passage: " / "query: " prefixes
        if self._uses_e5_prefixes():
            text = f"{prefix}: {text}"
        try:
            return self.model.encode(text).tolist()
        except ProviderError:
            raise
        except Exception as e:
            logger.warning(f"Embedding failed with {self.model_name}: {e}")
            raise ProviderError(str(e)) from e

    def embed(self, text: str) -> list[float]:
        return self._encode(text, "passage")

    def embed_query(self, text: str) -> list[float]:
        return self._encode(text, "query")
