"""Shared fakes for the embedding, topic and labeling collaborators."""

import pytest

from vjournal.embeddings.base import EmbeddingProvider, ProviderError
from vjournal.enrichment.enricher import Labeler, TopicExtractor
from vjournal.storage.sqlite import SQLiteEntryStore


class FakeProvider(EmbeddingProvider):
    """Looks vectors up by exact text; unknown text is a provider failure."""

    def __init__(self, vectors: dict[str, list[float]] | None = None):
        self.vectors = dict(vectors or {})
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if not text.strip():
            raise ProviderError("Cannot embed empty text")
        if text not in self.vectors:
            raise ProviderError(f"No vector for {text!r}")
        return list(self.vectors[text])


class FailingProvider(EmbeddingProvider):
    def __init__(self):
        self.calls = 0

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        raise ProviderError("rate limited")


class FakeExtractor(TopicExtractor):
    def __init__(self, topics: list[str] | None = None):
        self.topics = topics if topics is not None else ["life"]

    def extract(self, text: str) -> list[str]:
        return list(self.topics)


class FakeLabeler(Labeler):
    def __init__(self, label: str = "Topic"):
        self.label_text = label
        self.calls: list[list[str]] = []

    def label(self, sample_texts: list[str]) -> str:
        self.calls.append(list(sample_texts))
        return f"{self.label_text} {len(self.calls)}"


@pytest.fixture
def store(tmp_path):
    return SQLiteEntryStore(tmp_path / "journal.db")
