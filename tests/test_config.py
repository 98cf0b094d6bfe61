"""Tests for config loading and the embedding provider wrapper."""

import tempfile
from pathlib import Path

import numpy as np
import pytest

from vjournal.config import DEFAULT_CONFIG, ClusteringConfig, SearchConfig, load_config
from vjournal.embeddings.base import ProviderError, get_embedding_provider, truncate_for_embedding
from vjournal.embeddings.embedder import SentenceTransformerProvider


class StubModel:
    def __init__(self):
        self.seen = []

    def encode(self, text):
        self.seen.append(text)
        return np.array([0.5, 0.5])


def test_load_config_merges_file(monkeypatch):
    monkeypatch.delenv("VJOURNAL_DB_PATH", raising=False)
    monkeypatch.setenv("ANTHROPIC_API_KEY", "from-env")
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.yaml"
        path.write_text(
            f"database_path: {tmpdir}/j.db\n"
            "clustering:\n  cluster_count: 7\n"
            "search:\n  mode: keyword\n"
        )
        cfg = load_config(path)

        assert cfg["database_path"] == str((Path(tmpdir) / "j.db").resolve())
        assert cfg["claude_api_key"] == "from-env"
        assert cfg["clustering"]["cluster_count"] == 7
        assert cfg["clustering"]["cluster_threshold"] == 10
        assert cfg["search"]["mode"] == "keyword"
    assert DEFAULT_CONFIG["clustering"]["cluster_count"] == 5


def test_db_path_env_override(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        monkeypatch.setenv("VJOURNAL_DB_PATH", f"{tmpdir}/env.db")
        cfg = load_config(Path(tmpdir) / "missing.yaml")
        assert cfg["database_path"].endswith("env.db")


def test_section_dataclasses():
    cfg = {"clustering": {"seed": 3, "min_cluster_size": 1}, "search": {"semantic_weight": 0.8, "max_results": 5}}
    clustering = ClusteringConfig.from_config(cfg)
    search = SearchConfig.from_config(cfg)

    assert clustering.seed == 3
    assert clustering.min_cluster_size == 1
    assert clustering.cluster_count == 5
    assert search.semantic_weight == 0.8
    assert search.keyword_weight == 0.4
    assert search.max_results == 5


def test_truncate_for_embedding():
    assert truncate_for_embedding("abc", 5) == "abc"
    assert truncate_for_embedding("abcdef", 3) == "abc"


def test_e5_prefixes():
    provider = SentenceTransformerProvider("intfloat/e5-large-v2", max_chars=10)
    provider._model = StubModel()

    assert provider.embed("a long journal passage") == [0.5, 0.5]
    provider.embed_query("work")
    assert provider._model.seen == ["passage: a long jou", "query: work"]


def test_plain_model_has_no_prefix():
    provider = SentenceTransformerProvider("all-MiniLM-L6-v2")
    provider._model = StubModel()
    provider.embed_query("work")
    assert provider._model.seen == ["work"]


def test_empty_text_is_rejected():
    provider = SentenceTransformerProvider()
    provider._model = StubModel()
    with pytest.raises(ProviderError):
        provider.embed("   ")
    assert provider._model.seen == []


def test_unknown_backend():
    with pytest.raises(ValueError):
        get_embedding_provider({"embedding_backend": "word2vec"})
    assert isinstance(get_embedding_provider({}), SentenceTransformerProvider)


def test_empty_sections_keep_defaults(monkeypatch):
    monkeypatch.delenv("VJOURNAL_DB_PATH", raising=False)
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "config.yaml"
        path.write_text(f"database_path: {tmpdir}/j.db\nclustering:\nsearch:\n")
        cfg = load_config(path)

    assert cfg["clustering"]["cluster_count"] == 5
    assert ClusteringConfig.from_config(cfg).cluster_threshold == 10
    assert SearchConfig.from_config(cfg).semantic_weight == 0.6

    assert ClusteringConfig.from_config({"clustering": None}).cluster_count == 5
    assert SearchConfig.from_config({"search": None}).min_score == 0.1


def test_cluster_count_must_be_positive():
    with pytest.raises(ValueError):
        ClusteringConfig.from_config({"clustering": {"cluster_count": 0}})
