"""Tests for keyword, semantic and hybrid search."""

import math
import time
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FailingProvider, FakeProvider
from vjournal.config import SearchConfig
from vjournal.embeddings.base import EmbeddingProvider, ProviderError
from vjournal.models import CONVERSATIONAL, Entry, SearchResult
from vjournal.query.search import (
    KEYWORD,
    SEMANTIC,
    SearchEngine,
    SearchError,
    SearchFilters,
    SearchTimeout,
    combine_results,
)

BASE = datetime(2024, 5, 1, tzinfo=timezone.utc)


class SlowProvider(EmbeddingProvider):
    def embed(self, text):
        time.sleep(0.5)
        return [1.0, 0.0]


def _seed(store):
    """Named entry, transcript-only entry, semantic-only entry, unembedded summary entry."""
    named = store.create_entry(name="Work Reflections", transcript="Thinking about the quarter",
                               created_at=BASE)
    store.update_entry(named.id, embedding=[1.0, 0.0])
    mention = store.create_entry(transcript="Went to work early", created_at=BASE + timedelta(days=1))
    store.update_entry(mention.id, embedding=[0.0, 1.0])
    related = store.create_entry(transcript="Office politics again", created_at=BASE + timedelta(days=2))
    store.update_entry(related.id, embedding=[1.0, 1.0])
    pending = store.create_entry(summary="work notes", created_at=BASE + timedelta(days=3))
    return named.id, mention.id, related.id, pending.id


def _engine(store, provider=None, **config):
    return SearchEngine(store, provider or FakeProvider({"work": [1.0, 0.0]}), SearchConfig(**config))


def _scores(results):
    return {r.entry.id: r.score for r in results}


def test_keyword_name_outranks_transcript(store):
    named, mention, _, pending = _seed(store)
    results = _engine(store).keyword_search("Work")

    assert [r.entry.id for r in results] == [named, pending, mention]
    assert _scores(results) == {named: 1.0, pending: 0.75, mention: 0.25}
    assert all(r.match_types == [KEYWORD] for r in results)


def test_keyword_best_field_only(store):
    entry = store.create_entry(name="work", summary="work", transcript="work")
    store.update_entry(entry.id, topics=["work"])
    other = store.create_entry(transcript="work")

    assert _scores(_engine(store).keyword_search("work")) == {entry.id: 1.0, other.id: 0.25}


def test_keyword_normalizes_by_best_match(store):
    a = store.create_entry(transcript="gym day")
    b = store.create_entry(summary="gym")

    assert _scores(_engine(store).keyword_search("gym")) == {b.id: 1.0, a.id: pytest.approx(1 / 3)}


def test_keyword_ties_newest_first(store):
    older = store.create_entry(transcript="coffee", created_at=BASE)
    newer = store.create_entry(transcript="coffee", created_at=BASE + timedelta(days=1))

    assert [r.entry.id for r in _engine(store).keyword_search("coffee")] == [newer.id, older.id]


def test_keyword_matches_topics(store):
    entry = store.create_entry(transcript="nothing relevant")
    store.update_entry(entry.id, topics=["Running", "health"])

    results = _engine(store).keyword_search("run")
    assert [r.entry.id for r in results] == [entry.id]


def test_no_match(store):
    _seed(store)
    assert _engine(store).keyword_search("zebra") == []


def test_semantic_only_embedded_entries(store):
    named, mention, related, pending = _seed(store)
    results = _engine(store).semantic_search("work")

    assert [r.entry.id for r in results] == [named, related, mention]
    assert results[0].score == pytest.approx(1.0)
    assert results[1].score == pytest.approx(1 / math.sqrt(2))
    assert results[2].score == 0.0
    assert pending not in _scores(results)


def test_semantic_uses_given_embedding(store):
    named, *_ = _seed(store)
    provider = FailingProvider()
    results = _engine(store, provider).semantic_search("anything", query_embedding=[1.0, 0.0])

    assert results[0].entry.id == named
    assert provider.calls == 0


def test_hybrid_fusion(store):
    named, mention, related, pending = _seed(store)
    results = _engine(store).hybrid_search("work")
    scores = _scores(results)

    assert scores[named] == pytest.approx(0.6 * 1.0 + 0.4 * 1.0)
    assert scores[mention] == pytest.approx(0.6 * 0.0 + 0.4 * 0.25)
    assert scores[related] == pytest.approx(0.6 / math.sqrt(2))
    assert scores[pending] == pytest.approx(0.4 * 0.75)
    assert [r.entry.id for r in results] == [named, related, pending, mention]

    by_id = {r.entry.id: r for r in results}
    assert by_id[named].match_types == [SEMANTIC, KEYWORD]
    assert by_id[related].match_types == [SEMANTIC]
    assert by_id[pending].match_types == [KEYWORD]
    assert by_id[pending].semantic_score == 0.0


def test_hybrid_custom_weights(store):
    named, mention, _, _ = _seed(store)
    scores = _scores(_engine(store).hybrid_search("work", semantic_weight=0.0, keyword_weight=1.0))

    assert scores[named] == pytest.approx(1.0)
    assert scores[mention] == pytest.approx(0.25)


def test_combine_results_missing_leg_scores_zero():
    entry = Entry(id=1, transcript="x")
    fused = combine_results([], [SearchResult(entry=entry, score=0.5, keyword_score=0.5)], 0.6, 0.4)
    assert fused[0].score == pytest.approx(0.2)


def test_search_applies_threshold_and_limit(store):
    named, mention, related, pending = _seed(store)
    engine = _engine(store)

    assert [r.entry.id for r in engine.search("work", min_score=0.2)] == [named, related, pending]
    assert [r.entry.id for r in engine.search("work", max_results=1)] == [named]


def test_search_modes(store):
    named, mention, _, pending = _seed(store)
    engine = _engine(store, min_score=0.0)

    keyword = engine.search("work", mode=KEYWORD)
    assert _scores(keyword) == {named: 1.0, pending: 0.75, mention: 0.25}

    semantic = engine.search("work", mode=SEMANTIC)
    assert semantic[0].entry.id == named
    assert pending not in _scores(semantic)


def test_blank_query_skips_provider(store):
    _seed(store)
    provider = FailingProvider()
    engine = _engine(store, provider)

    for query in ("", "   "):
        assert engine.search(query) == []
        assert engine.hybrid_search(query) == []
        assert engine.semantic_search(query) == []
        assert engine.keyword_search(query) == []
    assert provider.calls == 0


def test_unknown_mode(store):
    with pytest.raises(ValueError):
        _engine(store).search("work", mode="fuzzy")


def test_semantic_failure_fails_hybrid(store):
    _seed(store)
    engine = _engine(store, FailingProvider())

    with pytest.raises(SearchError) as excinfo:
        engine.search("work")
    assert isinstance(excinfo.value.__cause__, ProviderError)

    with pytest.raises(SearchError):
        engine.search("work", mode=SEMANTIC)


def test_semantic_failure_can_degrade(store):
    named, mention, _, pending = _seed(store)
    engine = _engine(store, FailingProvider(), min_score=0.0)
    results = engine.search("work", degrade_on_semantic_failure=True)

    assert _scores(results) == pytest.approx({named: 0.4, pending: 0.3, mention: 0.1})
    assert all(r.match_types == [KEYWORD] for r in results)


def test_search_timeout(store):
    _seed(store)
    engine = _engine(store, SlowProvider(), timeout=0.05)

    with pytest.raises(SearchTimeout):
        engine.search("work")
    with pytest.raises(SearchTimeout):
        engine.search("work", mode=SEMANTIC)


def test_search_with_filters(store):
    named, mention, related, pending = _seed(store)
    chat = store.create_entry(mode=CONVERSATIONAL, transcript="work chat", created_at=BASE + timedelta(days=4))
    engine = _engine(store, min_score=0.0)

    named_only = engine.search_with_filters("work", SearchFilters(has_name=True), mode=KEYWORD)
    assert [r.entry.id for r in named_only] == [named]

    conversational = engine.search_with_filters("work", SearchFilters(mode=CONVERSATIONAL), mode=KEYWORD)
    assert [r.entry.id for r in conversational] == [chat.id]

    window = SearchFilters(start=BASE + timedelta(hours=12), end=BASE + timedelta(days=3, hours=12))
    assert {r.entry.id for r in engine.search_with_filters("work", window, mode=KEYWORD)} == {mention, pending}

    store.update_entry(mention, cluster_id=4)
    clustered = engine.search_with_filters("work", SearchFilters(cluster_id=4), mode=KEYWORD)
    assert [r.entry.id for r in clustered] == [mention]


def test_suggestions(store):
    for topics in (["work", "health"], ["work"], ["travel", "work"], ["health"]):
        entry = store.create_entry(transcript="x")
        store.update_entry(entry.id, topics=topics)
    store.create_entry(transcript="no topics")

    engine = _engine(store)
    assert engine.suggestions() == ["work", "health", "travel"]
    assert engine.suggestions(limit=1) == ["work"]
