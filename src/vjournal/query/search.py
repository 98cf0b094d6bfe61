"""Hybrid keyword + semantic search over journal entries."""

import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout, wait
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from ..config import SearchConfig
from ..embeddings.base import EmbeddingProvider, truncate_for_embedding
from ..embeddings.vectors import cosine_similarity
from ..models import Entry, SearchResult
from ..storage.base import EntryStoreBase

logger = logging.getLogger(__name__)

HYBRID = "hybrid"
SEMANTIC = "semantic"
KEYWORD = "keyword"
SEARCH_MODES = (HYBRID, SEMANTIC, KEYWORD)

# Precedence of keyword matches; only the best matching field counts
FIELD_SCORES = (("name", 4), ("summary", 3), ("topics", 2), ("transcript", 1))


class SearchError(Exception):
    """Search failed; the cause is chained."""


class SearchTimeout(SearchError):
    """A search leg did not finish within the caller's timeout."""


@dataclass
class SearchFilters:
    """Post-filters applied to ranked results."""
    mode: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    has_name: bool | None = None
    cluster_id: int | None = None

    def matches(self, entry: Entry) -> bool:
        if self.mode and entry.mode != self.mode:
            return False
        if self.start and entry.created_at < self.start:
            return False
        if self.end and entry.created_at > self.end:
            return False
        if self.has_name is not None and bool(entry.name) != self.has_name:
            return False
        if self.cluster_id is not None and entry.cluster_id != self.cluster_id:
            return False
        return True


def _keyword_score(entry: Entry, needle: str) -> int:
    for field_name, score in FIELD_SCORES:
        if field_name == "topics":
            if any(needle in t.lower() for t in entry.topics or []):
                return score
            continue
        value = getattr(entry, field_name)
        if value and needle in value.lower():
            return score
    return 0


def combine_results(
    semantic_results: list[SearchResult],
    keyword_results: list[SearchResult],
    semantic_weight: float,
    keyword_weight: float,
) -> list[SearchResult]:
    """Fuse two ranked legs by weighted sum; a missing leg scores 0."""
    merged: dict[int, SearchResult] = {}

    for r in semantic_results:
        merged[r.entry.id] = SearchResult(
            entry=r.entry,
            score=r.score * semantic_weight,
            semantic_score=r.score,
            match_types=[SEMANTIC],
        )

    for r in keyword_results:
        existing = merged.get(r.entry.id)
        if existing:
            existing.keyword_score = r.score
            existing.score = existing.semantic_score * semantic_weight + r.score * keyword_weight
            existing.match_types.append(KEYWORD)
        else:
            merged[r.entry.id] = SearchResult(
                entry=r.entry,
                score=r.score * keyword_weight,
                keyword_score=r.score,
                match_types=[KEYWORD],
            )

    return sorted(merged.values(), key=lambda r: r.score, reverse=True)


class SearchEngine:
    """Ranks entries for a query by keyword match, embedding similarity, or both."""

    def __init__(self, store: EntryStoreBase, provider: EmbeddingProvider, config: SearchConfig | None = None):
        self.store = store
        self.provider = provider
        self.config = config or SearchConfig()

    def keyword_search(self, query: str) -> list[SearchResult]:
        """Case-insensitive substring match, scores normalized to [0, 1]."""
        if not query or not query.strip():
            return []

        needle = query.strip().lower()
        scored = []
        for entry in self.store.list_entries():
            raw = _keyword_score(entry, needle)
            if raw:
                scored.append((raw, entry))

        if not scored:
            return []

        # list_entries is newest first and sort is stable, so ties stay newest first
        scored.sort(key=lambda pair: pair[0], reverse=True)
        max_score = scored[0][0]
        return [
            SearchResult(entry=entry, score=raw / max_score, keyword_score=raw / max_score, match_types=[KEYWORD])
            for raw, entry in scored
        ]

    def semantic_search(self, query: str, query_embedding: list[float] | None = None) -> list[SearchResult]:
        """Cosine similarity of the query against every embedded entry."""
        if not query or not query.strip():
            return []

        embedding = query_embedding or self.provider.embed_query(truncate_for_embedding(query.strip()))

        results = []
        for entry in self.store.get_entries_for_clustering():
            sim = cosine_similarity(embedding, entry.embedding)
            results.append(SearchResult(entry=entry, score=sim, semantic_score=sim, match_types=[SEMANTIC]))

        results.sort(key=lambda r: r.score, reverse=True)
        return results

    def hybrid_search(
        self,
        query: str,
        semantic_weight: float | None = None,
        keyword_weight: float | None = None,
        timeout: float | None = None,
        degrade_on_semantic_failure: bool | None = None,
    ) -> list[SearchResult]:
        """Run both legs concurrently and fuse their scores."""
        if not query or not query.strip():
            return []

        semantic_weight = self.config.semantic_weight if semantic_weight is None else semantic_weight
        keyword_weight = self.config.keyword_weight if keyword_weight is None else keyword_weight
        degrade = (self.config.degrade_on_semantic_failure
                   if degrade_on_semantic_failure is None else degrade_on_semantic_failure)

        pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="search")
        try:
            semantic_future = pool.submit(self.semantic_search, query)
            keyword_future = pool.submit(self.keyword_search, query)
            _, pending = wait([semantic_future, keyword_future], timeout=timeout)
            if pending:
                raise SearchTimeout(f"Search timed out after {timeout}s")

            keyword_results = keyword_future.result()
            try:
                semantic_results = semantic_future.result()
            except Exception as e:
                if not degrade:
                    raise
                logger.warning(f"Semantic leg failed, falling back to keyword results: {e}")
                semantic_results = []
        finally:
            # Do not block on a leg that overran the timeout
            pool.shutdown(wait=False, cancel_futures=True)

        return combine_results(semantic_results, keyword_results, semantic_weight, keyword_weight)

    def search(self, query: str, mode: str | None = None, **overrides: Any) -> list[SearchResult]:
        """Main entry point: rank, threshold and truncate.

        Keyword arguments override fields of the engine's SearchConfig for
        this call. Any collaborator failure surfaces as SearchError.
        """
        if not query or not query.strip():
            return []

        cfg = replace(self.config, **overrides)
        mode = mode or cfg.mode
        if mode not in SEARCH_MODES:
            raise ValueError(f"Unknown search mode: {mode}")

        try:
            if mode == SEMANTIC:
                results = self._with_timeout(self.semantic_search, query, cfg.timeout)
            elif mode == KEYWORD:
                results = self._with_timeout(self.keyword_search, query, cfg.timeout)
            else:
                results = self.hybrid_search(
                    query,
                    cfg.semantic_weight,
                    cfg.keyword_weight,
                    timeout=cfg.timeout,
                    degrade_on_semantic_failure=cfg.degrade_on_semantic_failure,
                )
        except SearchError:
            raise
        except Exception as e:
            logger.error(f"Search error: {e}")
            raise SearchError("search failed") from e

        results = [r for r in results if r.score >= cfg.min_score]
        if cfg.max_results:
            results = results[: cfg.max_results]
        return results

    @staticmethod
    def _with_timeout(leg, query: str, timeout: float | None) -> list[SearchResult]:
        if timeout is None:
            return leg(query)
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="search")
        try:
            return pool.submit(leg, query).result(timeout=timeout)
        except FutureTimeout as e:
            raise SearchTimeout(f"Search timed out after {timeout}s") from e
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def search_with_filters(self, query: str, filters: SearchFilters, **options: Any) -> list[SearchResult]:
        return [r for r in self.search(query, **options) if filters.matches(r.entry)]

    def suggestions(self, limit: int = 10, recent: int = 50) -> list[str]:
        """Most frequent topics among the most recent entries."""
        try:
            entries = [e for e in self.store.list_entries() if e.topics][:recent]
        except Exception as e:
            logger.error(f"Error getting search suggestions: {e}")
            return []

        counts = Counter(topic for e in entries for topic in e.topics)
        return [topic for topic, _ in counts.most_common(limit)]
