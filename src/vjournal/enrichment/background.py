"""Background enrichment: embeddings, topics and cluster refresh.

Enrichment runs after a foreground save has completed. It is attempted
once per submission; failures are logged and never retried or raised to
the caller.
"""

import logging
import queue
import threading
from dataclasses import dataclass

from rich.progress import Progress

from ..clustering.lifecycle import ClusterLifecycleManager
from ..embeddings.base import MAX_EMBED_CHARS, EmbeddingProvider, truncate_for_embedding
from ..storage.base import EntryStoreBase
from .enricher import TopicExtractor

logger = logging.getLogger(__name__)


def embed_and_tag(
    store: EntryStoreBase,
    provider: EmbeddingProvider,
    extractor: TopicExtractor,
    entry_id: int,
    text: str,
    max_chars: int = MAX_EMBED_CHARS,
) -> None:
    """Generate and store the embedding, then the topics. Raises on embedding failure."""
    embedding = provider.embed(truncate_for_embedding(text, max_chars))
    store.update_entry(entry_id, embedding=embedding)

    topics = extractor.extract(text)
    store.update_entry(entry_id, topics=topics)


def enrich_entry(
    store: EntryStoreBase,
    provider: EmbeddingProvider,
    extractor: TopicExtractor,
    manager: ClusterLifecycleManager | None,
    entry_id: int,
    text: str,
    max_chars: int = MAX_EMBED_CHARS,
) -> bool:
    """Enrich one entry and refresh clusters if due. Returns success, never raises."""
    try:
        logger.info(f"Generating embedding and topics for entry {entry_id}")
        embed_and_tag(store, provider, extractor, entry_id, text, max_chars)
        if manager is not None:
            manager.maybe_regenerate()
        return True
    except Exception as e:
        logger.error(f"Background enrichment failed for entry {entry_id}: {e}")
        return False


class EnrichmentWorker:
    """Daemon thread that drains a queue of (entry_id, text) jobs."""

    def __init__(
        self,
        store: EntryStoreBase,
        provider: EmbeddingProvider,
        extractor: TopicExtractor,
        manager: ClusterLifecycleManager | None = None,
        max_chars: int = MAX_EMBED_CHARS,
    ):
        self.store = store
        self.provider = provider
        self.extractor = extractor
        self.manager = manager
        self.max_chars = max_chars
        self._queue: queue.Queue = queue.Queue()
        self._thread: threading.Thread | None = None

    def start(self) -> "EnrichmentWorker":
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run, name="enrichment", daemon=True)
            self._thread.start()
        return self

    def submit(self, entry_id: int, text: str) -> None:
        """Queue an entry for enrichment and return immediately."""
        if not text or not text.strip():
            logger.debug(f"Skipping enrichment for entry {entry_id}: no text")
            return
        self.start()
        self._queue.put((entry_id, text))

    def join(self) -> None:
        """Block until every queued job has been attempted."""
        self._queue.join()

    def stop(self) -> None:
        """Finish every job submitted so far, then end the thread."""
        if self._thread is None:
            return
        self._queue.put(None)
        self._thread.join()
        self._thread = None

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                # Jobs queued ahead of the sentinel have already been handled
                if job is None:
                    return
                entry_id, text = job
                enrich_entry(self.store, self.provider, self.extractor, self.manager,
                             entry_id, text, self.max_chars)
            finally:
                self._queue.task_done()


@dataclass
class BackfillReport:
    processed: int
    total: int


def backfill(
    store: EntryStoreBase,
    provider: EmbeddingProvider,
    extractor: TopicExtractor,
    manager: ClusterLifecycleManager | None = None,
    show_progress: bool = False,
    max_chars: int = MAX_EMBED_CHARS,
) -> BackfillReport:
    """Enrich every entry that has no embedding yet, then regenerate clusters.

    Per-entry failures are logged and skipped.
    """
    pending = [e for e in store.list_entries() if e.embedding is None]
    logger.info(f"Found {len(pending)} entries without embeddings")
    if not pending:
        return BackfillReport(processed=0, total=0)

    processed = 0
    with Progress(disable=not show_progress) as progress:
        task = progress.add_task("Embedding...", total=len(pending))
        for entry in pending:
            text = entry.text
            if not text:
                logger.info(f"Skipping entry {entry.id} - no text content")
            else:
                try:
                    embed_and_tag(store, provider, extractor, entry.id, text, max_chars)
                    processed += 1
                except Exception as e:
                    logger.error(f"Error processing entry {entry.id}: {e}")
            progress.advance(task)

    logger.info(f"Backfill processed {processed}/{len(pending)} entries")
    if manager is not None:
        try:
            manager.regenerate()
        except Exception as e:
            logger.error(f"Cluster regeneration after backfill failed: {e}")

    return BackfillReport(processed=processed, total=len(pending))
