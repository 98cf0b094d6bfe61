"""When to re-cluster, and the replace-all lifecycle of cluster folders.

Cluster folders are a cache over entry embeddings: every regeneration
deletes all of them and builds a new set, so custom names given to a
folder do not survive a run.

Regeneration is triggered by a count of newly embedded entries rather than
elapsed time, trading freshness for larger, better-formed batches.
"""

import logging
import uuid
from collections import defaultdict

from ..config import CLUSTER_COUNT, CLUSTER_THRESHOLD, LAST_CLUSTERING_DATE, ClusteringConfig
from ..enrichment.enricher import Labeler
from ..models import (
    UNTITLED_TOPIC,
    ClusterAssignment,
    ClusterFolder,
    ClusteringState,
    ClusteringStats,
    ClusterSummary,
    parse_timestamp,
    utcnow,
)
from ..storage.base import EntryStoreBase
from .kmeans import cluster_embeddings

logger = logging.getLogger(__name__)

# Held in the store so managers in other threads or processes see it
REGENERATION_LEASE = "cluster_regeneration"


def load_clustering_state(store: EntryStoreBase) -> ClusteringState:
    """Read the persisted clustering bookkeeping."""
    count = store.get_setting(CLUSTER_COUNT)
    threshold = store.get_setting(CLUSTER_THRESHOLD)
    return ClusteringState(
        last_clustering_date=parse_timestamp(store.get_setting(LAST_CLUSTERING_DATE)),
        cluster_count=int(count) if count else None,
        cluster_threshold=int(threshold) if threshold else None,
    )


class ClusterLifecycleManager:
    """Decides when to re-cluster and rebuilds cluster folders."""

    def __init__(self, store: EntryStoreBase, labeler: Labeler, config: ClusteringConfig | None = None):
        self.store = store
        self.labeler = labeler
        self.config = config or ClusteringConfig()

    @property
    def is_running(self) -> bool:
        """True while any manager on the same store is regenerating."""
        return self.store.lease_held(REGENERATION_LEASE)

    def should_trigger(self) -> bool:
        """True when enough embedded entries arrived since the last run."""
        try:
            state = load_clustering_state(self.store)
            entries = self.store.get_entries_for_clustering()
        except Exception as e:
            logger.error(f"Error checking clustering trigger: {e}")
            return False

        if state.last_clustering_date is None:
            return len(entries) >= self.config.initial_threshold

        new_entries = [e for e in entries if e.created_at > state.last_clustering_date]
        return len(new_entries) >= self.config.cluster_threshold

    def regenerate(self, k: int | None = None) -> list[ClusterFolder]:
        """Rebuild all cluster folders from scratch.

        Returns the folders created. A call made while another run is in
        progress on the same store, from any manager or process, is rejected
        and returns []. Fewer than min_entries embedded entries is a no-op.

        Entry cluster ids are written before old folders are deleted and new
        ones created; if a later step fails those writes stay and the
        last-clustered timestamp is not advanced.
        """
        owner = uuid.uuid4().hex
        if not self.store.acquire_lease(REGENERATION_LEASE, owner, self.config.lease_seconds):
            logger.warning("Cluster regeneration already in progress; skipping this request")
            return []
        try:
            return self._regenerate(k)
        finally:
            self.store.release_lease(REGENERATION_LEASE, owner)

    def _regenerate(self, k: int | None) -> list[ClusterFolder]:
        requested = k or self.config.cluster_count
        entries = self.store.get_entries_for_clustering()

        if len(entries) < self.config.min_entries:
            logger.info(f"Not enough entries with embeddings to cluster ({len(entries)})")
            return []

        k_eff = min(requested, len(entries) // 2)
        logger.info(f"Clustering {len(entries)} entries into {k_eff} clusters")

        pairs = cluster_embeddings(
            [(e.id, e.embedding) for e in entries],
            k_eff,
            max_iterations=self.config.max_iterations,
            seed=self.config.seed,
        )
        assignments = [ClusterAssignment(entry_id, cluster_id) for entry_id, cluster_id in pairs]

        groups: dict[int, list[int]] = defaultdict(list)
        for a in assignments:
            groups[a.cluster_id].append(a.entry_id)

        # Entries in dropped clusters keep an id with no folder behind it
        self.store.update_entry_clusters(assignments)

        for folder in self.store.get_cluster_folders():
            self.store.delete_smart_folder(folder.id)

        by_id = {e.id: e for e in entries}
        created = []
        for cluster_id in sorted(groups):
            entry_ids = groups[cluster_id]
            if len(entry_ids) < self.config.min_cluster_size:
                logger.debug(f"Dropping cluster {cluster_id} with {len(entry_ids)} entries")
                continue

            samples = [by_id[i].sample_text() for i in entry_ids[: self.config.sample_size]]
            label = self._label(samples)
            folder = self.store.create_cluster_folder(label, cluster_id)
            created.append(folder)
            logger.info(f'Created cluster folder "{label}" with {len(entry_ids)} entries')

        self.store.set_setting(LAST_CLUSTERING_DATE, utcnow().isoformat())
        logger.info("Cluster regeneration complete")
        return created

    def _label(self, samples: list[str]) -> str:
        try:
            label = self.labeler.label(samples)
        except Exception as e:
            logger.warning(f"Labeler failed, using placeholder: {e}")
            return UNTITLED_TOPIC
        return label.strip() if label and label.strip() else UNTITLED_TOPIC

    def maybe_regenerate(self) -> list[ClusterFolder]:
        if self.should_trigger():
            logger.info("Triggering cluster regeneration")
            return self.regenerate()
        return []

    def get_cluster_folder(self, cluster_index: int) -> ClusterFolder | None:
        for folder in self.store.get_cluster_folders():
            if folder.cluster_index == cluster_index:
                return folder
        return None

    def rename_cluster_folder(self, cluster_index: int, name: str) -> bool:
        """Rename the folder for a cluster. Returns False if there is none."""
        folder = self.get_cluster_folder(cluster_index)
        if folder is None:
            return False
        self.store.update_smart_folder(folder.id, name=name)
        return True

    def get_stats(self) -> ClusteringStats:
        try:
            folders = self.store.get_cluster_folders()
            state = load_clustering_state(self.store)
            entries = self.store.get_entries_for_clustering()
        except Exception as e:
            logger.error(f"Error getting clustering stats: {e}")
            return ClusteringStats()

        counts: dict[int, int] = defaultdict(int)
        for e in entries:
            if e.cluster_id is not None:
                counts[e.cluster_id] += 1

        return ClusteringStats(
            total_clusters=len(folders),
            total_entries_with_embeddings=len(entries),
            last_clustering_date=state.last_clustering_date,
            clusters=[
                ClusterSummary(
                    cluster_index=f.cluster_index,
                    name=f.name,
                    folder_id=f.id,
                    entry_count=counts.get(f.cluster_index, 0),
                )
                for f in folders
            ],
        )
