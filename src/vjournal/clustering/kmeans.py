"""K-means clustering of entry embeddings using cosine similarity.

"Nearest" centroid means highest cosine similarity rather than smallest
Euclidean distance. Centroids are seeded from k distinct entries drawn at
random, so without a fixed seed two runs over the same input can produce
different partitions. There are no random restarts.
"""

from typing import Hashable, Sequence

import numpy as np

from ..embeddings.vectors import mean_vector, similarity_matrix


def cluster_embeddings(
    items: Sequence[tuple[Hashable, Sequence[float]]],
    k: int,
    max_iterations: int = 10,
    seed: int | None = None,
) -> list[tuple[Hashable, int]]:
    """Partition (entry_id, embedding) pairs into k clusters.

    Args:
        items: Entry ids paired with equally sized embeddings.
        k: Number of clusters. The caller is responsible for keeping this
            sensible relative to len(items).
        max_iterations: Upper bound on assign/update rounds.
        seed: Seed for centroid initialization.

    Returns:
        (entry_id, cluster_id) pairs in input order, cluster_id in [0, k).
        With fewer items than k every item lands in cluster 0.
    """
    if k < 1:
        raise ValueError(f"k must be at least 1, got {k}")
    if not items:
        return []

    ids = [entry_id for entry_id, _ in items]
    n = len(items)

    if n < k:
        return [(entry_id, 0) for entry_id in ids]

    dims = {len(embedding) for _, embedding in items}
    if len(dims) != 1:
        raise ValueError(f"Embeddings must share one dimensionality, got {sorted(dims)}")

    embeddings = np.asarray([embedding for _, embedding in items], dtype=float)

    rng = np.random.default_rng(seed)
    initial = rng.choice(n, size=k, replace=False)
    centroids = embeddings[initial].copy()

    assignments = np.zeros(n, dtype=int)

    for _ in range(max_iterations):
        # argmax keeps the lowest index on ties
        best = similarity_matrix(embeddings, centroids).argmax(axis=1)
        changed = not np.array_equal(best, assignments)
        assignments = best
        if not changed:
            break

        for j in range(k):
            members = embeddings[assignments == j]
            # Empty clusters keep their previous centroid
            if len(members) > 0:
                centroids[j] = mean_vector(members)

    return [(entry_id, int(cluster_id)) for entry_id, cluster_id in zip(ids, assignments)]
