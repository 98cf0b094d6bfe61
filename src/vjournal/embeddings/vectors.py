"""Vector math over embeddings."""

from typing import Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as _pairwise_cosine


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity in [-1, 1].

    Returns 0.0 instead of raising when either vector is missing or empty,
    the lengths differ, or either vector has zero norm.
    """
    if a is None or b is None or len(a) == 0 or len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0 or not np.isfinite(denominator):
        return 0.0
    sim = float(np.dot(va, vb) / denominator)
    return max(-1.0, min(1.0, sim))


def similarity_matrix(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Pairwise cosine similarity between rows of x and rows of y.

    Zero rows give similarity 0 against everything.
    """
    return _pairwise_cosine(np.atleast_2d(x), np.atleast_2d(y))


def mean_vector(vectors: Sequence[Sequence[float]]) -> list[float]:
    """Element-wise mean of equally sized vectors."""
    if len(vectors) == 0:
        return []
    return np.asarray(vectors, dtype=float).mean(axis=0).tolist()
