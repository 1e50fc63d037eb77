"""K-means clustering over file embeddings."""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np

from .config import EngineConfig, get_config
from .errors import ConfigError

logger = logging.getLogger(__name__)


class EmbeddingClusterer:
    """Plain k-means with randomized centroid initialisation.

    Centroids start at uniform random positions inside the per-dimension
    range of the data, so two runs over identical input may produce different
    assignments. Callers that need to re-identify clusters across runs must
    reconcile by file membership rather than by cluster index.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.config = config or get_config()
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.last_iterations: int = 0

    @staticmethod
    def _as_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
        if len(vectors) == 0:
            raise ConfigError("no vectors supplied for clustering")
        dims = {len(v) for v in vectors}
        if len(dims) != 1:
            raise ConfigError(
                f"embedding dimensionality mismatch: found dimensions {sorted(dims)}"
            )
        (dim,) = dims
        if dim == 0:
            raise ConfigError("embeddings must have at least one dimension")
        return np.asarray(vectors, dtype=np.float64)

    def _initial_centroids(self, data: np.ndarray, k: int) -> np.ndarray:
        low = data.min(axis=0)
        high = data.max(axis=0)
        return self.rng.uniform(low, high, size=(k, data.shape[1]))

    def fit(self, vectors: Sequence[Sequence[float]], k: int) -> List[int]:
        """Return one cluster index in ``[0, k)`` for each vector.

        Raises
        ------
        ConfigError
            If ``k`` is not in ``[1, len(vectors)]`` or the vectors do not
            share one dimensionality.
        """

        data = self._as_matrix(vectors)
        n = data.shape[0]
        if k < 1:
            raise ConfigError(f"k must be at least 1 (got {k})")
        if k > n:
            raise ConfigError(f"k={k} exceeds the number of vectors ({n})")

        centroids = self._initial_centroids(data, k)
        assignment = np.full(n, -1, dtype=np.int64)
        max_iterations = self.config.max_iterations
        iterations = 0
        changed = True

        while changed and iterations < max_iterations:
            iterations += 1
            distances = np.linalg.norm(data[:, None, :] - centroids[None, :, :], axis=2)
            nearest = distances.argmin(axis=1)
            changed = bool(np.any(nearest != assignment))
            assignment = nearest

            for j in range(k):
                members = data[assignment == j]
                # empty clusters keep their previous centroid
                if len(members):
                    centroids[j] = members.mean(axis=0)

        self.last_iterations = iterations
        logger.info(
            "k-means finished after %s iterations (n=%s, k=%s, converged=%s)",
            iterations,
            n,
            k,
            not changed,
        )
        return [int(a) for a in assignment]


__all__ = ["EmbeddingClusterer"]
