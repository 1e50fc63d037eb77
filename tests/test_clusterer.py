"""Tests for the k-means embedding clusterer."""
from __future__ import annotations

import numpy as np
import pytest

from cluster_engine.clusterer import EmbeddingClusterer
from cluster_engine.config import EngineConfig
from cluster_engine.errors import ConfigError


class FixedRng:
    """Stand-in generator returning preset initial centroids."""

    def __init__(self, centroids):
        self.centroids = np.asarray(centroids, dtype=np.float64)

    def uniform(self, low, high, size):
        return self.centroids.copy()


BLOBS = [
    [0.0, 0.0],
    [0.1, 0.0],
    [0.0, 0.1],
    [10.0, 10.0],
    [10.1, 10.0],
    [10.0, 10.1],
]


def test_assignment_in_range_and_bounded_iterations():
    vectors = np.random.default_rng(0).normal(size=(40, 8)).tolist()
    clusterer = EmbeddingClusterer(seed=7)
    assignment = clusterer.fit(vectors, 5)
    assert len(assignment) == 40
    assert all(0 <= a < 5 for a in assignment)
    assert 1 <= clusterer.last_iterations <= 100


def test_iteration_cap_follows_config():
    vectors = np.random.default_rng(1).normal(size=(30, 4)).tolist()
    clusterer = EmbeddingClusterer(config=EngineConfig(max_iterations=1), seed=3)
    clusterer.fit(vectors, 4)
    assert clusterer.last_iterations == 1


def test_separates_distant_groups():
    clusterer = EmbeddingClusterer(rng=FixedRng([[0.0, 0.0], [10.0, 10.0]]))
    assert clusterer.fit(BLOBS, 2) == [0, 0, 0, 1, 1, 1]


def test_empty_cluster_keeps_centroid():
    rng = FixedRng([[0.0, 0.0], [100.0, 100.0], [10.0, 10.0]])
    clusterer = EmbeddingClusterer(rng=rng)
    assert clusterer.fit(BLOBS, 3) == [0, 0, 0, 2, 2, 2]


def test_single_cluster():
    clusterer = EmbeddingClusterer(seed=0)
    assert clusterer.fit(BLOBS, 1) == [0] * len(BLOBS)


def test_same_seed_same_assignment():
    vectors = np.random.default_rng(5).normal(size=(25, 3)).tolist()
    first = EmbeddingClusterer(seed=11).fit(vectors, 3)
    second = EmbeddingClusterer(seed=11).fit(vectors, 3)
    assert first == second


@pytest.mark.parametrize("k", [0, -1, 7])
def test_invalid_k(k):
    with pytest.raises(ConfigError):
        EmbeddingClusterer(seed=0).fit(BLOBS, k)


def test_dimension_mismatch():
    with pytest.raises(ConfigError, match="dimensionality"):
        EmbeddingClusterer(seed=0).fit([[0.0, 1.0], [1.0, 2.0, 3.0]], 1)


def test_empty_input():
    with pytest.raises(ConfigError):
        EmbeddingClusterer(seed=0).fit([], 1)
