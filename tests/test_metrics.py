"""Tests for analysis summary figures."""
from __future__ import annotations

import pytest

from cluster_engine.metrics import average_confidence, calculate_metrics, estimated_savings
from cluster_engine.models import ClusterFile, FileCluster


def _cluster(count, confidence):
    return FileCluster(
        id=f"c{count}",
        name="C",
        files=[ClusterFile(file_id=f"f{i}", file_name="f", confidence=confidence) for i in range(count)],
    )


def test_calculate_metrics():
    summary = calculate_metrics(20, [_cluster(5, 0.8), _cluster(5, 0.9)])
    assert summary.total_files == 20
    assert summary.clusters_created == 2
    assert summary.estimated_savings == 1
    assert summary.confidence == pytest.approx(0.85)


def test_empty_analysis():
    summary = calculate_metrics(12, [])
    assert summary.clusters_created == 0
    assert summary.estimated_savings == 0
    assert summary.confidence == 0.0


def test_savings_edge_cases():
    assert estimated_savings(10, 10) == 2
    assert estimated_savings(3, 0) == 0
    assert average_confidence([_cluster(0, 0.5)]) == 0.0
