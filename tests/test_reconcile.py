"""Tests for matching approved selections to freshly computed clusters."""
from __future__ import annotations

import pytest

from cluster_engine.errors import ConfigError, ReconciliationMiss
from cluster_engine.models import ClusterFile, ClusterSelection, FileCluster, SelectionFile
from cluster_engine.reconcile import ReconciliationMatcher, overlap_ratio


def _cluster(cluster_id, name, file_ids, folder="Folder"):
    return FileCluster(
        id=cluster_id,
        name=name,
        suggested_folder_name=folder,
        files=[ClusterFile(file_id=f, file_name=f"{f}.txt", confidence=0.8) for f in file_ids],
    )


def _selection(name, file_ids):
    return ClusterSelection(
        name=name,
        file_count=len(file_ids),
        files=[SelectionFile(file_id=f, file_name=f"{f}.txt") for f in file_ids],
    )


def test_partial_overlap_keeps_only_selected_files():
    fresh = [_cluster("cluster_0", "Budget Collection", ["f1", "f2", "f3", "f4", "f5"])]
    selection = _selection("Budget Collection", ["f1", "f2", "f3", "f4", "f6"])
    result = ReconciliationMatcher().match(selection, fresh)
    assert result.status == "matched"
    assert result.match_type == "overlap"
    assert result.overlap == pytest.approx(0.8)
    assert result.cluster.file_ids() == ["f1", "f2", "f3", "f4"]
    assert result.cluster.suggested_folder_name == "Budget Collection"


def test_full_containment_matches_with_full_overlap():
    fresh = [
        _cluster("cluster_0", "Other", ["a", "b"]),
        _cluster("cluster_1", "Renamed", ["c", "d", "e", "z"]),
    ]
    result = ReconciliationMatcher().match(_selection("Reports", ["c", "d", "e"]), fresh)
    assert result.status == "matched"
    assert result.overlap == 1.0
    assert result.cluster.id == "cluster_1"
    assert result.cluster.name == "Reports"
    assert result.cluster.file_ids() == ["c", "d", "e"]


def test_no_overlap_and_no_name_is_unmatched():
    fresh = [_cluster("cluster_0", "Photos", ["p1", "p2"])]
    result = ReconciliationMatcher().match(_selection("Invoices", ["i1", "i2"]), fresh)
    assert result.status == "unmatched"
    assert result.cluster is None
    assert result.reason
    assert result.candidates[0].cluster_id == "cluster_0"


def test_tie_prefers_exact_name_then_fewest_extra_files():
    matcher = ReconciliationMatcher()
    fresh = [
        _cluster("cluster_0", "Big", ["a", "b", "x", "y"]),
        _cluster("cluster_1", "Small", ["a", "b", "z"]),
    ]
    assert matcher.match(_selection("Pick", ["a", "b"]), fresh).cluster.id == "cluster_1"
    assert matcher.match(_selection("Big", ["a", "b"]), fresh).cluster.id == "cluster_0"


def test_name_fallback_below_threshold():
    fresh = [_cluster("folder_0", "Photos Organization", ["p1", "p2", "p3"])]
    result = ReconciliationMatcher().match(_selection("Photos Organization", ["p1", "q9"]), fresh)
    assert result.status == "matched"
    assert result.match_type == "name"
    assert result.cluster.file_ids() == ["p1"]


def test_name_fallback_without_shared_files_is_unmatched():
    fresh = [_cluster("folder_0", "Photos Organization", ["p1", "p2"])]
    result = ReconciliationMatcher().match(_selection("Photos Organization", ["q1"]), fresh)
    assert result.status == "unmatched"
    assert "none of the selected files" in result.reason


def test_batch_reports_unmatched_alongside_matches():
    fresh = [_cluster("cluster_0", "Docs", ["d1", "d2", "d3"])]
    batch = ReconciliationMatcher().match_all(
        [_selection("Docs", ["d1", "d2", "d3"]), _selection("Ghost", ["g1"])], fresh
    )
    assert [c.name for c in batch.matched] == ["Docs"]
    assert [r.selection_name for r in batch.unmatched] == ["Ghost"]


def test_batch_with_every_selection_missing_raises():
    fresh = [_cluster("cluster_0", "Docs", ["d1", "d2"])]
    with pytest.raises(ReconciliationMiss) as excinfo:
        ReconciliationMatcher().match_all([_selection("Ghost", ["g1"])], fresh)
    assert excinfo.value.available == [{"id": "cluster_0", "name": "Docs", "fileCount": 2}]
    assert excinfo.value.results[0].status == "unmatched"


def test_empty_batch_is_rejected():
    with pytest.raises(ConfigError):
        ReconciliationMatcher().match_all([], [])


def test_overlap_ratio_of_empty_selection():
    assert overlap_ratio([], _cluster("c", "C", ["a"])) == 0.0
