"""Tests for content cluster building, folder grouping and hybrid mode."""
from __future__ import annotations

import pytest

from cluster_engine.config import EngineConfig
from cluster_engine.errors import ConfigError
from cluster_engine.grouping import (
    CLUSTER_COLORS,
    ClusterBuilder,
    StructuralGrouper,
    cluster_color,
    hybrid_clusters,
)
from cluster_engine.models import FileEmbeddingRecord


class StubClusterer:
    """Returns a fixed assignment regardless of the vectors."""

    def __init__(self, assignment):
        self.assignment = assignment
        self.calls = []

    def fit(self, vectors, k):
        self.calls.append((len(vectors), k))
        return list(self.assignment)


def _record(file_id, folder=None):
    return FileEmbeddingRecord(
        file_id=file_id,
        file_name=f"{file_id}.txt",
        embedding=(1.0, 0.0, 0.5),
        folder_path=folder,
    )


def _twelve_files():
    records = [_record(f"r{i}", "Work/Reports") for i in range(6)]
    records += [_record(f"p{i}", "Photos") for i in range(4)]
    records += [_record("s0", "Misc/One"), _record("s1", "Misc/Two")]
    return records


def test_structural_groups_skip_singletons():
    clusters = StructuralGrouper().group(_twelve_files())
    assert [c.id for c in clusters] == ["folder_0", "folder_1"]
    assert [c.name for c in clusters] == ["Work/Reports Organization", "Photos Organization"]
    assert [len(c.files) for c in clusters] == [6, 4]
    assert clusters[0].suggested_folder_name == "Reports - Organized"
    assert clusters[0].description == "Files from Work/Reports folder"
    assert all(f.confidence == 0.9 for c in clusters for f in c.files)
    assert clusters[1].color == CLUSTER_COLORS[1]


def test_root_group_uses_theme_folder():
    records = [_record(f"invoice {i}") for i in range(3)]
    clusters = StructuralGrouper().group(records)
    assert len(clusters) == 1
    assert clusters[0].name == "Root Organization"
    assert clusters[0].suggested_folder_name == "Invoice"


def test_build_drops_small_groups_without_redistribution():
    records = [_record(f"f{i}") for i in range(10)]
    assignment = [0, 0, 0, 1, 1, 1, 2, 2, 2, 3]
    clusters = ClusterBuilder().build(records, assignment, 4, 3)
    assert [c.id for c in clusters] == ["cluster_0", "cluster_1", "cluster_2"]
    placed = {f.file_id for c in clusters for f in c.files}
    assert "f9" not in placed
    assert all(f.confidence == 0.8 for c in clusters for f in c.files)


def test_build_is_deterministic():
    records = [_record(f"f{i}") for i in range(6)]
    assignment = [1, 0, 1, 0, 1, 0]
    builder = ClusterBuilder()
    first = [c.model_dump() for c in builder.build(records, assignment, 2, 2)]
    second = [c.model_dump() for c in builder.build(records, assignment, 2, 2)]
    assert first == second


def test_build_rejects_bad_assignment():
    records = [_record("a"), _record("b")]
    builder = ClusterBuilder()
    with pytest.raises(ConfigError):
        builder.build(records, [0], 1, 1)
    with pytest.raises(ConfigError):
        builder.build(records, [0, 2], 2, 1)
    with pytest.raises(ConfigError):
        builder.build(records, [0, 0], 1, 0)


def test_hybrid_excludes_grouped_files_from_content_pass():
    records = [_record(f"d{i}", "Docs") for i in range(4)]
    records += [_record(f"x{i}", f"Loose/{i}") for i in range(6)]
    stub = StubClusterer([0, 0, 0, 1, 1, 1])
    builder = ClusterBuilder(clusterer=stub)
    clusters = hybrid_clusters(records, StructuralGrouper(), builder, 3, 3)

    assert stub.calls == [(6, 2)]
    assert [c.id for c in clusters] == ["folder_0", "cluster_0", "cluster_1"]
    ids = [f.file_id for c in clusters for f in c.files]
    assert len(ids) == len(set(ids)) == 10


def test_hybrid_without_budget_returns_folder_groups():
    records = [_record(f"d{i}", "Docs") for i in range(4)]
    records += [_record(f"x{i}", f"Loose/{i}") for i in range(6)]
    stub = StubClusterer([])
    clusters = hybrid_clusters(records, StructuralGrouper(), ClusterBuilder(clusterer=stub), 1, 3)
    assert [c.id for c in clusters] == ["folder_0"]
    assert stub.calls == []


def test_hybrid_can_include_grouped_files():
    config = EngineConfig(hybrid_exclude_grouped=False)
    records = [_record(f"d{i}", "Docs") for i in range(4)]
    stub = StubClusterer([0, 0, 0, 0])
    builder = ClusterBuilder(clusterer=stub, config=config)
    clusters = hybrid_clusters(records, StructuralGrouper(config=config), builder, 3, 2)
    assert stub.calls == [(4, 2)]
    assert [c.id for c in clusters] == ["folder_0", "cluster_0"]


def test_cluster_color_cycles():
    assert cluster_color(0) == cluster_color(len(CLUSTER_COLORS))
