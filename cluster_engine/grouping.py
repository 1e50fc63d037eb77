"""Turn clusterer output and folder structure into cluster records."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .clusterer import EmbeddingClusterer
from .config import EngineConfig, get_config
from .errors import ConfigError
from .models import ClusterFile, ClusterTheme, FileCluster, FileEmbeddingRecord
from .themes import ThemeAnalyzer, sanitize_folder_name

logger = logging.getLogger(__name__)

CLUSTER_COLORS = [
    "#3B82F6", "#EF4444", "#10B981", "#F59E0B",
    "#8B5CF6", "#06B6D4", "#F97316", "#84CC16",
]

ROOT_FOLDER = "Root"


def cluster_color(index: int) -> str:
    return CLUSTER_COLORS[index % len(CLUSTER_COLORS)]


def _cluster_files(
    files: Sequence[FileEmbeddingRecord], theme: ClusterTheme, confidence: float
) -> List[ClusterFile]:
    return [
        ClusterFile(
            file_id=f.file_id,
            file_name=f.file_name,
            confidence=confidence,
            keywords=list(theme.keywords),
        )
        for f in files
    ]


class ClusterBuilder:
    """Build content clusters from an assignment, dropping undersized groups."""

    def __init__(
        self,
        analyzer: Optional[ThemeAnalyzer] = None,
        clusterer: Optional[EmbeddingClusterer] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self.analyzer = analyzer or ThemeAnalyzer(config=self.config)
        self.clusterer = clusterer or EmbeddingClusterer(config=self.config)

    def build(
        self,
        records: Sequence[FileEmbeddingRecord],
        assignment: Sequence[int],
        k: int,
        min_cluster_size: int,
    ) -> List[FileCluster]:
        """Group ``records`` by ``assignment``.

        Groups with fewer than ``min_cluster_size`` members are dropped and
        their files are not redistributed.
        """

        if len(records) != len(assignment):
            raise ConfigError(
                f"assignment length {len(assignment)} does not match {len(records)} records"
            )
        if min_cluster_size < 1:
            raise ConfigError(f"min_cluster_size must be at least 1 (got {min_cluster_size})")

        groups: Dict[int, List[FileEmbeddingRecord]] = {i: [] for i in range(k)}
        for record, index in zip(records, assignment):
            if not 0 <= index < k:
                raise ConfigError(f"assignment value {index} outside [0, {k})")
            groups[index].append(record)

        clusters: List[FileCluster] = []
        for index in range(k):
            members = groups[index]
            if len(members) < min_cluster_size:
                logger.info(
                    "Cluster %s too small (%s files, minimum %s); dropping",
                    index,
                    len(members),
                    min_cluster_size,
                )
                continue
            theme = self.analyzer.analyze(members)
            clusters.append(
                FileCluster(
                    id=f"cluster_{index}",
                    name=theme.name,
                    description=theme.description,
                    color=cluster_color(index),
                    suggested_folder_name=theme.folder_name,
                    category=theme.category,
                    files=_cluster_files(members, theme, self.config.content_confidence),
                )
            )
        logger.info("Created %s content-based clusters", len(clusters))
        return clusters

    def cluster(
        self,
        records: Sequence[FileEmbeddingRecord],
        k: int,
        min_cluster_size: int,
    ) -> List[FileCluster]:
        """Run k-means over ``records`` and build the resulting clusters."""
        assignment = self.clusterer.fit([r.embedding for r in records], k)
        return self.build(records, assignment, k, min_cluster_size)


class StructuralGrouper:
    """Group files by the folder they already live in."""

    def __init__(
        self,
        analyzer: Optional[ThemeAnalyzer] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.config = config or get_config()
        self.analyzer = analyzer or ThemeAnalyzer(config=self.config)

    def _folder_name(self, folder_path: str, theme: ClusterTheme) -> str:
        if folder_path == ROOT_FOLDER:
            return theme.folder_name
        parts = [p for p in folder_path.replace("\\", "/").split("/") if p]
        last = parts[-1] if parts else folder_path
        return sanitize_folder_name(f"{last} - Organized", self.config.folder_name_max_length)

    def group(self, records: Sequence[FileEmbeddingRecord]) -> List[FileCluster]:
        folders: Dict[str, List[FileEmbeddingRecord]] = {}
        for record in records:
            folders.setdefault(record.folder_path or ROOT_FOLDER, []).append(record)

        clusters: List[FileCluster] = []
        for folder_path, members in folders.items():
            if len(members) < self.config.min_structural_group:
                continue
            theme = self.analyzer.analyze(members)
            index = len(clusters)
            clusters.append(
                FileCluster(
                    id=f"folder_{index}",
                    name=f"{folder_path} Organization",
                    description=f"Files from {folder_path} folder",
                    color=cluster_color(index),
                    suggested_folder_name=self._folder_name(folder_path, theme),
                    category=theme.category,
                    files=_cluster_files(members, theme, self.config.structure_confidence),
                )
            )
        logger.info("Created %s folder-based clusters", len(clusters))
        return clusters


def hybrid_clusters(
    records: Sequence[FileEmbeddingRecord],
    grouper: StructuralGrouper,
    builder: ClusterBuilder,
    max_clusters: int,
    min_cluster_size: int,
) -> List[FileCluster]:
    """Folder groups first, then content clusters for the remaining budget.

    With ``hybrid_exclude_grouped`` enabled, files already placed in a folder
    group do not take part in the content pass, so every file belongs to at
    most one cluster.
    """

    folder_clusters = grouper.group(records)
    k = max_clusters - len(folder_clusters)

    remaining = list(records)
    if builder.config.hybrid_exclude_grouped:
        grouped = {f.file_id for c in folder_clusters for f in c.files}
        remaining = [r for r in records if r.file_id not in grouped]

    if k < 1 or len(remaining) < min_cluster_size:
        logger.info(
            "Skipping content pass (k=%s, %s ungrouped files)", k, len(remaining)
        )
        return folder_clusters

    k = min(k, len(remaining))
    content_clusters = builder.cluster(remaining, k, min_cluster_size)
    return folder_clusters + content_clusters


__all__ = [
    "CLUSTER_COLORS",
    "ClusterBuilder",
    "StructuralGrouper",
    "cluster_color",
    "hybrid_clusters",
]
