"""Re-identify approved clusters inside a freshly computed cluster set.

Clustering is recomputed on every request and centroid initialisation is
random, so the cluster a user approved during analysis is not guaranteed to
exist with the same id (or exactly the same files) at execution time. A
selection is matched to the fresh cluster sharing the largest share of its
files, and the matched cluster is always cut back to the files the user
actually selected.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .config import EngineConfig, get_config
from .errors import ConfigError, ReconciliationMiss
from .models import (
    ClusterSelection,
    FileCluster,
    MatchCandidate,
    ReconciliationResult,
)
from .themes import sanitize_folder_name

logger = logging.getLogger(__name__)


def overlap_ratio(selected_ids: Sequence[str], cluster: FileCluster) -> float:
    """Share of ``selected_ids`` found in ``cluster``."""
    selected = set(selected_ids)
    if not selected:
        return 0.0
    return len(selected & set(cluster.file_ids())) / len(selected)


@dataclass
class BatchReconciliation:
    """Outcome of reconciling every selection in one execution request."""

    results: List[ReconciliationResult] = field(default_factory=list)

    @property
    def matched(self) -> List[FileCluster]:
        return [r.cluster for r in self.results if r.status == "matched" and r.cluster]

    @property
    def unmatched(self) -> List[ReconciliationResult]:
        return [r for r in self.results if r.status == "unmatched"]


class ReconciliationMatcher:
    """Match user selections against freshly recomputed clusters."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        self.config = config or get_config()

    def _candidates(
        self, selection: ClusterSelection, clusters: Sequence[FileCluster]
    ) -> List[Tuple[FileCluster, float]]:
        ids = selection.file_ids()
        return [(c, overlap_ratio(ids, c)) for c in clusters]

    @staticmethod
    def _names_equal(a: str, b: str) -> bool:
        return a.strip().lower() == b.strip().lower()

    def _best_by_overlap(
        self, selection: ClusterSelection, scored: List[Tuple[FileCluster, float]]
    ) -> Optional[Tuple[FileCluster, float]]:
        eligible = [
            (position, cluster, ratio)
            for position, (cluster, ratio) in enumerate(scored)
            if ratio >= self.config.overlap_threshold
        ]
        if not eligible:
            return None
        selected = set(selection.file_ids())

        def rank(item):
            position, cluster, ratio = item
            extra = len(set(cluster.file_ids()) - selected)
            return (-ratio, not self._names_equal(cluster.name, selection.name), extra, position)

        _, cluster, ratio = min(eligible, key=rank)
        return cluster, ratio

    def _best_by_name(
        self, selection: ClusterSelection, scored: List[Tuple[FileCluster, float]]
    ) -> Optional[Tuple[FileCluster, float]]:
        wanted = selection.name.strip().lower()
        if not wanted:
            return None
        exact: List[Tuple[FileCluster, float]] = []
        partial: List[Tuple[FileCluster, float]] = []
        for cluster, ratio in scored:
            name = cluster.name.strip().lower()
            if not name:
                continue
            if name == wanted:
                exact.append((cluster, ratio))
            elif name in wanted or wanted in name:
                partial.append((cluster, ratio))
        pool = exact or partial
        if not pool:
            return None
        # highest overlap first; max() keeps the earliest on ties
        return max(pool, key=lambda item: item[1])

    def _filtered(self, selection: ClusterSelection, cluster: FileCluster) -> FileCluster:
        selected = set(selection.file_ids())
        files = [f for f in cluster.files if f.file_id in selected]
        folder = (
            sanitize_folder_name(selection.name, self.config.folder_name_max_length)
            or cluster.suggested_folder_name
        )
        return cluster.model_copy(
            update={"files": files, "name": selection.name, "suggested_folder_name": folder}
        )

    def match(
        self, selection: ClusterSelection, clusters: Sequence[FileCluster]
    ) -> ReconciliationResult:
        """Reconcile one selection against ``clusters``."""

        scored = self._candidates(selection, clusters)
        candidates = [
            MatchCandidate(
                cluster_id=c.id, name=c.name, file_count=len(c.files), overlap=round(r, 4)
            )
            for c, r in sorted(scored, key=lambda item: item[1], reverse=True)
        ]

        best = self._best_by_overlap(selection, scored)
        match_type = "overlap"
        if best is None:
            best = self._best_by_name(selection, scored)
            match_type = "name"

        if best is None:
            logger.warning(
                "Could not match selection %r (%s files)", selection.name, len(selection.files)
            )
            return ReconciliationResult(
                selection_name=selection.name,
                status="unmatched",
                candidates=candidates,
                reason="no cluster reached the overlap threshold and no cluster name matched",
            )

        cluster, ratio = best
        filtered = self._filtered(selection, cluster)
        if not filtered.files:
            logger.warning(
                "Selection %r matched cluster %r by name but shares no files",
                selection.name,
                cluster.name,
            )
            return ReconciliationResult(
                selection_name=selection.name,
                status="unmatched",
                overlap=ratio,
                candidates=candidates,
                reason=f"cluster {cluster.name!r} matched by name but contains none of the selected files",
            )

        logger.info(
            "Matched selection %r to cluster %r by %s (overlap %.2f, %s of %s files kept)",
            selection.name,
            cluster.name,
            match_type,
            ratio,
            len(filtered.files),
            len(cluster.files),
        )
        return ReconciliationResult(
            selection_name=selection.name,
            status="matched",
            match_type=match_type,
            overlap=ratio,
            cluster=filtered,
            candidates=candidates,
        )

    def match_all(
        self, selections: Sequence[ClusterSelection], clusters: Sequence[FileCluster]
    ) -> BatchReconciliation:
        """Reconcile a batch of selections.

        Raises
        ------
        ConfigError
            If ``selections`` is empty.
        ReconciliationMiss
            If no selection in the batch could be matched.
        """

        if not selections:
            raise ConfigError("no cluster selections supplied for execution")
        batch = BatchReconciliation(results=[self.match(s, clusters) for s in selections])
        if not batch.matched:
            available: List[Dict[str, object]] = [
                {"id": c.id, "name": c.name, "fileCount": len(c.files)} for c in clusters
            ]
            raise ReconciliationMiss(
                "No matching clusters found for execution",
                results=batch.results,
                available=available,
            )
        return batch


__all__ = ["BatchReconciliation", "ReconciliationMatcher", "overlap_ratio"]
