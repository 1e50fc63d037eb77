"""Summary figures reported alongside an analysis."""
from __future__ import annotations

import math
from typing import Sequence

from .models import FileCluster, OrganizationSummary

MAX_SAVINGS_HOURS = 2


def average_confidence(clusters: Sequence[FileCluster]) -> float:
    """Mean over clusters of the mean per-file confidence."""
    per_cluster = [
        sum(f.confidence for f in c.files) / len(c.files) for c in clusters if c.files
    ]
    if not per_cluster:
        return 0.0
    return sum(per_cluster) / len(per_cluster)


def estimated_savings(organized_files: int, total_files: int) -> int:
    """Rough guess at hours saved. Not a measured quantity."""
    if total_files <= 0:
        return 0
    return math.floor((organized_files / total_files) * MAX_SAVINGS_HOURS)


def calculate_metrics(total_files: int, clusters: Sequence[FileCluster]) -> OrganizationSummary:
    organized = sum(len(c.files) for c in clusters)
    return OrganizationSummary(
        total_files=total_files,
        clusters_created=len(clusters),
        estimated_savings=estimated_savings(organized, total_files),
        confidence=average_confidence(clusters),
    )


__all__ = ["average_confidence", "calculate_metrics", "estimated_savings"]
