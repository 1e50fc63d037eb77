"""Embedding clustering, theming and reconciliation engine."""

from .clusterer import EmbeddingClusterer
from .config import CONFIG, EngineConfig, update_config
from .errors import (
    AIRefinementFailure,
    ConfigError,
    ExternalCallFailure,
    InsufficientFilesError,
    OrganizerError,
    PersistenceFailure,
    ReconciliationMiss,
    WorkflowStateError,
)
from .executor import OrganizationExecutor
from .grouping import ClusterBuilder, StructuralGrouper, hybrid_clusters
from .metrics import calculate_metrics
from .reconcile import ReconciliationMatcher
from .themes import ThemeAnalyzer
from .workflow import OrganizerWorkflow, WorkflowState

__all__ = [
    "CONFIG",
    "EngineConfig",
    "update_config",
    "EmbeddingClusterer",
    "ThemeAnalyzer",
    "ClusterBuilder",
    "StructuralGrouper",
    "hybrid_clusters",
    "ReconciliationMatcher",
    "OrganizationExecutor",
    "calculate_metrics",
    "OrganizerWorkflow",
    "WorkflowState",
    "OrganizerError",
    "ConfigError",
    "InsufficientFilesError",
    "ReconciliationMiss",
    "ExternalCallFailure",
    "AIRefinementFailure",
    "PersistenceFailure",
    "WorkflowStateError",
]
