"""Request-scoped analyze/execute workflow."""
from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Set, Tuple

from .clusterer import EmbeddingClusterer
from .config import EngineConfig, get_config
from .errors import ConfigError, InsufficientFilesError, ReconciliationMiss, WorkflowStateError
from .executor import ActivitySink, OrganizationExecutor, StorageBackend
from .grouping import ClusterBuilder, StructuralGrouper, hybrid_clusters
from .metrics import calculate_metrics
from .models import (
    AnalysisOptions,
    ExecutionRequest,
    ExecutionResult,
    FileCluster,
    FileEmbeddingRecord,
    OrganizationActions,
    OrganizationSuggestion,
)
from .reconcile import ReconciliationMatcher
from .themes import TextGenerator, ThemeAnalyzer

logger = logging.getLogger(__name__)


class WorkflowState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    ANALYSIS_READY = "analysis_ready"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: Dict[WorkflowState, Set[WorkflowState]] = {
    WorkflowState.IDLE: {WorkflowState.ANALYZING},
    WorkflowState.ANALYZING: {WorkflowState.ANALYSIS_READY, WorkflowState.FAILED},
    WorkflowState.ANALYSIS_READY: {WorkflowState.EXECUTING, WorkflowState.ANALYZING},
    WorkflowState.EXECUTING: {WorkflowState.COMPLETED, WorkflowState.FAILED},
    WorkflowState.COMPLETED: {WorkflowState.ANALYZING},
    WorkflowState.FAILED: {WorkflowState.ANALYZING},
}


class EmbeddingSource(Protocol):
    def get_file_records(self, user_id: str) -> List[FileEmbeddingRecord]:
        ...


class AnalysisSnapshotStore(Protocol):
    def save_analysis(self, user_id: str, token: str, clusters: Sequence[FileCluster]) -> None:
        ...

    def load_analysis(self, user_id: str, token: str) -> Optional[List[FileCluster]]:
        ...

    def delete_analysis(self, user_id: str, token: str) -> None:
        ...


class OrganizerWorkflow:
    """One analysis or execution for one user.

    Construct a new workflow per request with the caller's own storage
    backend; instances hold no state shared between users.
    """

    def __init__(
        self,
        source: EmbeddingSource,
        storage: Optional[StorageBackend] = None,
        activity_log: Optional[ActivitySink] = None,
        snapshots: Optional[AnalysisSnapshotStore] = None,
        refiner: Optional[TextGenerator] = None,
        config: Optional[EngineConfig] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.config = config or get_config()
        self.source = source
        self.storage = storage
        self.activity_log = activity_log
        self.snapshots = snapshots
        self.analyzer = ThemeAnalyzer(refiner=refiner, config=self.config)
        self.builder = ClusterBuilder(
            analyzer=self.analyzer,
            clusterer=EmbeddingClusterer(config=self.config, seed=seed),
            config=self.config,
        )
        self.grouper = StructuralGrouper(analyzer=self.analyzer, config=self.config)
        self.matcher = ReconciliationMatcher(config=self.config)
        self.state = WorkflowState.IDLE
        self.last_error: Optional[str] = None

    def _transition(self, target: WorkflowState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise WorkflowStateError(f"cannot move from {self.state.value} to {target.value}")
        logger.debug("workflow %s -> %s", self.state.value, target.value)
        self.state = target

    def _fail(self, err: Exception) -> None:
        self.last_error = str(err)
        self._transition(WorkflowState.FAILED)

    def compute_clusters(
        self,
        records: Sequence[FileEmbeddingRecord],
        method: str,
        max_clusters: int,
        min_cluster_size: int,
    ) -> List[FileCluster]:
        if method == "folders":
            clusters = self.grouper.group(records)
        elif method == "clustering":
            clusters = self.builder.cluster(records, min(max_clusters, len(records)), min_cluster_size)
        else:
            clusters = hybrid_clusters(
                records, self.grouper, self.builder, max_clusters, min_cluster_size
            )
        return self.analyzer.refine_all(clusters)

    def _analyze(
        self, user_id: str, options: AnalysisOptions, persist: bool = True
    ) -> OrganizationSuggestion:
        self._transition(WorkflowState.ANALYZING)
        try:
            records = self.source.get_file_records(user_id)
            if len(records) < self.config.min_files:
                raise InsufficientFilesError(len(records), self.config.min_files)
            logger.info(
                "Starting %s organization analysis for user %s over %s files",
                options.method,
                user_id,
                len(records),
            )
            clusters = self.compute_clusters(
                records, options.method, options.max_clusters, options.min_cluster_size
            )
            suggestion = OrganizationSuggestion(
                clusters=clusters,
                summary=calculate_metrics(len(records), clusters),
                actions=OrganizationActions(
                    create_folders=options.create_folders, move_files=False, add_labels=True
                ),
            )
            if persist and self.snapshots is not None and self.config.persist_analyses:
                token = uuid.uuid4().hex
                self.snapshots.save_analysis(user_id, token, clusters)
                suggestion.analysis_token = token
        except Exception as err:
            self._fail(err)
            raise
        self._transition(WorkflowState.ANALYSIS_READY)
        return suggestion

    def analyze(self, user_id: str, options: Optional[AnalysisOptions] = None) -> OrganizationSuggestion:
        """Dry run: propose clusters without touching storage.

        Raises
        ------
        InsufficientFilesError
            If fewer than ``min_files`` embedded files are available.
        """

        return self._analyze(user_id, options or AnalysisOptions())

    def _clusters_for_execution(
        self, user_id: str, request: ExecutionRequest
    ) -> Tuple[List[FileCluster], Optional[str]]:
        """Return the clusters to reconcile against and the snapshot token they came from."""
        if request.analysis_token and self.snapshots is not None:
            stored = self.snapshots.load_analysis(user_id, request.analysis_token)
            if stored is not None:
                logger.info("Reconciling against stored analysis %s", request.analysis_token)
                self._transition(WorkflowState.ANALYZING)
                self._transition(WorkflowState.ANALYSIS_READY)
                return stored, request.analysis_token
            logger.warning("Analysis %s not found; recomputing clusters", request.analysis_token)
        suggestion = self._analyze(
            user_id,
            AnalysisOptions(
                method=request.method,
                max_clusters=request.max_clusters,
                min_cluster_size=request.min_cluster_size,
            ),
            persist=False,
        )
        return suggestion.clusters, None

    def execute(self, user_id: str, request: ExecutionRequest) -> ExecutionResult:
        """Reconcile the approved selections and organize them.

        Raises
        ------
        ReconciliationMiss
            If none of the selections match a cluster.
        """

        if self.storage is None:
            raise WorkflowStateError("no storage backend configured for execution")

        clusters, token = self._clusters_for_execution(user_id, request)
        self._transition(WorkflowState.EXECUTING)
        try:
            batch = self.matcher.match_all(request.selections, clusters)
        except (ReconciliationMiss, ConfigError) as err:
            self._fail(err)
            raise

        executor = OrganizationExecutor(self.storage, self.activity_log, config=self.config)
        report = executor.execute(user_id, batch.matched, request.method)
        self._transition(WorkflowState.COMPLETED)
        if token is not None:
            # a snapshot is good for one execution
            self.snapshots.delete_analysis(user_id, token)

        unmatched = batch.unmatched
        return ExecutionResult(
            success=True,
            message=(
                "Organization completed"
                if not unmatched
                else f"Organization completed; {len(unmatched)} selection(s) could not be matched"
            ),
            results=report.results,
            unmatched=unmatched,
            summary=report.summary,
        )


__all__ = [
    "AnalysisSnapshotStore",
    "EmbeddingSource",
    "OrganizerWorkflow",
    "WorkflowState",
]
