"""Data records exchanged between the engine, the store and the API."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Category = Literal["work", "personal", "media", "documents", "archive", "mixed"]
CATEGORIES: Tuple[str, ...] = ("work", "personal", "media", "documents", "archive", "mixed")

Method = Literal["folders", "clustering", "hybrid"]


class CamelModel(BaseModel):
    """Base model serialising to camelCase while accepting snake_case input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FileEmbeddingRecord(CamelModel):
    """One embedded file as yielded by the embedding store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    file_id: str
    file_name: str
    embedding: Tuple[float, ...]
    content_snippet: str = ""
    folder_path: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ClusterFile(CamelModel):
    file_id: str
    file_name: str
    confidence: float
    keywords: List[str] = Field(default_factory=list)


class FileCluster(CamelModel):
    """A proposed folder. ``id`` is only meaningful inside one analysis run."""

    id: str
    name: str
    description: str = ""
    color: str = ""
    suggested_folder_name: str = ""
    category: Category = "mixed"
    files: List[ClusterFile] = Field(default_factory=list)
    selected: bool = True

    def file_ids(self) -> List[str]:
        return [f.file_id for f in self.files]


class ClusterTheme(CamelModel):
    name: str
    description: str
    folder_name: str
    category: Category
    keywords: List[str] = Field(default_factory=list)


class OrganizationSummary(CamelModel):
    total_files: int
    clusters_created: int
    estimated_savings: int
    confidence: float


class OrganizationActions(CamelModel):
    create_folders: bool = False
    move_files: bool = False
    add_labels: bool = True


class OrganizationSuggestion(CamelModel):
    clusters: List[FileCluster]
    summary: OrganizationSummary
    actions: OrganizationActions = Field(default_factory=OrganizationActions)
    analysis_token: Optional[str] = None


class AnalysisOptions(CamelModel):
    method: Method = "hybrid"
    max_clusters: int = Field(default=6, ge=1)
    min_cluster_size: int = Field(default=3, ge=1)
    create_folders: bool = False


class SelectionFile(CamelModel):
    file_id: str
    file_name: str = Field(
        default="",
        validation_alias=AliasChoices("fileName", "file_name", "name"),
    )


class ClusterSelection(CamelModel):
    """The part of an earlier suggestion the user approved."""

    name: str
    file_count: int = 0
    files: List[SelectionFile] = Field(default_factory=list)

    def file_ids(self) -> List[str]:
        return [f.file_id for f in self.files]


class ExecutionRequest(CamelModel):
    selections: List[ClusterSelection]
    method: Method = "hybrid"
    max_clusters: int = Field(default=6, ge=1)
    min_cluster_size: int = Field(default=3, ge=1)
    analysis_token: Optional[str] = None


class MatchCandidate(CamelModel):
    cluster_id: str
    name: str
    file_count: int
    overlap: float


class ReconciliationResult(CamelModel):
    selection_name: str
    status: Literal["matched", "unmatched"]
    match_type: Optional[Literal["overlap", "name"]] = None
    overlap: float = 0.0
    cluster: Optional[FileCluster] = None
    candidates: List[MatchCandidate] = Field(default_factory=list)
    reason: Optional[str] = None


class ClusterExecutionResult(CamelModel):
    cluster_name: str
    folder_name: str
    folder_id: Optional[str] = None
    files_organized: int = 0
    total_files: int = 0
    success: bool = True
    error: Optional[str] = None
    failed_files: List[str] = Field(default_factory=list)
    skipped_files: List[str] = Field(default_factory=list)


class ExecutionSummary(CamelModel):
    clusters_requested: int = 0
    clusters_succeeded: int = 0
    files_organized: int = 0
    total_files: int = 0
    files_failed: int = 0


class ExecutionResult(CamelModel):
    success: bool
    message: str
    results: List[ClusterExecutionResult] = Field(default_factory=list)
    unmatched: List[ReconciliationResult] = Field(default_factory=list)
    summary: ExecutionSummary = Field(default_factory=ExecutionSummary)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrganizationActivity(CamelModel):
    """Append-only record written after a cluster has been executed."""

    user_id: str
    cluster_name: str
    folder_name: str
    files_moved: int
    method: str
    confidence: float
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)


__all__ = [
    "CATEGORIES",
    "Category",
    "Method",
    "CamelModel",
    "FileEmbeddingRecord",
    "ClusterFile",
    "FileCluster",
    "ClusterTheme",
    "OrganizationSummary",
    "OrganizationActions",
    "OrganizationSuggestion",
    "AnalysisOptions",
    "SelectionFile",
    "ClusterSelection",
    "ExecutionRequest",
    "MatchCandidate",
    "ReconciliationResult",
    "ClusterExecutionResult",
    "ExecutionSummary",
    "ExecutionResult",
    "OrganizationActivity",
]
