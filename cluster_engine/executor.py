"""Carry out an approved reorganization against a storage backend."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .config import EngineConfig, get_config
from .errors import PersistenceFailure
from .models import (
    ClusterExecutionResult,
    ExecutionSummary,
    FileCluster,
    OrganizationActivity,
)
from .themes import DEFAULT_FOLDER_NAME, sanitize_folder_name

logger = logging.getLogger(__name__)

SHORTCUT_MIME_TYPES = {"application/vnd.google-apps.shortcut", "inode/symlink"}


class StorageBackend(Protocol):
    """Storage operations needed to organize files. Every call may raise."""

    def create_folder(self, name: str) -> str:
        ...

    def create_reference(self, target_file_id: str, folder_id: str, display_name: str) -> str:
        ...

    def get_file_metadata(self, file_id: str) -> Dict[str, Any]:
        ...


class ActivitySink(Protocol):
    def append_activity(self, activity: OrganizationActivity) -> None:
        ...


@dataclass
class ExecutionReport:
    results: List[ClusterExecutionResult] = field(default_factory=list)
    summary: ExecutionSummary = field(default_factory=ExecutionSummary)


class OrganizationExecutor:
    """Create one folder per cluster and a reference per member file.

    Source files are never moved or deleted. Calls are issued sequentially;
    a failing file is skipped and a failing folder skips only its cluster.
    """

    def __init__(
        self,
        storage: StorageBackend,
        activity_log: Optional[ActivitySink] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.storage = storage
        self.activity_log = activity_log
        self.config = config or get_config()

    def folder_name_for(self, cluster: FileCluster) -> str:
        return (
            cluster.suggested_folder_name
            or sanitize_folder_name(cluster.name, self.config.folder_name_max_length)
            or DEFAULT_FOLDER_NAME
        )

    def _record_activity(
        self,
        user_id: str,
        method: str,
        cluster: FileCluster,
        result: ClusterExecutionResult,
    ) -> None:
        if self.activity_log is None:
            return
        confidences = [f.confidence for f in cluster.files]
        activity = OrganizationActivity(
            user_id=user_id,
            cluster_name=cluster.name,
            folder_name=result.folder_name,
            files_moved=result.files_organized,
            method=method,
            confidence=sum(confidences) / len(confidences) if confidences else 0.0,
            metadata={
                "clusterId": cluster.id,
                "category": cluster.category,
                "folderId": result.folder_id,
                "totalFiles": result.total_files,
                "failedFiles": result.failed_files,
                "skippedFiles": result.skipped_files,
            },
        )
        try:
            self.activity_log.append_activity(activity)
        except Exception as err:  # pylint: disable=broad-except
            failure = PersistenceFailure(f"could not record activity for {cluster.name!r}: {err}")
            logger.error("%s", failure)

    def execute_cluster(self, user_id: str, method: str, cluster: FileCluster) -> ClusterExecutionResult:
        folder_name = self.folder_name_for(cluster)
        result = ClusterExecutionResult(
            cluster_name=cluster.name,
            folder_name=folder_name,
            total_files=len(cluster.files),
        )

        logger.info("Creating folder %r for cluster %r", folder_name, cluster.name)
        try:
            folder_id = self.storage.create_folder(folder_name)
        except Exception as err:  # pylint: disable=broad-except
            logger.error("Failed to create folder %r for cluster %r: %s", folder_name, cluster.name, err)
            result.success = False
            result.error = f"folder creation failed: {err}"
            return result
        result.folder_id = folder_id

        for file in cluster.files:
            try:
                metadata = self.storage.get_file_metadata(file.file_id) or {}
                mime_type = metadata.get("mimeType") or "application/octet-stream"
                if mime_type in SHORTCUT_MIME_TYPES:
                    logger.info("Skipping %s: already a shortcut", file.file_name)
                    result.skipped_files.append(file.file_id)
                    continue
                self.storage.create_reference(file.file_id, folder_id, file.file_name)
            except Exception as err:  # pylint: disable=broad-except
                logger.error(
                    "Failed to create reference for %s (%s) in %r: %s",
                    file.file_name,
                    file.file_id,
                    folder_name,
                    err,
                )
                result.failed_files.append(file.file_id)
                continue
            result.files_organized += 1

        logger.info(
            "Organized %s/%s files into %r", result.files_organized, result.total_files, folder_name
        )
        self._record_activity(user_id, method, cluster, result)
        return result

    def execute(self, user_id: str, clusters: Sequence[FileCluster], method: str) -> ExecutionReport:
        report = ExecutionReport()
        for cluster in clusters:
            if not cluster.selected:
                logger.info("Skipping deselected cluster %s", cluster.name)
                continue
            result = self.execute_cluster(user_id, method, cluster)
            report.results.append(result)

        summary = report.summary
        summary.clusters_requested = len(report.results)
        summary.clusters_succeeded = sum(1 for r in report.results if r.success)
        summary.files_organized = sum(r.files_organized for r in report.results)
        summary.total_files = sum(r.total_files for r in report.results)
        summary.files_failed = sum(len(r.failed_files) for r in report.results)
        return report


__all__ = [
    "ActivitySink",
    "ExecutionReport",
    "OrganizationExecutor",
    "SHORTCUT_MIME_TYPES",
    "StorageBackend",
]
