"""Exception types raised by the clustering and reconciliation engine."""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class OrganizerError(Exception):
    """Base class for all engine errors."""


class ConfigError(OrganizerError, ValueError):
    """An input or configuration precondition was violated."""


class InsufficientFilesError(ConfigError):
    """Too few embedded files are available for a meaningful analysis."""

    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            f"Need at least {required} indexed files for organization "
            f"(currently have {available})"
        )
        self.available = available
        self.required = required


class ReconciliationMiss(OrganizerError):
    """No selection in a batch could be matched to a fresh cluster.

    Individual misses are reported per selection; this is only raised when
    every selection in the batch misses.
    """

    def __init__(
        self,
        message: str,
        results: Optional[List[Any]] = None,
        available: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.results = results or []
        self.available = available or []


class ExternalCallFailure(OrganizerError):
    """A storage backend call (folder/reference/metadata) failed."""


class AIRefinementFailure(OrganizerError):
    """The optional AI refinement call failed or returned unusable output."""


class PersistenceFailure(OrganizerError):
    """Writing an activity record failed."""


class WorkflowStateError(OrganizerError, RuntimeError):
    """A workflow transition is not allowed from the current state."""


__all__ = [
    "OrganizerError",
    "ConfigError",
    "InsufficientFilesError",
    "ReconciliationMiss",
    "ExternalCallFailure",
    "AIRefinementFailure",
    "PersistenceFailure",
    "WorkflowStateError",
]
