"""Configuration for the clustering and reconciliation engine."""
from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel, Field


class EngineConfig(BaseModel):
    """Runtime configuration for clustering, theming and reconciliation."""

    min_files: int = Field(
        default=10, description="Minimum embedded files required before an analysis runs"
    )
    max_iterations: int = Field(
        default=100, description="Upper bound on k-means iterations"
    )
    content_confidence: float = Field(
        default=0.8, description="Per-file confidence assigned to content-based clusters"
    )
    structure_confidence: float = Field(
        default=0.9, description="Per-file confidence assigned to folder-based clusters"
    )
    min_structural_group: int = Field(
        default=2, description="Folder groups smaller than this are skipped"
    )
    overlap_threshold: float = Field(
        default=0.8, description="Minimum selection overlap for a file-set match"
    )
    hybrid_exclude_grouped: bool = Field(
        default=True,
        description="Exclude files placed in folder groups from the hybrid content pass",
    )
    folder_name_max_length: int = Field(
        default=25, description="Maximum length of a suggested folder name"
    )
    cluster_name_max_length: int = Field(
        default=30, description="Maximum length of an AI-refined cluster name"
    )
    prompt_token_limit: int = Field(
        default=1500, description="Token budget for file names in refinement prompts"
    )
    encoding_name: str = Field(
        default="cl100k_base", description="Tiktoken encoding name for token counting"
    )
    persist_analyses: bool = Field(
        default=True, description="Store analysis membership under an analysis token"
    )


ROOT_CONFIG = Path(__file__).resolve().parents[1] / "organizer.config.json"


def _load_config_from_file() -> EngineConfig:
    """Load configuration from the main config file if present."""
    if ROOT_CONFIG.exists():
        data = json.loads(ROOT_CONFIG.read_text(encoding="utf-8"))
        return EngineConfig(**data.get("cluster_engine", {}))
    return EngineConfig()


CONFIG = _load_config_from_file()


def get_config() -> EngineConfig:
    """Return the current global configuration."""
    return CONFIG


def update_config(**kwargs) -> EngineConfig:
    """Update global configuration values.

    Returns the updated configuration.
    """

    global CONFIG
    CONFIG = CONFIG.model_copy(update=kwargs)
    return CONFIG
