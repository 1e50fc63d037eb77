"""Cluster theming agent package."""

from .agent import (
    ThemingAgentGenerator,
    build_agent,
    load_config,
)

__all__ = [
    "ThemingAgentGenerator",
    "build_agent",
    "load_config",
]
