"""Workflows package."""

from mcp_catalog.workflows.models import AnalyzedRepository, DiscoveryResult, SuperDiscoveryResult
from mcp_catalog.workflows.orchestrator import (
    DiscoveryOrchestrator,
    SuperDiscoveryOrchestrator,
    generate_run_id,
)

__all__ = [
    "AnalyzedRepository",
    "DiscoveryOrchestrator",
    "DiscoveryResult",
    "SuperDiscoveryOrchestrator",
    "SuperDiscoveryResult",
    "generate_run_id",
]
