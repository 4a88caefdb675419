"""Result models for discovery runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mcp_catalog.entities.analysis import AnalysisProfile
    from mcp_catalog.entities.catalog import DiscoveryRun
    from mcp_catalog.entities.detection import Detection
    from mcp_catalog.entities.directory import SyncResult
    from mcp_catalog.entities.repository import Repository
    from mcp_catalog.monitoring.health_monitor import HealthCheckStats
    from mcp_catalog.nodes.fusion.merger import MergeStats


@dataclass
class AnalyzedRepository:
    """A repository that made it through fetch and analysis."""

    repository: Repository
    profile: AnalysisProfile
    detection: Detection | None = None


@dataclass
class DiscoveryResult:
    """Result of a scanner-only discovery run.

    ``report`` combines the run's counters with live catalog aggregates.
    """

    run: DiscoveryRun
    report: dict[str, Any]
    analyzed: list[AnalyzedRepository] = field(default_factory=list)

    @property
    def run_id(self) -> str:
        return self.run.run_id

    @property
    def stats(self) -> dict[str, int]:
        return dict(self.run.counters)


@dataclass
class SuperDiscoveryResult:
    """Result of a fused run; phases that were skipped or degraded are None."""

    run: DiscoveryRun
    report: dict[str, Any]
    discovery: DiscoveryResult | None = None
    sync: SyncResult | None = None
    merge: MergeStats | None = None
    health: HealthCheckStats | None = None

    @property
    def run_id(self) -> str:
        return self.run.run_id
