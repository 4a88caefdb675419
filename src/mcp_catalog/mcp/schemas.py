"""Pydantic input/output models for MCP tool handlers."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Input models (keep descriptions under 10 words)
# ---------------------------------------------------------------------------


class DiscoveryInput(BaseModel):
    """Input for run_discovery and run_super_discovery tools."""

    max_repositories: int = Field(default=100, description="Max repositories to discover")
    min_stars: int = Field(default=0, description="Minimum stargazers")
    strict_mode: bool = Field(default=False, description="Use strict confidence thresholds")
    dry_run: bool = Field(default=False, description="Skip storing detections")
    include_directory: bool = Field(default=True, description="Sync the external directory")
    force_sync: bool = Field(default=False, description="Ignore the sync interval")


class RecordsInput(BaseModel):
    """Input for get_high_confidence_records tool."""

    limit: int = Field(default=20, description="Max records")
    merged: bool = Field(default=True, description="Unified records instead of scanner detections")


class ExportInput(BaseModel):
    """Input for export_catalog tool."""

    format: str = Field(default="json", description="json, yaml, or csv")


class HealthReportInput(BaseModel):
    """Input for get_health_report tool."""

    period_days: int = Field(default=7, description="Report window in days")


# ---------------------------------------------------------------------------
# Output models
# ---------------------------------------------------------------------------


class RunResult(BaseModel):
    """Outcome of a discovery run."""

    run_id: str | None = None
    status: str = Field(description="completed or failed")
    counters: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    report: dict[str, Any] = Field(default_factory=dict)


class RecordSummary(BaseModel):
    """One catalog entry."""

    key: str
    name: str
    url: str = ""
    confidence: int
    classification: str | None = None
    data_sources: str = "scanner"
    verified: bool = False
    health_score: float | None = None


class RecordsResult(BaseModel):
    records: list[RecordSummary] = Field(default_factory=list)
    total: int = 0


class ExportResult(BaseModel):
    format: str
    content: str = ""
    error: str | None = None


class HealthReportResult(BaseModel):
    report: dict[str, Any] = Field(default_factory=dict)


class MonitoringResult(BaseModel):
    monitoring: bool
