"""Unified catalog records, health history, alerts and run metadata."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, model_validator

from mcp_catalog.entities.directory import HealthTrend
from mcp_catalog.errors import FailureType


class Provenance(StrEnum):
    """Which source(s) contributed to a merged record."""

    SCANNER = "scanner"
    DIRECTORY = "directory"
    BOTH = "scanner,directory"


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class MeasurementSource(StrEnum):
    DIRECTORY = "directory"
    ESTIMATED = "estimated"
    FAILED = "failed"


class MeasurementSubject(StrEnum):
    """What a health measurement describes."""

    MERGED_RECORD = "merged_record"
    DIRECTORY_SERVER = "directory_server"


class AlertSeverity(StrEnum):
    CRITICAL = "critical"
    WARNING = "warning"


class AlertType(StrEnum):
    CRITICAL_HEALTH = "critical_health"
    DEGRADED_HEALTH = "degraded_health"
    DECLINING_TREND = "declining_trend"


class MergedRecord(BaseModel):
    """The unified catalog entity.

    ``merge_key`` is ``repo:<full_name>`` whenever a repository is linked,
    otherwise ``dir:<directory id>``.
    """

    merge_key: str
    repository_full_name: str | None = None
    directory_server_id: str | None = None
    name: str
    description: str = ""
    url: str = ""
    language: str | None = None
    category: str = ""
    server_type: str = "general"
    capabilities: list[str] = Field(default_factory=list)
    stars: int = 0
    combined_stars: int = 0
    downloads: int = 0
    package_name: str = ""
    installation: str = ""
    confidence: int = 0
    verified: bool = False
    health_score: float | None = None
    health_status: HealthStatus = HealthStatus.UNKNOWN
    health_trend: HealthTrend = HealthTrend.UNKNOWN
    reliability: float | None = None
    match_score: float | None = None
    match_reasons: list[str] = Field(default_factory=list)
    data_sources: Provenance
    last_updated: datetime | None = None
    last_health_check: datetime | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @model_validator(mode="after")
    def _check_provenance(self, info: ValidationInfo) -> MergedRecord:
        has_repo = self.repository_full_name is not None
        has_dir = self.directory_server_id is not None
        expected = {
            (True, True): Provenance.BOTH,
            (True, False): Provenance.SCANNER,
            (False, True): Provenance.DIRECTORY,
        }.get((has_repo, has_dir))
        if expected is None:
            msg = "merged record needs a repository or a directory server link"
            raise ValueError(msg)
        if self.data_sources != expected:
            msg = f"data_sources {self.data_sources!r} does not match links (expected {expected!r})"
            raise ValueError(msg)
        if expected is Provenance.BOTH and self.match_score is None:
            msg = "a record fused from both sources needs a match score"
            raise ValueError(msg)
        min_score = (info.context or {}).get("min_match_score")
        if expected is Provenance.BOTH and min_score is not None and self.match_score < min_score:
            msg = f"match score {self.match_score} is below the minimum {min_score}"
            raise ValueError(msg)
        return self

    @staticmethod
    def key_for(repository_full_name: str | None, directory_server_id: str | None) -> str:
        if repository_full_name:
            return f"repo:{repository_full_name}"
        return f"dir:{directory_server_id}"


class HealthMeasurement(BaseModel):
    """Append-only health observation."""

    model_config = ConfigDict(frozen=True)

    subject: MeasurementSubject
    subject_id: str
    score: float
    status: HealthStatus
    source: MeasurementSource
    factors: dict[str, Any] = Field(default_factory=dict)
    measured_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    id: int | None = None


class HealthAlert(BaseModel):
    record_key: str
    severity: AlertSeverity
    alert_type: AlertType
    message: str
    health_score: float | None = None
    acknowledged: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    id: int | None = None


class RunStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RunError(BaseModel):
    """One item- or phase-level error recorded against a run."""

    phase: str
    item: str | None = None
    failure_type: FailureType = FailureType.UNKNOWN
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class DiscoveryRun(BaseModel):
    """One orchestrator execution."""

    run_id: str
    kind: str = "discovery"
    status: RunStatus = RunStatus.PENDING
    phase: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    counters: dict[str, int] = Field(default_factory=dict)
    errors: list[RunError] = Field(default_factory=list)
    failed_phase: str | None = None
    error_message: str | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    finished_at: datetime | None = None

    def bump(self, counter: str, amount: int = 1) -> None:
        self.counters[counter] = self.counters.get(counter, 0) + amount
