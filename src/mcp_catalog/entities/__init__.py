"""Entity models for the MCP catalog domain layer."""

from mcp_catalog.entities.analysis import (
    AnalysisProfile,
    AnalysisSummary,
    Capability,
    DocumentationFlags,
    PackageInfo,
    RepositoryTraits,
)
from mcp_catalog.entities.catalog import (
    AlertSeverity,
    AlertType,
    DiscoveryRun,
    HealthAlert,
    HealthMeasurement,
    HealthStatus,
    MeasurementSource,
    MeasurementSubject,
    MergedRecord,
    Provenance,
    RunError,
    RunStatus,
)
from mcp_catalog.entities.detection import (
    Classification,
    ConfidenceBand,
    Detection,
    DetectionSummary,
    DetectionThresholds,
    EdgeCase,
    IndicatorKind,
    IndicatorMatch,
)
from mcp_catalog.entities.directory import (
    DirectoryCategory,
    DirectoryServer,
    DirectoryStats,
    HealthTrend,
    ServerFilters,
    ServerPage,
    SyncResult,
    SyncStats,
)
from mcp_catalog.entities.repository import (
    RateLimitBucket,
    RateLimitStatus,
    Release,
    Repository,
    RepositoryDetails,
    ScanResult,
    ScanStats,
    StructureEntry,
)

__all__ = [
    "AlertSeverity",
    "AlertType",
    "AnalysisProfile",
    "AnalysisSummary",
    "Capability",
    "Classification",
    "ConfidenceBand",
    "Detection",
    "DetectionSummary",
    "DetectionThresholds",
    "DirectoryCategory",
    "DirectoryServer",
    "DirectoryStats",
    "DiscoveryRun",
    "DocumentationFlags",
    "EdgeCase",
    "HealthAlert",
    "HealthMeasurement",
    "HealthStatus",
    "HealthTrend",
    "IndicatorKind",
    "IndicatorMatch",
    "MeasurementSource",
    "MeasurementSubject",
    "MergedRecord",
    "PackageInfo",
    "Provenance",
    "RateLimitBucket",
    "RateLimitStatus",
    "Release",
    "Repository",
    "RepositoryDetails",
    "RepositoryTraits",
    "RunError",
    "RunStatus",
    "ScanResult",
    "ScanStats",
    "ServerFilters",
    "ServerPage",
    "StructureEntry",
    "SyncResult",
    "SyncStats",
]
