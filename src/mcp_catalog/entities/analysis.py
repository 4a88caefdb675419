"""Analyzer output: the normalized per-repository profile."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class Capability(StrEnum):
    """Fixed capability vocabulary extracted from readme and entry points."""

    FILESYSTEM = "filesystem"
    DATABASE = "database"
    API = "api"
    AI = "ai"
    TOOLS = "tools"
    DATA = "data"
    WEB = "web"
    GIT = "git"
    TIME = "time"
    MATH = "math"
    SEARCH = "search"
    MONITORING = "monitoring"


class PackageInfo(BaseModel):
    """Common shape produced by every manifest parser."""

    ecosystem: str
    source_file: str
    name: str = ""
    version: str = ""
    description: str = ""
    dependencies: list[str] = Field(default_factory=list)
    dev_dependencies: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    scripts: dict[str, str] = Field(default_factory=dict)
    entry_points: list[str] = Field(default_factory=list)
    has_executable: bool = False

    def all_dependencies(self) -> list[str]:
        return [*self.dependencies, *self.dev_dependencies]


class DocumentationFlags(BaseModel):
    """Documentation quality signals."""

    has_readme: bool = False
    has_docs: bool = False
    has_examples: bool = False
    has_installation: bool = False
    has_tests: bool = False
    has_config_example: bool = False


class RepositoryTraits(BaseModel):
    """Repository facts the Detector's characteristic pass needs."""

    name: str = ""
    description: str = ""
    stars: int = 0
    size: int = 0
    archived: bool = False
    fork: bool = False
    updated_at: datetime | None = None
    top_level_files: list[str] = Field(default_factory=list)


class AnalysisProfile(BaseModel):
    """Extraction result for one repository.

    ``seed_confidence`` is the Analyzer's accumulator. It is an input to
    the Detector, never a final score.
    """

    full_name: str
    traits: RepositoryTraits = Field(default_factory=RepositoryTraits)
    language: str = "unknown"
    framework: str | None = None
    installation_method: str = "unknown"
    server_type: str = "general"
    dependencies: list[str] = Field(default_factory=list)
    capabilities: list[Capability] = Field(default_factory=list)
    indicators: list[str] = Field(default_factory=list)
    documentation: DocumentationFlags = Field(default_factory=DocumentationFlags)
    package: PackageInfo | None = Field(default=None, description="Primary manifest")
    manifests: dict[str, PackageInfo] = Field(default_factory=dict, description="File name -> parsed manifest")
    file_excerpts: dict[str, str] = Field(
        default_factory=dict,
        description="File name -> lowercased leading content, used by file-signal rules",
    )
    mcp_relevant_files: list[str] = Field(default_factory=list)
    analyzed_files: list[str] = Field(default_factory=list)
    parse_warnings: list[str] = Field(default_factory=list)
    seed_confidence: int = 0
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    def add_indicator(self, indicator: str) -> None:
        if indicator not in self.indicators:
            self.indicators.append(indicator)

    def add_capability(self, capability: Capability) -> None:
        if capability not in self.capabilities:
            self.capabilities.append(capability)


class AnalysisSummary(BaseModel):
    """Aggregate view over a batch of profiles."""

    total: int = 0
    languages: dict[str, int] = Field(default_factory=dict)
    seed_bands: dict[str, int] = Field(default_factory=lambda: {"high": 0, "medium": 0, "low": 0, "none": 0})
    capabilities: dict[str, int] = Field(default_factory=dict)
    server_types: dict[str, int] = Field(default_factory=dict)
    average_seed: float = 0.0
