"""Models for the external curated MCP directory."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from mcp_catalog.entities.repository import parse_timestamp


class HealthTrend(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"
    UNKNOWN = "unknown"


class DirectoryServer(BaseModel):
    """A server entry from the external directory. ``id`` is unique."""

    id: str
    name: str
    description: str = ""
    category: str = ""
    language: str | None = None
    capabilities: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    verified: bool = False
    active: bool = True
    health_score: float | None = None
    health_trend: HealthTrend = HealthTrend.UNKNOWN
    stars: int = 0
    downloads: int = 0
    repository_url: str = ""
    homepage: str = ""
    author: str = ""
    version: str = ""
    installation: str = ""
    last_updated: datetime | None = None
    last_synced: datetime | None = None

    @field_validator("last_updated", "last_synced", mode="before")
    @classmethod
    def _parse_dates(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> DirectoryServer:
        """Map a directory API payload (camelCase) onto the model."""
        installation = payload.get("installation") or payload.get("installCommand") or ""
        if isinstance(installation, dict):
            installation = installation.get("command") or next(iter(installation.values()), "")
        repository = payload.get("repository") or payload.get("repositoryUrl") or ""
        if isinstance(repository, dict):
            repository = repository.get("url", "")
        return cls(
            id=str(payload["id"]),
            name=payload.get("name") or str(payload["id"]),
            description=payload.get("description") or "",
            category=payload.get("category") or "",
            language=payload.get("language"),
            capabilities=list(payload.get("capabilities") or []),
            tags=list(payload.get("tags") or []),
            verified=bool(payload.get("verified", False)),
            active=bool(payload.get("active", payload.get("isActive", True))),
            health_score=payload.get("healthScore", payload.get("health_score")),
            stars=payload.get("stars") or payload.get("githubStars") or 0,
            downloads=payload.get("downloads") or payload.get("weeklyDownloads") or 0,
            repository_url=str(repository),
            homepage=payload.get("homepage") or "",
            author=payload.get("author") or "",
            version=payload.get("version") or "",
            installation=str(installation),
            last_updated=payload.get("lastUpdated") or payload.get("updatedAt"),
        )


class DirectoryCategory(BaseModel):
    id: str
    name: str
    description: str = ""
    server_count: int = 0

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> DirectoryCategory:
        return cls(
            id=str(payload["id"]),
            name=payload.get("name") or str(payload["id"]),
            description=payload.get("description") or "",
            server_count=payload.get("serverCount") or payload.get("count") or 0,
        )


class DirectoryStats(BaseModel):
    total_servers: int = 0
    active_servers: int = 0
    verified_servers: int = 0
    categories: int = 0
    average_health_score: float = 0.0
    last_updated: datetime | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> DirectoryStats:
        return cls(
            total_servers=payload.get("totalServers") or 0,
            active_servers=payload.get("activeServers") or 0,
            verified_servers=payload.get("verifiedServers") or 0,
            categories=payload.get("categories") or 0,
            average_health_score=payload.get("averageHealthScore") or 0.0,
            last_updated=parse_timestamp(payload.get("lastUpdated")),
        )


class ServerFilters(BaseModel):
    """Filters accepted by the directory listing endpoint."""

    category: str | None = None
    verified: bool | None = None
    active: bool | None = None
    page: int = 1
    limit: int = 100

    def to_params(self) -> dict[str, str | int]:
        params: dict[str, str | int] = {"page": self.page, "limit": self.limit}
        if self.category:
            params["category"] = self.category
        if self.verified is not None:
            params["verified"] = str(self.verified).lower()
        if self.active is not None:
            params["active"] = str(self.active).lower()
        return params


class ServerPage(BaseModel):
    """One page of the directory listing."""

    servers: list[DirectoryServer] = Field(default_factory=list)
    page: int = 1
    total_pages: int = 1
    total: int = 0
    offline: bool = False


class SyncStats(BaseModel):
    fetched: int = 0
    new: int = 0
    updated: int = 0
    skipped_low_health: int = 0
    inactivated: int = 0
    errors: int = 0
    categories: int = 0
    measurements: int = 0
    offline: bool = False
    duration_seconds: float = 0.0


class SyncResult(BaseModel):
    """Outcome of one directory sync."""

    skipped: bool = False
    reason: str = ""
    sync_id: str | None = None
    stats: SyncStats = Field(default_factory=SyncStats)
    directory_stats: DirectoryStats | None = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
