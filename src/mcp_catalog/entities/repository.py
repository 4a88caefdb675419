"""Models for repositories discovered on GitHub."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class Repository(BaseModel):
    """A GitHub repository found by one of the search patterns.

    ``full_name`` (owner/name) is the unique key; re-discovery upserts.
    """

    full_name: str
    owner: str = ""
    name: str = ""
    description: str = ""
    html_url: str = ""
    clone_url: str = ""
    homepage: str = ""
    language: str | None = None
    stars: int = 0
    forks: int = 0
    watchers: int = 0
    size: int = 0
    topics: list[str] = Field(default_factory=list)
    license: str | None = None
    default_branch: str = "main"
    archived: bool = False
    fork: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    pushed_at: datetime | None = None
    discovered_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
    search_pattern: str = ""

    @field_validator("created_at", "updated_at", "pushed_at", mode="before")
    @classmethod
    def _parse_dates(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @field_validator("description", "homepage", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> str:
        return v or ""

    @classmethod
    def from_github(cls, item: dict[str, Any], search_pattern: str = "") -> Repository:
        """Build a repository from a GitHub search or repos API item."""
        owner = (item.get("owner") or {}).get("login", "")
        full_name = item.get("full_name") or f"{owner}/{item.get('name', '')}"
        license_info = item.get("license") or {}
        return cls(
            full_name=full_name,
            owner=owner or full_name.split("/")[0],
            name=item.get("name") or full_name.split("/")[-1],
            description=item.get("description"),
            html_url=item.get("html_url") or f"https://github.com/{full_name}",
            clone_url=item.get("clone_url") or "",
            homepage=item.get("homepage"),
            language=item.get("language"),
            stars=item.get("stargazers_count") or 0,
            forks=item.get("forks_count") or 0,
            watchers=item.get("watchers_count") or 0,
            size=item.get("size") or 0,
            topics=list(item.get("topics") or []),
            license=license_info.get("spdx_id") or license_info.get("name"),
            default_branch=item.get("default_branch") or "main",
            archived=bool(item.get("archived")),
            fork=bool(item.get("fork")),
            created_at=item.get("created_at"),
            updated_at=item.get("updated_at"),
            pushed_at=item.get("pushed_at"),
            search_pattern=search_pattern,
        )


class StructureEntry(BaseModel):
    """One entry of a repository's top-level directory listing."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str = "file"
    size: int = 0


class Release(BaseModel):
    """A published release (best effort metadata)."""

    model_config = ConfigDict(frozen=True)

    tag_name: str
    name: str = ""
    published_at: datetime | None = None
    prerelease: bool = False

    @field_validator("published_at", mode="before")
    @classmethod
    def _parse_published(cls, v: Any) -> datetime | None:
        return parse_timestamp(v)

    @field_validator("name", mode="before")
    @classmethod
    def _name_or_empty(cls, v: Any) -> str:
        return v or ""


class RepositoryDetails(BaseModel):
    """Repository metadata plus the fixed content file set and listing."""

    repository: Repository
    files: dict[str, str] = Field(default_factory=dict, description="File name -> decoded content")
    structure: list[StructureEntry] = Field(default_factory=list)
    releases: list[Release] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)


class ScanStats(BaseModel):
    """Counters for one multi-pattern search."""

    patterns_searched: int = 0
    total_results: int = 0
    unique_repositories: int = 0
    duplicates_filtered: int = 0


class ScanResult(BaseModel):
    """Deduplicated repositories plus search statistics."""

    records: list[Repository] = Field(default_factory=list)
    stats: ScanStats = Field(default_factory=ScanStats)


class RateLimitBucket(BaseModel):
    """Remaining/limit/reset for one GitHub quota resource."""

    limit: int = 0
    remaining: int = 0
    reset: datetime | None = None
    used: int = 0


class RateLimitStatus(BaseModel):
    """GitHub quota snapshot for the general and search resources."""

    core: RateLimitBucket = Field(default_factory=RateLimitBucket)
    search: RateLimitBucket = Field(default_factory=RateLimitBucket)
    graphql: RateLimitBucket = Field(default_factory=RateLimitBucket)
