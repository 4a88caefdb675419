"""Runtime configuration for discovery, sync, fusion and health monitoring."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_PATTERNS: tuple[str, ...] = (
    "mcp-server",
    "model-context-protocol",
    "claude-mcp",
    "anthropic-mcp",
    "mcp-",
    '"mcp server"',
    "context-protocol",
    "claude-desktop",
    "claude_desktop_config",
)

DEFAULT_CONTENT_FILES: tuple[str, ...] = (
    "package.json",
    "README.md",
    "pyproject.toml",
    "setup.py",
    "requirements.txt",
    "Cargo.toml",
    "go.mod",
    "server.js",
    "main.js",
    "index.js",
    "__main__.py",
    "main.py",
)


def load_github_token() -> str | None:
    """Try to load a GitHub token from common locations."""
    token = os.environ.get("GITHUB_TOKEN")
    if token:
        return token

    # gh CLI config
    gh_config = Path.home() / ".config" / "gh" / "hosts.yml"
    if gh_config.exists():
        try:
            with open(gh_config) as f:
                config = yaml.safe_load(f)
            if config and "github.com" in config:
                return config["github.com"].get("oauth_token")
        except (OSError, yaml.YAMLError) as exc:
            logger.debug("Could not read gh hosts file: %s", exc)

    token_file = Path.home() / ".config" / "github-token.txt"
    if token_file.exists():
        return token_file.read_text().strip() or None

    return None


class ScannerConfig(BaseModel):
    """Configuration for the GitHub source scanner."""

    api_url: str = Field(default="https://api.github.com", description="GitHub REST API base URL")
    token: str | None = Field(default_factory=load_github_token, description="GitHub token for higher quotas")
    user_agent: str = Field(default="mcp-catalog/0.1.0")
    search_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_SEARCH_PATTERNS))
    content_files: list[str] = Field(default_factory=lambda: list(DEFAULT_CONTENT_FILES))
    language: str | None = Field(default=None, description="Optional language: search qualifier")

    per_page: int = Field(default=100, description="Search page size (GitHub maximum is 100)")
    max_results_per_pattern: int = Field(default=1000, description="GitHub search never returns more than 1000")
    pattern_pause_seconds: float = Field(default=0.5, description="Pause between search patterns")
    request_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")

    # Retry and rate limit
    max_retries: int = Field(default=3, description="Attempts for transient network failures")
    retry_base_delay: float = Field(default=1.0, description="Base delay for exponential backoff")
    max_rate_limit_wait: float = Field(default=900.0, description="Upper bound on a single rate-limit sleep")
    secondary_backoff_seconds: float = Field(default=60.0, description="Wait after a secondary rate limit")
    requests_per_minute: int = Field(default=0, description="Client side request cap, 0 disables it")
    min_request_interval: float = Field(default=0.0, description="Minimum spacing between requests")
    max_concurrent_requests: int = Field(default=10)
    min_search_quota: int = Field(default=10, description="Search calls that must remain before a run starts")


class DirectoryConfig(BaseModel):
    """Configuration for the external MCP directory client."""

    base_url: str = Field(default="https://www.pulsemcp.com/api")
    api_key: str | None = Field(default_factory=lambda: os.environ.get("PULSEMCP_API_KEY"))
    user_agent: str = Field(default="mcp-catalog/0.1.0")
    timeout: float = Field(default=30.0)
    retry_attempts: int = Field(default=3)
    retry_delay: float = Field(default=1.0, description="Base delay for exponential backoff")
    rate_limit_per_minute: int = Field(default=10)
    page_size: int = Field(default=100)

    offline: bool = Field(default=False, description="Serve deterministic synthetic data only")
    synthetic_server_count: int = Field(default=5670, description="Size of the synthetic directory")
    synthetic_seed: int = Field(default=20240101, description="Seed for the synthetic directory")


class SyncConfig(BaseModel):
    """Configuration for directory sync."""

    sync_interval_seconds: int = Field(default=86400, description="Minimum age of the last sync (default: 24 hours)")
    batch_size: int = Field(default=100)
    include_inactive: bool = Field(default=False)
    min_health_score: float = Field(default=60.0, description="Servers below this health are skipped")
    verified_only: bool = Field(default=False)
    category: str | None = Field(default=None)


class MergeConfig(BaseModel):
    """Configuration for scanner/directory fusion."""

    prefer_directory: bool = Field(default=True, description="Prefer verified directory display fields")
    confidence_boost: int = Field(default=15, description="Boost for a verified directory match")
    min_match_score: float = Field(default=0.7)
    min_scanner_confidence: int = Field(default=30)
    capability_fuzz_threshold: float = Field(default=80.0, description="rapidfuzz ratio for capability equality")


class HealthConfig(BaseModel):
    """Configuration for the health monitor."""

    check_interval_seconds: int = Field(default=3600)
    trend_window_days: int = Field(default=7)
    reliability_threshold: float = Field(default=80.0)
    critical_threshold: float = Field(default=50.0)
    warning_threshold: float = Field(default=70.0)
    min_data_points: int = Field(default=5)
    smoothing_factor: float = Field(default=0.3)
    batch_size: int = Field(default=10)
    batch_pause_seconds: float = Field(default=1.0)
    reliability_window: int = Field(default=100)
    alert_cooldown_hours: int = Field(default=24)


class DiscoveryConfig(BaseModel):
    """Per-run orchestrator parameters."""

    max_repositories: int = Field(default=5000)
    min_stars: int = Field(default=0)
    include_archived: bool = Field(default=False)
    concurrency: int = Field(default=5)
    batch_size: int = Field(default=50)
    request_delay: float = Field(default=0.2, description="Minimum spacing between item starts in a batch")
    batch_pause_seconds: float = Field(default=1.0)
    strict_mode: bool = Field(default=False)
    min_confidence: int = Field(default=30, description="Minimum confidence to persist a detection")
    dry_run: bool = Field(default=False)
    store_batch_size: int = Field(default=25)

    # Super discovery
    include_directory: bool = Field(default=True)
    enable_health_monitoring: bool = Field(default=True)
    force_sync: bool = Field(default=False)


class CatalogSettings(BaseModel):
    """Aggregate settings for one catalog instance."""

    db_path: Path = Field(
        default_factory=lambda: Path.home() / ".mcp-catalog" / "catalog.db",
        description="Path to the SQLite catalog",
    )
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    merge: MergeConfig = Field(default_factory=MergeConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)


# Default configuration
CATALOG_SETTINGS = CatalogSettings()
