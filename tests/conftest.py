"""Shared test fixtures for mcp-catalog.

GitHub and the external directory are replaced by in-process fakes served
through ``httpx.MockTransport``; every delay is configured to zero.
"""

from __future__ import annotations

import base64
import json
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any

import httpx
import pytest

from mcp_catalog.config import (
    DirectoryConfig,
    DiscoveryConfig,
    HealthConfig,
    MergeConfig,
    ScannerConfig,
    SyncConfig,
)
from mcp_catalog.memory.catalog_store import CatalogStore
from mcp_catalog.nodes.discovery.github_scanner import GitHubScanner
from mcp_catalog.sync.directory_client import DirectoryClient

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)

GITHUB_API = "https://api.github.test"
DIRECTORY_API = "https://directory.test/api"

MCP_PACKAGE_JSON = {
    "name": "weather-mcp-server",
    "version": "1.2.0",
    "description": "Model Context Protocol server for weather forecasts",
    "bin": {"weather-mcp": "dist/index.js"},
    "dependencies": {"@modelcontextprotocol/sdk": "^1.0.0", "zod": "^3.22.0"},
    "devDependencies": {"typescript": "^5.4.0"},
}

MCP_README = """# Weather MCP Server

A model context protocol server that exposes weather forecasts as tools.
This model context protocol server works with any model context protocol server host.

## Installation

npm install weather-mcp-server

## Usage

Add the server to claude_desktop_config.json and call the forecast tool.
"""


# ---------------------------------------------------------------------------
# GitHub fake
# ---------------------------------------------------------------------------


def github_item(full_name: str, **overrides: Any) -> dict[str, Any]:
    """A repository payload in the shape of the GitHub REST API."""
    owner, name = full_name.split("/")
    item: dict[str, Any] = {
        "full_name": full_name,
        "name": name,
        "owner": {"login": owner},
        "description": f"{name} repository",
        "html_url": f"https://github.com/{full_name}",
        "clone_url": f"https://github.com/{full_name}.git",
        "language": "TypeScript",
        "stargazers_count": 42,
        "forks_count": 3,
        "watchers_count": 42,
        "size": 120,
        "topics": [],
        "license": {"spdx_id": "MIT"},
        "default_branch": "main",
        "archived": False,
        "fork": False,
        "created_at": "2024-11-01T00:00:00Z",
        "updated_at": "2025-05-20T00:00:00Z",
        "pushed_at": "2025-05-20T00:00:00Z",
    }
    item.update(overrides)
    return item


class FakeGitHub:
    """In-memory GitHub serving search, repository and contents endpoints."""

    def __init__(self) -> None:
        self.repos: dict[str, dict[str, Any]] = {}
        self.files: dict[str, dict[str, str]] = {}
        self.listings: dict[str, list[dict[str, Any]]] = {}
        self.search_results: dict[str, list[str]] = {}
        self.search_remaining = 30
        self.rate_limited_paths: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []

    def add_repo(
        self,
        full_name: str,
        *,
        files: dict[str, str] | None = None,
        listing: list[str] | None = None,
        patterns: tuple[str, ...] = ("mcp-server",),
        **overrides: Any,
    ) -> dict[str, Any]:
        item = github_item(full_name, **overrides)
        self.repos[full_name] = item
        self.files[full_name] = dict(files or {})
        names = listing if listing is not None else list(self.files[full_name])
        self.listings[full_name] = [{"name": n, "type": "file", "size": 100} for n in names]
        for pattern in patterns:
            self.search_results.setdefault(pattern, []).append(full_name)
        return item

    def add_mcp_server(self, full_name: str, **overrides: Any) -> dict[str, Any]:
        overrides.setdefault("description", "MCP server for weather forecasts")
        return self.add_repo(
            full_name,
            files={"package.json": json.dumps(MCP_PACKAGE_JSON), "README.md": MCP_README},
            listing=["package.json", "README.md", "src", "tests", "claude_desktop_config.json"],
            **overrides,
        )

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.rate_limited_paths:
            return httpx.Response(**self.rate_limited_paths[path])

        parts = path.strip("/").split("/")
        if parts == ["rate_limit"]:
            return httpx.Response(200, json=self._rate_limit())
        if parts == ["search", "repositories"]:
            return httpx.Response(200, json=self._search(request))
        if len(parts) >= 3 and parts[0] == "repos":
            return self._repo_endpoint(f"{parts[1]}/{parts[2]}", parts[3:])
        return httpx.Response(404, json={"message": "Not Found"})

    def _rate_limit(self) -> dict[str, Any]:
        bucket = {"limit": 30, "remaining": self.search_remaining, "reset": 1748779200, "used": 0}
        core = {"limit": 5000, "remaining": 4990, "reset": 1748779200, "used": 10}
        return {"resources": {"core": core, "search": bucket, "graphql": core}}

    def _search(self, request: httpx.Request) -> dict[str, Any]:
        query = request.url.params["q"]
        per_page = int(request.url.params.get("per_page", 100))
        page = int(request.url.params.get("page", 1))
        pattern = next((p for p in self.search_results if query.startswith(f"{p} ")), None)
        names = self.search_results.get(pattern, []) if pattern else []
        window = names[(page - 1) * per_page : page * per_page]
        return {"total_count": len(names), "items": [self.repos[name] for name in window]}

    def _repo_endpoint(self, full_name: str, rest: list[str]) -> httpx.Response:
        if full_name not in self.repos:
            return httpx.Response(404, json={"message": "Not Found"})
        if not rest:
            return httpx.Response(200, json=self.repos[full_name])
        if rest == ["contents"]:
            return httpx.Response(200, json=self.listings[full_name])
        if rest[0] == "contents":
            content = self.files[full_name].get("/".join(rest[1:]))
            if content is None:
                return httpx.Response(404, json={"message": "Not Found"})
            encoded = base64.b64encode(content.encode()).decode()
            return httpx.Response(200, json={"type": "file", "encoding": "base64", "content": encoded})
        if rest == ["releases"]:
            return httpx.Response(200, json=[{"tag_name": "v1.2.0", "name": "1.2.0"}])
        if rest == ["topics"]:
            return httpx.Response(200, json={"names": self.repos[full_name].get("topics") or []})
        return httpx.Response(404, json={"message": "Not Found"})


# ---------------------------------------------------------------------------
# Directory fake
# ---------------------------------------------------------------------------


def directory_payload(server_id: str, **overrides: Any) -> dict[str, Any]:
    """A server payload in the directory API's camelCase shape."""
    payload: dict[str, Any] = {
        "id": server_id,
        "name": server_id,
        "description": f"{server_id} server",
        "category": "development",
        "language": "TypeScript",
        "capabilities": ["api-integration"],
        "verified": False,
        "isActive": True,
        "healthScore": 85,
        "stars": 10,
        "downloads": 100,
        "repositoryUrl": f"https://github.com/directory/{server_id}",
        "installCommand": f"npm install {server_id}",
        "lastUpdated": "2025-05-01T00:00:00Z",
    }
    payload.update(overrides)
    return payload


class FakeDirectory:
    """In-memory directory API; ``down`` makes every request fail to connect."""

    def __init__(self) -> None:
        self.servers: list[dict[str, Any]] = []
        self.down = False
        self.requests: list[httpx.Request] = []

    def add(self, server_id: str, **overrides: Any) -> dict[str, Any]:
        payload = directory_payload(server_id, **overrides)
        self.servers.append(payload)
        return payload

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)

        path = request.url.path.removeprefix("/api")
        params = request.url.params
        if path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        if path == "/servers":
            return httpx.Response(200, json=self._list(params))
        if path.startswith("/servers/"):
            server_id = path.removeprefix("/servers/")
            match = next((s for s in self.servers if s["id"] == server_id), None)
            if match is None:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json={"server": match})
        if path == "/search":
            needle = params["q"].lower()
            found = [s for s in self.servers if needle in s["name"].lower()]
            return httpx.Response(200, json={"servers": found})
        if path == "/categories":
            return httpx.Response(200, json={"categories": [{"id": "development", "name": "Development Tools"}]})
        if path == "/stats":
            return httpx.Response(
                200,
                json={
                    "totalServers": len(self.servers),
                    "activeServers": sum(1 for s in self.servers if s["isActive"]),
                    "verifiedServers": sum(1 for s in self.servers if s["verified"]),
                    "categories": 1,
                    "averageHealthScore": 85.0,
                },
            )
        return httpx.Response(404, json={"error": "not found"})

    def _list(self, params: httpx.QueryParams) -> dict[str, Any]:
        servers = self.servers
        if params.get("active") == "true":
            servers = [s for s in servers if s["isActive"]]
        if params.get("verified") == "true":
            servers = [s for s in servers if s["verified"]]
        if params.get("category"):
            servers = [s for s in servers if s["category"] == params["category"]]
        page, limit = int(params.get("page", 1)), int(params.get("limit", 100))
        total_pages = max(1, -(-len(servers) // limit))
        return {
            "servers": servers[(page - 1) * limit : page * limit],
            "pagination": {"totalPages": total_pages, "totalCount": len(servers)},
        }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    """A clock frozen at ``FIXED_NOW``."""
    return lambda: FIXED_NOW


@pytest.fixture
def store() -> Iterator[CatalogStore]:
    """An in-memory catalog store."""
    catalog = CatalogStore(":memory:")
    yield catalog
    catalog.close()


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def fake_directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def scanner_config() -> ScannerConfig:
    """Scanner settings with two patterns and no waiting."""
    return ScannerConfig(
        api_url=GITHUB_API,
        token=None,
        search_patterns=["mcp-server", "model-context-protocol"],
        per_page=100,
        pattern_pause_seconds=0,
        max_retries=2,
        retry_base_delay=0,
        max_rate_limit_wait=0,
        secondary_backoff_seconds=0,
        max_concurrent_requests=50,
        min_search_quota=5,
    )


@pytest.fixture
def scanner(fake_github: FakeGitHub, scanner_config: ScannerConfig) -> GitHubScanner:
    """A scanner wired to the GitHub fake."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_github.handler))
    return GitHubScanner(scanner_config, client=client)


@pytest.fixture
def directory_config() -> DirectoryConfig:
    """Directory settings with small pages, no waiting and a small synthetic directory."""
    return DirectoryConfig(
        base_url=DIRECTORY_API,
        api_key=None,
        retry_attempts=2,
        retry_delay=0,
        rate_limit_per_minute=0,
        page_size=2,
        synthetic_server_count=12,
        synthetic_seed=7,
    )


@pytest.fixture
def directory_client(fake_directory: FakeDirectory, directory_config: DirectoryConfig) -> DirectoryClient:
    """A directory client wired to the directory fake."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake_directory.handler))
    return DirectoryClient(directory_config, client=client)


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(batch_size=2)


@pytest.fixture
def merge_config() -> MergeConfig:
    return MergeConfig()


@pytest.fixture
def health_config() -> HealthConfig:
    return HealthConfig(batch_size=2, batch_pause_seconds=0, min_data_points=3)


@pytest.fixture
def discovery_config() -> DiscoveryConfig:
    """Run settings with no pauses between batches or items."""
    return DiscoveryConfig(
        max_repositories=50,
        concurrency=4,
        batch_size=2,
        request_delay=0,
        batch_pause_seconds=0,
        min_confidence=30,
    )
