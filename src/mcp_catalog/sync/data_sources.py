"""Directory data sources: the live HTTP API and the shared interface."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from mcp_catalog.config import DirectoryConfig
from mcp_catalog.entities.directory import (
    DirectoryCategory,
    DirectoryServer,
    DirectoryStats,
    ServerFilters,
    ServerPage,
)
from mcp_catalog.errors import NotFoundError, TransientNetworkError
from mcp_catalog.nodes.discovery.retry import build_retrying
from mcp_catalog.nodes.discovery.throttle import RateLimiter

logger = logging.getLogger(__name__)


@runtime_checkable
class DataSource(Protocol):
    """Protocol for directory back ends (live API or synthetic)."""

    offline: bool

    async def check(self) -> bool:
        """Return True if the source is reachable."""
        ...

    async def list_servers(self, filters: ServerFilters) -> ServerPage:
        """Return one page of servers."""
        ...

    async def get_server(self, server_id: str) -> DirectoryServer | None:
        """Return one server, or None if unknown."""
        ...

    async def search(self, query: str, limit: int = 50) -> list[DirectoryServer]:
        """Search servers by name, description or capability."""
        ...

    async def get_categories(self) -> list[DirectoryCategory]:
        """Return all categories."""
        ...

    async def get_stats(self) -> DirectoryStats:
        """Return directory-wide counters."""
        ...


class LiveDirectorySource:
    """HTTP client for the directory API.

    Every request passes the shared rate limiter and is retried with
    exponential backoff. Exhausted retries raise
    :class:`TransientNetworkError`.
    """

    offline = False

    def __init__(
        self,
        config: DirectoryConfig | None = None,
        client: httpx.AsyncClient | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self.config = config or DirectoryConfig()
        self._client = client or httpx.AsyncClient(timeout=self.config.timeout)
        self._owns_client = client is None
        self._limiter = limiter or RateLimiter(requests_per_window=self.config.rate_limit_per_minute)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": self.config.user_agent}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def _attempt(self, url: str, path: str, params: dict[str, Any] | None) -> Any:
        await self._limiter.acquire()
        try:
            response = await self._client.get(url, params=params, headers=self._headers())
            if response.status_code == 404:
                msg = f"{path} not found"
                raise NotFoundError(msg)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"Directory request {path} failed: {exc}"
            raise TransientNetworkError(msg) from exc

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.config.base_url.rstrip('/')}{path}"
        retrying = build_retrying(
            {TransientNetworkError: self.config.retry_attempts},
            initial=self.config.retry_delay,
            log=logger,
        )
        return await retrying(self._attempt, url, path, params)

    async def check(self) -> bool:
        await self._request("/health")
        return True

    async def list_servers(self, filters: ServerFilters) -> ServerPage:
        data = await self._request("/servers", filters.to_params())
        servers = [DirectoryServer.from_api(item) for item in data.get("servers") or []]
        pagination = data.get("pagination") or {}
        return ServerPage(
            servers=servers,
            page=filters.page,
            total_pages=pagination.get("totalPages") or 1,
            total=pagination.get("totalCount") or data.get("totalCount") or len(servers),
        )

    async def get_server(self, server_id: str) -> DirectoryServer | None:
        try:
            data = await self._request(f"/servers/{server_id}")
        except NotFoundError:
            return None
        return DirectoryServer.from_api(data.get("server") or data)

    async def search(self, query: str, limit: int = 50) -> list[DirectoryServer]:
        data = await self._request("/search", {"q": query, "limit": limit})
        return [DirectoryServer.from_api(item) for item in data.get("servers") or []]

    async def get_categories(self) -> list[DirectoryCategory]:
        data = await self._request("/categories")
        return [DirectoryCategory.from_api(item) for item in data.get("categories") or []]

    async def get_stats(self) -> DirectoryStats:
        return DirectoryStats.from_api(await self._request("/stats"))
