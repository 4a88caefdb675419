"""External directory client with transparent offline fallback."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from mcp_catalog.config import DirectoryConfig
from mcp_catalog.entities.directory import ServerFilters, ServerPage
from mcp_catalog.errors import CatalogError, NotFoundError
from mcp_catalog.sync.data_sources import DataSource, LiveDirectorySource
from mcp_catalog.sync.synthetic import SyntheticDirectorySource

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from mcp_catalog.entities.directory import DirectoryCategory, DirectoryServer, DirectoryStats

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DirectoryClient:
    """Reads the curated directory through a live or synthetic :class:`DataSource`.

    Any transport failure on the live source switches the client to
    offline mode for the rest of its life; callers get data of the same
    shape either way and can inspect :attr:`offline`.
    """

    def __init__(
        self,
        config: DirectoryConfig | None = None,
        live: DataSource | None = None,
        synthetic: DataSource | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or DirectoryConfig()
        self._live = live or LiveDirectorySource(self.config, client=client)
        self._synthetic = synthetic or SyntheticDirectorySource(
            server_count=self.config.synthetic_server_count, seed=self.config.synthetic_seed
        )
        self._offline = self.config.offline

    @property
    def offline(self) -> bool:
        return self._offline

    @property
    def source(self) -> DataSource:
        return self._synthetic if self._offline else self._live

    async def aclose(self) -> None:
        if isinstance(self._live, LiveDirectorySource):
            await self._live.aclose()

    def _fall_back(self, operation: str, exc: BaseException) -> None:
        logger.warning("Directory %s failed (%s), falling back to offline mode", operation, exc)
        self._offline = True

    async def _call(self, operation: str, call: Callable[[DataSource], Awaitable[T]]) -> T:
        if not self._offline:
            try:
                return await call(self._live)
            except (CatalogError, httpx.HTTPError) as exc:
                if isinstance(exc, NotFoundError):
                    raise
                self._fall_back(operation, exc)
        return await call(self._synthetic)

    async def test_connection(self) -> dict[str, Any]:
        """Check the live API, switching to offline mode if it is down."""
        if self._offline:
            return {"status": "ok", "offline": True}
        try:
            await self._live.check()
        except (CatalogError, httpx.HTTPError) as exc:
            self._fall_back("health check", exc)
            return {"status": "fallback", "offline": True, "error": str(exc)}
        return {"status": "ok", "offline": False}

    async def list_servers(self, filters: ServerFilters | None = None) -> ServerPage:
        filters = filters or ServerFilters(limit=self.config.page_size, active=True)
        return await self._call("listing", lambda source: source.list_servers(filters))

    async def get_all_servers(self, filters: ServerFilters | None = None) -> list[DirectoryServer]:
        """Page through the full listing.

        A failure part-way through discards the live pages and returns the
        complete offline listing, so callers never see a mix of sources.
        """
        base = filters or ServerFilters(limit=self.config.page_size, active=True)
        was_offline = self._offline
        servers: list[DirectoryServer] = []
        page_number = base.page
        while True:
            page = await self.list_servers(base.model_copy(update={"page": page_number}))
            if self._offline and not was_offline:
                # Fell back mid-listing: restart on the offline source.
                return await self._all_offline(base)
            if not page.servers:
                break
            servers.extend(page.servers)
            logger.debug("Fetched page %d/%d (%d servers)", page_number, page.total_pages, len(page.servers))
            if page_number >= page.total_pages or len(page.servers) < base.limit:
                break
            page_number += 1
        return servers

    async def _all_offline(self, base: ServerFilters) -> list[DirectoryServer]:
        servers: list[DirectoryServer] = []
        page_number = 1
        while True:
            page = await self._synthetic.list_servers(base.model_copy(update={"page": page_number}))
            servers.extend(page.servers)
            if page_number >= page.total_pages or not page.servers:
                return servers
            page_number += 1

    async def get_server_details(self, server_id: str) -> DirectoryServer | None:
        try:
            return await self._call("server details", lambda source: source.get_server(server_id))
        except NotFoundError:
            return None

    async def search(self, query: str, limit: int = 50) -> list[DirectoryServer]:
        return await self._call("search", lambda source: source.search(query, limit))

    async def get_categories(self) -> list[DirectoryCategory]:
        return await self._call("categories", lambda source: source.get_categories())

    async def get_stats(self) -> DirectoryStats:
        return await self._call("stats", lambda source: source.get_stats())

    def status(self) -> dict[str, Any]:
        return {
            "base_url": self.config.base_url,
            "offline": self._offline,
            "rate_limit_per_minute": self.config.rate_limit_per_minute,
            "authenticated": bool(self.config.api_key),
        }
