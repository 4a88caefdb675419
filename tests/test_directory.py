"""Tests for the directory client, synthetic source and directory sync."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import httpx
import pytest
from conftest import FIXED_NOW, FakeDirectory

from mcp_catalog.config import DirectoryConfig, HealthConfig, SyncConfig
from mcp_catalog.entities.catalog import MeasurementSubject
from mcp_catalog.entities.directory import DirectoryServer, HealthTrend, ServerFilters
from mcp_catalog.errors import TransientNetworkError
from mcp_catalog.memory.catalog_store import CatalogStore
from mcp_catalog.sync.data_sources import LiveDirectorySource
from mcp_catalog.sync.directory_client import DirectoryClient
from mcp_catalog.sync.directory_sync import DirectorySync
from mcp_catalog.sync.synthetic import SyntheticDirectorySource


class TestSyntheticSource:
    """The offline directory."""

    def test_deterministic(self) -> None:
        """The same seed always produces the same servers."""
        first = SyntheticDirectorySource(server_count=20, seed=3).servers
        second = SyntheticDirectorySource(server_count=20, seed=3).servers
        assert first == second
        assert SyntheticDirectorySource(server_count=20, seed=4).servers != first

    def test_shape(self) -> None:
        """Servers carry ids, health scores and repository URLs."""
        servers = SyntheticDirectorySource(server_count=12, seed=7).servers
        assert [s.id for s in servers] == [f"mock-server-{i}" for i in range(1, 13)]
        for server in servers:
            assert server.health_score is not None
            assert 70 <= server.health_score <= 99
            assert server.repository_url.startswith("https://github.com/mock-org/")
            assert 1 <= len(server.capabilities) <= 4

    def test_paging_and_lookup(self) -> None:
        """Pages are sliced from the filtered listing."""
        source = SyntheticDirectorySource(server_count=12, seed=7)

        async def scenario() -> None:
            page = await source.list_servers(ServerFilters(page=2, limit=5))
            assert [s.id for s in page.servers] == [f"mock-server-{i}" for i in range(6, 11)]
            assert page.total_pages == 3
            assert page.offline is True
            assert await source.get_server("mock-server-3") is not None
            assert await source.get_server("missing") is None

        asyncio.run(scenario())

    def test_stats_follow_generated_servers(self) -> None:
        """Totals are counted from the servers actually generated."""
        source = SyntheticDirectorySource(server_count=12, seed=7)
        servers = source.servers

        stats = asyncio.run(source.get_stats())

        assert stats.total_servers == 12
        assert stats.active_servers == sum(1 for s in servers if s.active)
        assert stats.verified_servers == sum(1 for s in servers if s.verified)
        assert stats.categories == 8
        assert 70 <= stats.average_health_score <= 99


class TestDirectoryClient:
    """Live reads with offline fallback."""

    def test_get_all_servers_pages(self, fake_directory: FakeDirectory, directory_client: DirectoryClient) -> None:
        """Every page of the live listing is collected."""
        for i in range(5):
            fake_directory.add(f"srv-{i}")

        servers = asyncio.run(directory_client.get_all_servers())

        assert [s.id for s in servers] == [f"srv-{i}" for i in range(5)]
        assert directory_client.offline is False
        listing_requests = [r for r in fake_directory.requests if r.url.path == "/api/servers"]
        assert len(listing_requests) == 3

    def test_payload_mapping(self, fake_directory: FakeDirectory, directory_client: DirectoryClient) -> None:
        """camelCase payload fields land on the model."""
        fake_directory.add("srv-1", verified=True, healthScore=91)

        server = asyncio.run(directory_client.get_server_details("srv-1"))

        assert server is not None
        assert server.verified is True
        assert server.health_score == 91
        assert server.installation == "npm install srv-1"
        assert server.repository_url == "https://github.com/directory/srv-1"

    def test_unknown_server_is_none(self, directory_client: DirectoryClient) -> None:
        """A 404 is an answer, not an outage."""
        assert asyncio.run(directory_client.get_server_details("missing")) is None
        assert directory_client.offline is False

    def test_falls_back_when_down(self, fake_directory: FakeDirectory, directory_client: DirectoryClient) -> None:
        """Connection failures switch the client to the synthetic directory."""
        fake_directory.down = True

        async def scenario() -> None:
            status = await directory_client.test_connection()
            assert status["status"] == "fallback"
            servers = await directory_client.get_all_servers()
            assert servers
            assert all(s.id.startswith("mock-server-") for s in servers)
            assert all(s.active for s in servers)

        asyncio.run(scenario())
        assert directory_client.offline is True
        assert directory_client.status()["offline"] is True

    def test_mid_listing_failure_returns_full_offline_listing(
        self, fake_directory: FakeDirectory, directory_config: DirectoryConfig
    ) -> None:
        """Live pages are discarded when the source fails part-way."""
        for i in range(5):
            fake_directory.add(f"srv-{i}")
        listing_calls = 0

        def failing_after_first_page(request: httpx.Request) -> httpx.Response:
            nonlocal listing_calls
            if request.url.path == "/api/servers":
                listing_calls += 1
                if listing_calls > 1:
                    raise httpx.ConnectError("connection reset", request=request)
            return fake_directory.handler(request)

        client = DirectoryClient(
            directory_config, client=httpx.AsyncClient(transport=httpx.MockTransport(failing_after_first_page))
        )
        expected = [s.id for s in SyntheticDirectorySource(server_count=12, seed=7).servers if s.active]

        servers = asyncio.run(client.get_all_servers())

        assert [s.id for s in servers] == expected
        assert client.offline is True

    def test_search_and_categories(self, fake_directory: FakeDirectory, directory_client: DirectoryClient) -> None:
        """Search and categories come from the live API."""
        fake_directory.add("weather")
        fake_directory.add("files")

        async def scenario() -> None:
            found = await directory_client.search("weath")
            assert [s.id for s in found] == ["weather"]
            categories = await directory_client.get_categories()
            assert [c.id for c in categories] == ["development"]
            stats = await directory_client.get_stats()
            assert stats.total_servers == 2

        asyncio.run(scenario())

    def test_server_error_retried_then_used(
        self, fake_directory: FakeDirectory, directory_config: DirectoryConfig
    ) -> None:
        """A 5xx is retried and the next answer is used."""
        fake_directory.add("srv-1")
        responses = iter([httpx.Response(503)])

        def flaky(request: httpx.Request) -> httpx.Response:
            return next(responses, None) or fake_directory.handler(request)

        source = LiveDirectorySource(directory_config, client=httpx.AsyncClient(transport=httpx.MockTransport(flaky)))

        server = asyncio.run(source.get_server("srv-1"))

        assert server is not None
        assert server.id == "srv-1"

    def test_retries_exhaust_into_transient_error(self, directory_config: DirectoryConfig) -> None:
        """Persistent failures stop after retry_attempts requests."""
        calls = 0

        def failing(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(500)

        source = LiveDirectorySource(directory_config, client=httpx.AsyncClient(transport=httpx.MockTransport(failing)))

        with pytest.raises(TransientNetworkError):
            asyncio.run(source.get_stats())

        assert calls == directory_config.retry_attempts

    def test_not_found_is_not_retried(self, fake_directory: FakeDirectory, directory_config: DirectoryConfig) -> None:
        """A 404 answers on the first request."""
        source = LiveDirectorySource(
            directory_config, client=httpx.AsyncClient(transport=httpx.MockTransport(fake_directory.handler))
        )

        assert asyncio.run(source.get_server("missing")) is None
        assert len(fake_directory.requests) == 1


class TestDirectorySync:
    """Directory to store synchronization."""

    def _sync(
        self,
        store: CatalogStore,
        client: DirectoryClient,
        sync_config: SyncConfig,
        health_config: HealthConfig,
        now: list,
    ) -> DirectorySync:
        return DirectorySync(store, client, sync_config, health_config, clock=lambda: now[0])

    def test_new_then_updated(
        self,
        store: CatalogStore,
        fake_directory: FakeDirectory,
        directory_client: DirectoryClient,
        sync_config: SyncConfig,
        health_config: HealthConfig,
    ) -> None:
        """First sync creates, a forced second sync updates."""
        for i in range(3):
            fake_directory.add(f"srv-{i}")
        sync = self._sync(store, directory_client, sync_config, health_config, [FIXED_NOW])

        async def scenario() -> None:
            first = await sync.sync()
            assert first.skipped is False
            assert first.stats.fetched == 3
            assert first.stats.new == 3
            assert first.stats.categories == 1
            assert first.directory_stats is not None

            second = await sync.sync(force=True)
            assert second.stats.new == 0
            assert second.stats.updated == 3

        asyncio.run(scenario())
        assert store.count_directory_servers() == 3
        assert sync.last_sync_time() == FIXED_NOW
        assert len(sync.get_sync_stats()["history"]) == 2

    def test_interval_throttles_unless_forced(
        self,
        store: CatalogStore,
        fake_directory: FakeDirectory,
        directory_client: DirectoryClient,
        sync_config: SyncConfig,
        health_config: HealthConfig,
    ) -> None:
        """A sync inside the interval is skipped; force runs anyway."""
        fake_directory.add("srv-1")
        now = [FIXED_NOW]
        sync = self._sync(store, directory_client, sync_config, health_config, now)

        async def scenario() -> None:
            await sync.sync()
            now[0] = FIXED_NOW + timedelta(hours=1)
            skipped = await sync.sync()
            assert skipped.skipped is True
            assert "last sync" in skipped.reason
            forced = await sync.sync(force=True)
            assert forced.skipped is False

        asyncio.run(scenario())

    def test_low_health_servers_skipped(
        self,
        store: CatalogStore,
        fake_directory: FakeDirectory,
        directory_client: DirectoryClient,
        sync_config: SyncConfig,
        health_config: HealthConfig,
    ) -> None:
        """Servers under the minimum health score are not stored."""
        fake_directory.add("good", healthScore=80)
        fake_directory.add("bad", healthScore=40)
        sync = self._sync(store, directory_client, sync_config, health_config, [FIXED_NOW])

        result = asyncio.run(sync.sync())

        assert result.stats.skipped_low_health == 1
        assert store.get_directory_server("good") is not None
        assert store.get_directory_server("bad") is None

    def test_full_live_listing_inactivates_missing(
        self,
        store: CatalogStore,
        fake_directory: FakeDirectory,
        directory_client: DirectoryClient,
        sync_config: SyncConfig,
        health_config: HealthConfig,
    ) -> None:
        """Servers that disappear from the live directory become inactive."""
        for i in range(3):
            fake_directory.add(f"srv-{i}")
        sync = self._sync(store, directory_client, sync_config, health_config, [FIXED_NOW])

        async def scenario() -> int:
            await sync.sync()
            fake_directory.servers.pop()
            result = await sync.sync(force=True)
            return result.stats.inactivated

        assert asyncio.run(scenario()) == 1
        assert [s.id for s in store.list_directory_servers()] == ["srv-0", "srv-1"]

    def test_filtered_sync_never_inactivates(
        self,
        store: CatalogStore,
        fake_directory: FakeDirectory,
        directory_client: DirectoryClient,
        health_config: HealthConfig,
    ) -> None:
        """A category-filtered listing is not a full listing."""
        fake_directory.add("dev", category="development")
        fake_directory.add("data", category="data")
        config = SyncConfig(batch_size=2, category="development")
        sync = self._sync(store, directory_client, config, health_config, [FIXED_NOW])
        store.upsert_directory_server(DirectoryServer(id="data", name="data", category="data"))

        result = asyncio.run(sync.sync())

        assert result.stats.fetched == 1
        assert result.stats.inactivated == 0
        saved = store.get_directory_server("data")
        assert saved is not None and saved.active is True

    def test_offline_sync_uses_synthetic_directory(
        self,
        store: CatalogStore,
        fake_directory: FakeDirectory,
        directory_client: DirectoryClient,
        sync_config: SyncConfig,
        health_config: HealthConfig,
    ) -> None:
        """An unreachable directory still yields a complete offline sync."""
        fake_directory.down = True
        sync = self._sync(store, directory_client, sync_config, health_config, [FIXED_NOW])

        result = asyncio.run(sync.sync())

        assert result.stats.offline is True
        assert result.stats.fetched > 0
        assert result.stats.new == result.stats.fetched
        assert result.stats.inactivated == 0
        assert result.stats.categories == 8

    def test_measurements_and_trend(
        self,
        store: CatalogStore,
        fake_directory: FakeDirectory,
        directory_client: DirectoryClient,
        sync_config: SyncConfig,
        health_config: HealthConfig,
    ) -> None:
        """Each sync records a measurement and recomputes the trend."""
        payload = fake_directory.add("srv-1", healthScore=95)
        now = [FIXED_NOW]
        sync = self._sync(store, directory_client, sync_config, health_config, now)

        async def scenario() -> None:
            await sync.sync()
            payload["healthScore"] = 65
            now[0] = FIXED_NOW + timedelta(days=2)
            await sync.sync()

        asyncio.run(scenario())

        history = store.list_measurements(MeasurementSubject.DIRECTORY_SERVER, "srv-1")
        assert [m.score for m in history] == [95.0, 65.0]
        server = store.get_directory_server("srv-1")
        assert server is not None
        assert server.health_trend is HealthTrend.DECLINING
        assert server.health_score == 65.0

