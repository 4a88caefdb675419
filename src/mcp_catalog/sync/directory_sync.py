"""Incremental sync of the external directory into the catalog store."""

from __future__ import annotations

import asyncio
import logging
import sys
import time
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx

from mcp_catalog.config import HealthConfig, SyncConfig
from mcp_catalog.entities.catalog import HealthMeasurement, MeasurementSource, MeasurementSubject
from mcp_catalog.entities.directory import DirectoryServer, DirectoryStats, ServerFilters, SyncResult, SyncStats
from mcp_catalog.entities.repository import parse_timestamp
from mcp_catalog.errors import CatalogError
from mcp_catalog.monitoring.trends import half_split_trend, health_status

if TYPE_CHECKING:
    from collections.abc import Callable

    from mcp_catalog.memory.catalog_store import CatalogStore
    from mcp_catalog.sync.directory_client import DirectoryClient

logger = logging.getLogger(__name__)

# Configure logging to stderr
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


class DirectorySync:
    """Pulls the directory into the store, throttled by a minimum interval.

    Failures on individual servers, categories or stats are warnings; the
    sync degrades instead of failing.
    """

    def __init__(
        self,
        store: CatalogStore,
        client: DirectoryClient,
        config: SyncConfig | None = None,
        health_config: HealthConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize sync.

        Args:
            store: Catalog store.
            client: Directory client (live with offline fallback).
            config: Sync settings.
            health_config: Thresholds for labelling directory health measurements.
            clock: Returns "now".
        """
        self.store = store
        self.client = client
        self.config = config or SyncConfig()
        self.health_config = health_config or HealthConfig()
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._running = False
        self._task: asyncio.Task[None] | None = None

    def last_sync_time(self) -> datetime | None:
        return parse_timestamp(self.store.get_metadata("last_sync"))

    def _filters(self) -> ServerFilters:
        return ServerFilters(
            category=self.config.category,
            verified=True if self.config.verified_only else None,
            active=None if self.config.include_inactive else True,
            limit=self.client.config.page_size,
        )

    def _is_full_listing(self) -> bool:
        return not self.config.category and not self.config.verified_only

    async def sync(self, force: bool = False) -> SyncResult:
        """Run one sync unless the last one is younger than the interval.

        Args:
            force: Ignore the interval.

        Returns:
            Skipped result, or the sync's statistics.
        """
        now = self._clock()
        last = self.last_sync_time()
        if not force and last is not None:
            age = (now - last).total_seconds()
            if age < self.config.sync_interval_seconds:
                logger.info("Skipping directory sync, last sync was %.0fs ago", age)
                return SyncResult(skipped=True, reason=f"last sync {age:.0f}s ago", started_at=now)

        started = time.monotonic()
        sync_id = f"sync-{int(now.timestamp())}-{uuid.uuid4().hex[:8]}"
        self.store.start_sync(sync_id, now)
        result = SyncResult(sync_id=sync_id, started_at=now)
        stats = result.stats

        try:
            result.directory_stats = await self._fetch_stats()
            stats.categories = await self._sync_categories()
            await self._sync_servers(stats, now)
        except CatalogError as exc:
            self.store.finish_sync(sync_id, "failed", stats.model_dump(), error=str(exc))
            raise

        stats.offline = self.client.offline
        stats.duration_seconds = round(time.monotonic() - started, 3)
        self.store.finish_sync(sync_id, "completed", stats.model_dump())
        self.store.set_metadata("last_sync", now.isoformat())
        self.store.set_metadata("last_sync_id", sync_id)
        logger.info(
            "Directory sync %s: %d fetched, %d new, %d updated, %d skipped%s",
            sync_id,
            stats.fetched,
            stats.new,
            stats.updated,
            stats.skipped_low_health,
            " (offline)" if stats.offline else "",
        )
        return result

    async def _fetch_stats(self) -> DirectoryStats | None:
        try:
            return await self.client.get_stats()
        except (CatalogError, httpx.HTTPError) as exc:
            logger.warning("Failed to fetch directory stats: %s", exc)
            return None

    async def _sync_categories(self) -> int:
        try:
            categories = await self.client.get_categories()
        except (CatalogError, httpx.HTTPError) as exc:
            logger.warning("Failed to fetch directory categories: %s", exc)
            return 0
        for category in categories:
            self.store.upsert_category(category)
        return len(categories)

    async def _sync_servers(self, stats: SyncStats, now: datetime) -> None:
        servers = await self.client.get_all_servers(self._filters())
        stats.fetched = len(servers)
        seen: set[str] = set()

        batch_size = max(1, self.config.batch_size)
        for start in range(0, len(servers), batch_size):
            for server in servers[start : start + batch_size]:
                seen.add(server.id)
                try:
                    self._sync_server(server, stats, now)
                except (CatalogError, ValueError) as exc:
                    stats.errors += 1
                    logger.warning("Failed to sync directory server %s: %s", server.id, exc)
            # Yield between batches so monitors and other tasks make progress.
            await asyncio.sleep(0)

        if self._is_full_listing() and not self.client.offline:
            stats.inactivated = self.store.mark_servers_inactive(seen)

    def _sync_server(self, server: DirectoryServer, stats: SyncStats, now: datetime) -> None:
        if server.health_score is not None and server.health_score < self.config.min_health_score:
            stats.skipped_low_health += 1
            return

        server.last_synced = now
        if self.store.upsert_directory_server(server):
            stats.new += 1
        else:
            stats.updated += 1

        if server.health_score is None:
            return
        self.store.add_measurement(
            HealthMeasurement(
                subject=MeasurementSubject.DIRECTORY_SERVER,
                subject_id=server.id,
                score=server.health_score,
                status=health_status(
                    server.health_score,
                    critical=self.health_config.critical_threshold,
                    warning=self.health_config.warning_threshold,
                ),
                source=MeasurementSource.DIRECTORY,
                measured_at=now,
            )
        )
        stats.measurements += 1
        history = self.store.list_measurements(MeasurementSubject.DIRECTORY_SERVER, server.id)
        self.store.set_directory_trend(server.id, half_split_trend([m.score for m in history]))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_servers_by_category(self, category: str) -> list[DirectoryServer]:
        return self.store.list_directory_servers(category=category)

    def search_servers(self, query: str, limit: int = 20) -> list[DirectoryServer]:
        return self.store.search_directory_servers(query, limit)

    def get_sync_stats(self) -> dict[str, Any]:
        """Counts plus recent sync history."""
        last = self.last_sync_time()
        return {
            "total_servers": self.store.count_directory_servers(),
            "active_servers": self.store.count_directory_servers(active_only=True),
            "categories": len(self.store.list_categories()),
            "last_sync": last.isoformat() if last else None,
            "last_sync_id": self.store.get_metadata("last_sync_id"),
            "history": self.store.list_sync_history(),
            "offline": self.client.offline,
        }

    # ------------------------------------------------------------------
    # Auto sync
    # ------------------------------------------------------------------

    async def _sync_loop(self) -> None:
        while self._running:
            try:
                await self.sync()
            except CatalogError:
                logger.exception("Scheduled directory sync failed")
            await asyncio.sleep(self.config.sync_interval_seconds)

    async def start_auto_sync(self) -> None:
        """Start the periodic sync loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._sync_loop())
        logger.info("Auto sync started (interval: %d seconds)", self.config.sync_interval_seconds)

    async def stop_auto_sync(self) -> None:
        """Stop the periodic sync loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Auto sync stopped")
