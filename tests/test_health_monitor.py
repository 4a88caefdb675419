"""Tests for the health monitor."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from conftest import FIXED_NOW, FakeDirectory

from mcp_catalog.config import HealthConfig
from mcp_catalog.entities.catalog import (
    AlertSeverity,
    AlertType,
    HealthStatus,
    MeasurementSource,
    MeasurementSubject,
    MergedRecord,
    Provenance,
)
from mcp_catalog.entities.directory import HealthTrend
from mcp_catalog.errors import StorageConflictError
from mcp_catalog.memory.catalog_store import CatalogStore
from mcp_catalog.monitoring.health_monitor import HealthCheckStats, HealthMonitor
from mcp_catalog.sync.directory_client import DirectoryClient


def _scanner_record(name: str = "a", **overrides: object) -> MergedRecord:
    fields: dict[str, object] = {
        "merge_key": f"repo:acme/{name}",
        "repository_full_name": f"acme/{name}",
        "name": name,
        "confidence": 40,
        "data_sources": Provenance.SCANNER,
    }
    fields.update(overrides)
    return MergedRecord.model_validate(fields)


def _directory_record(server_id: str) -> MergedRecord:
    return MergedRecord(
        merge_key=f"dir:{server_id}",
        directory_server_id=server_id,
        name=server_id,
        data_sources=Provenance.DIRECTORY,
    )


class TestEstimate:
    """Metadata-based health estimates."""

    def test_strong_record(self, store: CatalogStore, health_config: HealthConfig) -> None:
        """Verified, popular, fresh and confident records score high."""
        monitor = HealthMonitor(store, config=health_config)
        record = _scanner_record(verified=True, stars=100, confidence=80, last_updated=FIXED_NOW - timedelta(days=10))

        reading = monitor.estimate(record, FIXED_NOW)

        assert reading.score == 100.0
        assert reading.source is MeasurementSource.ESTIMATED
        assert set(reading.factors) == {"verified", "popular", "recently_updated", "high_confidence"}

    def test_stale_record(self, store: CatalogStore, health_config: HealthConfig) -> None:
        """Outdated records lose points."""
        monitor = HealthMonitor(store, config=health_config)
        record = _scanner_record(last_updated=FIXED_NOW - timedelta(days=200))

        reading = monitor.estimate(record, FIXED_NOW)

        assert reading.score == 30.0
        assert "outdated" in reading.factors

    def test_missing_timestamp_is_neutral(self, store: CatalogStore, health_config: HealthConfig) -> None:
        """No update time neither adds nor removes points."""
        monitor = HealthMonitor(store, config=health_config)
        assert monitor.estimate(_scanner_record(), FIXED_NOW).score == 50.0


class TestCheck:
    """Single monitoring passes."""

    def test_no_records_is_skipped(self, store: CatalogStore, health_config: HealthConfig) -> None:
        """An empty catalog produces a skipped pass."""
        stats = asyncio.run(HealthMonitor(store, config=health_config).check())
        assert stats.skipped is True
        assert stats.total == 0

    def test_directory_and_estimated_readings(
        self,
        store: CatalogStore,
        fake_directory: FakeDirectory,
        directory_client: DirectoryClient,
        health_config: HealthConfig,
        clock,
    ) -> None:
        """Linked records read the directory; others are estimated."""
        fake_directory.add("srv-1", healthScore=91)
        store.upsert_merged_record(_directory_record("srv-1"))
        store.upsert_merged_record(_scanner_record(verified=True, confidence=80))
        monitor = HealthMonitor(store, directory_client, health_config, clock)

        stats = asyncio.run(monitor.check())

        assert stats.total == 2
        assert stats.from_directory == 1
        assert stats.estimated == 1
        assert stats.healthy == 2
        assert stats.alerts_generated == 0
        record = store.get_merged_record("dir:srv-1")
        assert record is not None
        assert record.health_score == 91.0
        assert record.health_status is HealthStatus.HEALTHY
        assert record.reliability == 91.0
        assert record.last_health_check == FIXED_NOW
        history = store.list_measurements(MeasurementSubject.MERGED_RECORD, "dir:srv-1")
        assert [m.source for m in history] == [MeasurementSource.DIRECTORY]

    def test_unknown_directory_server_is_estimated(
        self, store: CatalogStore, directory_client: DirectoryClient, health_config: HealthConfig, clock
    ) -> None:
        """A server missing from the directory falls back to an estimate."""
        store.upsert_merged_record(_directory_record("gone"))
        monitor = HealthMonitor(store, directory_client, health_config, clock)

        stats = asyncio.run(monitor.check())

        assert stats.estimated == 1
        assert stats.from_directory == 0

    def test_alert_cooldown(self, store: CatalogStore, health_config: HealthConfig, clock) -> None:
        """A repeated degraded reading inside the cooldown raises one alert."""
        store.upsert_merged_record(_scanner_record(confidence=80))
        monitor = HealthMonitor(store, config=health_config, clock=clock)

        async def scenario() -> tuple[HealthCheckStats, HealthCheckStats]:
            return await monitor.check(), await monitor.check()

        first, second = asyncio.run(scenario())

        assert first.warning == 1
        assert first.alerts_generated == 1
        assert second.alerts_generated == 0
        alerts = store.list_alerts()
        assert len(alerts) == 1
        assert alerts[0].alert_type is AlertType.DEGRADED_HEALTH
        assert alerts[0].message.startswith("a: ")

    def test_critical_alert_and_acknowledge(self, store: CatalogStore, health_config: HealthConfig, clock) -> None:
        """Critical readings raise critical alerts that can be acknowledged."""
        store.upsert_merged_record(_scanner_record(last_updated=FIXED_NOW - timedelta(days=400)))
        monitor = HealthMonitor(store, config=health_config, clock=clock)

        stats = asyncio.run(monitor.check())

        assert stats.critical == 1
        alert = store.list_alerts()[0]
        assert alert.severity is AlertSeverity.CRITICAL
        assert alert.id is not None
        assert monitor.acknowledge_alert(alert.id) is True
        assert store.list_alerts(unacknowledged_only=True) == []

    def test_trend_follows_history(self, store: CatalogStore, health_config: HealthConfig) -> None:
        """Enough falling readings inside the window mark the record declining."""
        now = [FIXED_NOW]
        monitor = HealthMonitor(store, config=health_config, clock=lambda: now[0])
        readings = [
            {"verified": True, "confidence": 70},
            {"verified": False, "confidence": 70},
            {"verified": False, "confidence": 40},
        ]

        async def scenario() -> None:
            for offset, fields in enumerate(readings):
                now[0] = FIXED_NOW + timedelta(hours=offset)
                store.upsert_merged_record(_scanner_record(**fields))
                await monitor.check()

        asyncio.run(scenario())

        record = store.get_merged_record("repo:acme/a")
        assert record is not None
        assert record.health_trend is HealthTrend.DECLINING
        assert record.health_score == 50.0

    def test_too_little_history_keeps_previous_trend(self, store: CatalogStore, health_config: HealthConfig, clock) -> None:
        """Below the minimum data points the stored trend is kept."""
        store.upsert_merged_record(_scanner_record(health_trend=HealthTrend.IMPROVING))
        monitor = HealthMonitor(store, config=health_config, clock=clock)

        stats = asyncio.run(monitor.check())

        assert stats.trends["improving"] == 1
        record = store.get_merged_record("repo:acme/a")
        assert record is not None and record.health_trend is HealthTrend.IMPROVING

    def test_failed_check_is_recorded(
        self, store: CatalogStore, health_config: HealthConfig, clock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A failing write marks the check unavailable without touching the record."""
        store.upsert_merged_record(_scanner_record())
        monitor = HealthMonitor(store, config=health_config, clock=clock)

        def fail(*args: object, **kwargs: object) -> None:
            raise StorageConflictError("database is locked")

        monkeypatch.setattr(store, "update_record_health", fail)

        stats = asyncio.run(monitor.check())

        assert stats.unavailable == 1
        assert stats.estimated == 0
        history = store.list_measurements(MeasurementSubject.MERGED_RECORD, "repo:acme/a")
        assert history[-1].status is HealthStatus.UNAVAILABLE
        assert history[-1].source is MeasurementSource.FAILED
        assert history[-1].factors == {"error": "database is locked"}
        record = store.get_merged_record("repo:acme/a")
        assert record is not None and record.last_health_check is None


class TestReporting:
    """Health reports."""

    def test_report_structure(self, store: CatalogStore, health_config: HealthConfig, clock) -> None:
        """Reports summarize checked records and recent alerts."""
        store.upsert_merged_record(_scanner_record("good", verified=True, confidence=80))
        store.upsert_merged_record(_scanner_record("meh", confidence=80))
        store.upsert_merged_record(_scanner_record("unchecked"))
        monitor = HealthMonitor(store, config=health_config, clock=clock)
        asyncio.run(monitor.check())
        store.update_record_health(
            "repo:acme/unchecked",
            score=10.0,
            status=HealthStatus.CRITICAL.value,
            trend=HealthTrend.STABLE.value,
            reliability=10.0,
            checked_at=FIXED_NOW - timedelta(days=30),
        )

        report = monitor.generate_health_report(period_days=7)

        assert report["period_days"] == 7
        overview = report["overview"]
        assert overview["total_records"] == 2
        assert overview["average_health"] == 70.0
        assert overview["health_distribution"] == {"healthy": 1, "warning": 1, "critical": 0}
        assert report["top_performers"][0]["name"] == "good"
        assert [p["name"] for p in report["problematic"]] == ["meh"]
        assert report["alerts"]["warnings"] >= 1


class TestContinuousMonitoring:
    """Start and stop of the periodic loop."""

    def test_start_and_stop(self, store: CatalogStore, clock) -> None:
        """The loop runs one pass and stops cleanly."""
        store.upsert_merged_record(_scanner_record())
        monitor = HealthMonitor(store, config=HealthConfig(check_interval_seconds=3600), clock=clock)

        async def scenario() -> None:
            await monitor.start_monitoring()
            await monitor.start_monitoring()
            assert monitor.is_monitoring is True
            for _ in range(10):
                await asyncio.sleep(0)
            await monitor.stop_monitoring()

        asyncio.run(scenario())

        assert monitor.is_monitoring is False
        assert store.list_measurements(MeasurementSubject.MERGED_RECORD, "repo:acme/a")
