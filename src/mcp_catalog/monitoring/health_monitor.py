"""Health monitoring for unified catalog records."""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, Field

from mcp_catalog.config import HealthConfig
from mcp_catalog.entities.catalog import (
    AlertSeverity,
    AlertType,
    HealthAlert,
    HealthMeasurement,
    HealthStatus,
    MeasurementSource,
    MeasurementSubject,
    MergedRecord,
)
from mcp_catalog.entities.directory import HealthTrend
from mcp_catalog.errors import CatalogError
from mcp_catalog.monitoring.trends import health_status, reliability_score, smoothed_trend

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


class HealthReading(BaseModel):
    """One health observation before it is persisted."""

    score: float
    source: MeasurementSource
    factors: dict[str, Any] = Field(default_factory=dict)


class HealthCheckStats(BaseModel):
    """Outcome of one pass over the catalog."""

    total: int = 0
    healthy: int = 0
    warning: int = 0
    critical: int = 0
    unavailable: int = 0
    from_directory: int = 0
    estimated: int = 0
    alerts_generated: int = 0
    trends: dict[str, int] = Field(default_factory=lambda: {trend.value: 0 for trend in HealthTrend})
    skipped: bool = False
    duration_seconds: float = 0.0


class HealthMonitor:
    """Scores every merged record, tracks its history and raises alerts.

    A record linked to a directory server takes its health from the
    directory; anything else gets an estimate from catalog metadata.
    """

    def __init__(
        self,
        store: CatalogStore,
        directory_client: DirectoryClient | None = None,
        config: HealthConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            store: Catalog store holding merged records and health history.
            directory_client: Source of directory health scores. Without one,
                every record is estimated.
            config: Thresholds, windows and batching.
            clock: Returns "now"; measurements and alerts are stamped with it.
        """
        self.store = store
        self.directory_client = directory_client
        self.config = config or HealthConfig()
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._running = False
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Readings
    # ------------------------------------------------------------------

    def status_for(self, score: float) -> HealthStatus:
        return health_status(
            score,
            critical=self.config.critical_threshold,
            warning=self.config.warning_threshold,
        )

    def estimate(self, record: MergedRecord, now: datetime) -> HealthReading:
        """Estimate health from metadata when the directory has no score."""
        score = 50.0
        factors: dict[str, Any] = {}
        if record.verified:
            score += 20
            factors["verified"] = True
        if record.stars > 10:
            score += min(record.stars / 10, 15)
            factors["popular"] = record.stars
        if record.last_updated is not None:
            age_days = (now - record.last_updated).total_seconds() / 86400
            if age_days < 30:
                score += 10
                factors["recently_updated"] = round(age_days, 1)
            elif age_days > 180:
                score -= 20
                factors["outdated"] = round(age_days, 1)
        if record.confidence >= 70:
            score += 10
            factors["high_confidence"] = record.confidence
        return HealthReading(score=min(score, 100.0), source=MeasurementSource.ESTIMATED, factors=factors)

    async def _directory_reading(self, record: MergedRecord) -> HealthReading | None:
        if self.directory_client is None or record.directory_server_id is None:
            return None
        try:
            server = await self.directory_client.get_server_details(record.directory_server_id)
        except (CatalogError, httpx.HTTPError) as exc:
            logger.debug("No directory health for %s: %s", record.merge_key, exc)
            return None
        if server is None or server.health_score is None:
            return None
        return HealthReading(
            score=server.health_score,
            source=MeasurementSource.DIRECTORY,
            factors={"verified": server.verified, "active": server.active},
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def reliability(self, merge_key: str) -> float | None:
        history = self.store.list_measurements(
            MeasurementSubject.MERGED_RECORD,
            merge_key,
            limit=self.config.reliability_window,
            newest_first=True,
        )
        return reliability_score([0.0 if m.status is HealthStatus.UNAVAILABLE else m.score for m in history])

    def trend(self, merge_key: str, now: datetime) -> HealthTrend:
        """Smoothed trend over the window; UNKNOWN when there are too few points."""
        history = self.store.list_measurements(
            MeasurementSubject.MERGED_RECORD,
            merge_key,
            since=now - timedelta(days=self.config.trend_window_days),
        )
        return smoothed_trend(
            [m.score for m in history],
            alpha=self.config.smoothing_factor,
            min_points=self.config.min_data_points,
        )

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def check_record(self, record: MergedRecord, stats: HealthCheckStats) -> None:
        now = self._clock()
        try:
            reading = await self._directory_reading(record) or self.estimate(record, now)
            status = self.status_for(reading.score)
            self.store.add_measurement(
                HealthMeasurement(
                    subject=MeasurementSubject.MERGED_RECORD,
                    subject_id=record.merge_key,
                    score=reading.score,
                    status=status,
                    source=reading.source,
                    factors=reading.factors,
                    measured_at=now,
                )
            )
            reliability = self.reliability(record.merge_key)
            trend = self.trend(record.merge_key, now)
            if trend is HealthTrend.UNKNOWN:
                trend = record.health_trend
            self.store.update_record_health(
                record.merge_key,
                score=reading.score,
                status=status.value,
                trend=trend.value,
                reliability=reliability,
                checked_at=now,
            )
        except (CatalogError, ValueError) as exc:
            stats.unavailable += 1
            logger.warning("Failed to check health for %s: %s", record.merge_key, exc)
            self._record_failure(record, now, exc)
            return

        if reading.source is MeasurementSource.DIRECTORY:
            stats.from_directory += 1
        else:
            stats.estimated += 1
        setattr(stats, status.value, getattr(stats, status.value) + 1)
        stats.trends[trend.value] = stats.trends.get(trend.value, 0) + 1
        stats.alerts_generated += self._evaluate_alerts(record, reading.score, status, trend, reliability, now)

    def _record_failure(self, record: MergedRecord, now: datetime, exc: Exception) -> None:
        try:
            self.store.add_measurement(
                HealthMeasurement(
                    subject=MeasurementSubject.MERGED_RECORD,
                    subject_id=record.merge_key,
                    score=0.0,
                    status=HealthStatus.UNAVAILABLE,
                    source=MeasurementSource.FAILED,
                    factors={"error": str(exc)},
                    measured_at=now,
                )
            )
        except CatalogError:
            logger.exception("Failed to record health failure for %s", record.merge_key)

    async def check(self) -> HealthCheckStats:
        """Check every merged record once, in batches."""
        started = time.monotonic()
        records = self.store.list_merged_records()
        stats = HealthCheckStats(total=len(records))
        if not records:
            logger.info("No records to monitor")
            stats.skipped = True
            return stats

        batch_size = max(1, self.config.batch_size)
        batches = [records[i : i + batch_size] for i in range(0, len(records), batch_size)]
        logger.info("Checking health of %d records in %d batches", len(records), len(batches))
        for index, batch in enumerate(batches, start=1):
            logger.debug("Health batch %d/%d: %d records", index, len(batches), len(batch))
            await asyncio.gather(*(self.check_record(record, stats) for record in batch))
            if index < len(batches) and self.config.batch_pause_seconds > 0:
                await asyncio.sleep(self.config.batch_pause_seconds)

        stats.duration_seconds = round(time.monotonic() - started, 3)
        logger.info(
            "Health check complete: %d healthy, %d warning, %d critical, %d unavailable, %d alerts",
            stats.healthy,
            stats.warning,
            stats.critical,
            stats.unavailable,
            stats.alerts_generated,
        )
        return stats

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def _evaluate_alerts(
        self,
        record: MergedRecord,
        score: float,
        status: HealthStatus,
        trend: HealthTrend,
        reliability: float | None,
        now: datetime,
    ) -> int:
        candidates: list[tuple[AlertSeverity, AlertType, str]] = []
        if status is HealthStatus.CRITICAL:
            candidates.append((AlertSeverity.CRITICAL, AlertType.CRITICAL_HEALTH, f"Health is critical ({score:.0f}%)"))
        elif status is HealthStatus.WARNING:
            candidates.append((AlertSeverity.WARNING, AlertType.DEGRADED_HEALTH, f"Health is degraded ({score:.0f}%)"))
        if (
            trend is HealthTrend.DECLINING
            and reliability is not None
            and reliability < self.config.reliability_threshold
        ):
            candidates.append((AlertSeverity.WARNING, AlertType.DECLINING_TREND, "Health is trending down"))

        created = 0
        for severity, alert_type, message in candidates:
            if self.raise_alert(record, severity, alert_type, message, score, now):
                created += 1
        return created

    def raise_alert(
        self,
        record: MergedRecord,
        severity: AlertSeverity,
        alert_type: AlertType,
        message: str,
        score: float | None,
        now: datetime | None = None,
    ) -> bool:
        """Store an alert unless one of the same severity exists within the cooldown.

        Returns:
            True if a new alert was stored.
        """
        now = now or self._clock()
        since = now - timedelta(hours=self.config.alert_cooldown_hours)
        if self.store.has_recent_alert(record.merge_key, severity, since):
            logger.debug("Suppressing %s alert for %s (cooldown)", severity, record.merge_key)
            return False
        self.store.add_alert(
            HealthAlert(
                record_key=record.merge_key,
                severity=severity,
                alert_type=alert_type,
                message=f"{record.name}: {message}",
                health_score=score,
                created_at=now,
            )
        )
        logger.warning("%s alert for %s: %s", severity.upper(), record.merge_key, message)
        return True

    def acknowledge_alert(self, alert_id: int) -> bool:
        return self.store.acknowledge_alert(alert_id)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def generate_health_report(self, period_days: int = 7) -> dict[str, Any]:
        """Summarize records checked within the last ``period_days``."""
        now = self._clock()
        cutoff = now - timedelta(days=period_days)
        records = [
            r for r in self.store.list_merged_records() if r.last_health_check and r.last_health_check >= cutoff
        ]
        scores = [r.health_score for r in records if r.health_score is not None]
        reliabilities = [r.reliability for r in records if r.reliability is not None]

        distribution = {status.value: 0 for status in (HealthStatus.HEALTHY, HealthStatus.WARNING, HealthStatus.CRITICAL)}
        trends: dict[str, int] = {}
        for record in records:
            if record.health_status.value in distribution:
                distribution[record.health_status.value] += 1
            trends[record.health_trend.value] = trends.get(record.health_trend.value, 0) + 1

        def summary(record: MergedRecord) -> dict[str, Any]:
            return {
                "merge_key": record.merge_key,
                "name": record.name,
                "health_score": record.health_score,
                "reliability": record.reliability,
                "health_status": record.health_status.value,
                "health_trend": record.health_trend.value,
            }

        top = sorted(records, key=lambda r: (r.reliability or 0, r.health_score or 0), reverse=True)[:10]
        problematic = sorted(
            (
                r
                for r in records
                if r.health_status in (HealthStatus.WARNING, HealthStatus.CRITICAL)
                or r.health_trend is HealthTrend.DECLINING
            ),
            key=lambda r: (r.health_score or 0, r.reliability or 0),
        )[:10]
        alerts = self.store.list_alerts(since=cutoff)

        return {
            "period_days": period_days,
            "generated_at": now.isoformat(),
            "overview": {
                "total_records": len(records),
                "average_health": round(sum(scores) / len(scores), 1) if scores else 0.0,
                "average_reliability": round(sum(reliabilities) / len(reliabilities), 1) if reliabilities else 0.0,
                "health_distribution": distribution,
            },
            "trends": trends,
            "top_performers": [summary(r) for r in top],
            "problematic": [summary(r) for r in problematic],
            "alerts": {
                "total": len(alerts),
                "critical": sum(1 for a in alerts if a.severity is AlertSeverity.CRITICAL),
                "warnings": sum(1 for a in alerts if a.severity is AlertSeverity.WARNING),
                "recent": [a.model_dump(mode="json") for a in alerts[:10]],
            },
        }

    # ------------------------------------------------------------------
    # Continuous monitoring
    # ------------------------------------------------------------------

    async def _monitor_loop(self) -> None:
        while self._running:
            try:
                await self.check()
            except CatalogError:
                logger.exception("Scheduled health check failed")
            await asyncio.sleep(self.config.check_interval_seconds)

    async def start_monitoring(self) -> None:
        """Start the periodic health-check loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._monitor_loop())
        logger.info("Health monitoring started (interval: %d seconds)", self.config.check_interval_seconds)

    async def stop_monitoring(self) -> None:
        """Stop the periodic health-check loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Health monitoring stopped")

    @property
    def is_monitoring(self) -> bool:
        return self._running
