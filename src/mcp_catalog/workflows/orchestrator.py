"""Discovery orchestration: scanner-only and fused (super) pipelines."""

from __future__ import annotations

import asyncio
import csv
import hashlib
import io
import json
import logging
import time
import uuid
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import httpx
import yaml

from mcp_catalog.config import CATALOG_SETTINGS, CatalogSettings, DiscoveryConfig
from mcp_catalog.entities.catalog import DiscoveryRun, HealthStatus, RunError, RunStatus
from mcp_catalog.errors import CatalogError, ConfigurationError, StorageConflictError, diagnose_failure
from mcp_catalog.monitoring.health_monitor import HealthMonitor
from mcp_catalog.nodes.analysis.analyzer import ContentAnalyzer
from mcp_catalog.nodes.classification.detector import MCPDetector
from mcp_catalog.nodes.discovery.github_scanner import GitHubScanner
from mcp_catalog.nodes.fusion.merger import DataMerger
from mcp_catalog.sync.directory_client import DirectoryClient
from mcp_catalog.sync.directory_sync import DirectorySync
from mcp_catalog.workflows.models import AnalyzedRepository, DiscoveryResult, SuperDiscoveryResult

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from mcp_catalog.entities.catalog import MergedRecord
    from mcp_catalog.entities.repository import Repository
    from mcp_catalog.memory.catalog_store import CatalogStore, ScannerCandidate

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "yaml", "csv")

CSV_COLUMNS = (
    "full_name", "name", "description", "html_url", "language", "stars", "forks",
    "archived", "fork", "updated_at", "confidence", "band", "classification", "is_candidate",
)  # fmt: skip


def generate_run_id(prefix: str, now: datetime | None = None) -> str:
    """``<prefix>-<timestamp>-<hash8>``, unique per call."""
    now = now or datetime.now(tz=UTC)
    timestamp = now.strftime("%Y%m%dT%H%M%S")
    digest = hashlib.sha256(f"{timestamp}-{uuid.uuid4().hex}".encode()).hexdigest()[:8]
    return f"{prefix}-{timestamp}-{digest}"


def _batches(items: list[Any], size: int) -> list[list[Any]]:
    size = max(1, size)
    return [items[i : i + size] for i in range(0, len(items), size)]


class DiscoveryOrchestrator:
    """Runs Discover, Analyze, Classify, Store and Report over GitHub.

    Phases run in order and a phase failure marks the run failed. Items
    that fail inside a phase are recorded on the run and dropped from
    later phases.
    """

    def __init__(
        self,
        store: CatalogStore,
        scanner: GitHubScanner | None = None,
        analyzer: ContentAnalyzer | None = None,
        detector: MCPDetector | None = None,
        config: DiscoveryConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: Catalog store receiving results and run metadata.
            scanner: GitHub scanner; one with default settings is created if omitted.
            analyzer: Content analyzer.
            detector: Detector used in normal mode; strict runs get a strict one.
            config: Default run configuration.
            clock: Returns "now".
        """
        self.store = store
        self.scanner = scanner or GitHubScanner()
        self.analyzer = analyzer or ContentAnalyzer()
        self.config = config or DiscoveryConfig()
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self.detector = detector or MCPDetector(strict_mode=self.config.strict_mode, clock=self._clock)

    async def aclose(self) -> None:
        await self.scanner.aclose()

    def _detector_for(self, config: DiscoveryConfig) -> MCPDetector:
        if config.strict_mode == self.detector.strict_mode:
            return self.detector
        return MCPDetector(self.detector.rules, strict_mode=config.strict_mode, clock=self._clock)

    # ------------------------------------------------------------------
    # Run bookkeeping
    # ------------------------------------------------------------------

    @contextmanager
    def _phase(self, run: DiscoveryRun, name: str, number: int) -> Iterator[None]:
        run.phase = name
        logger.info("Phase %d: %s", number, name)
        try:
            yield
        except Exception as exc:
            run.status = RunStatus.FAILED
            run.failed_phase = name
            run.error_message = str(exc)
            run.finished_at = self._clock()
            run.errors.append(RunError(phase=name, failure_type=diagnose_failure(exc), message=str(exc)))
            self.store.save_run(run)
            logger.error("Run %s failed in phase %s: %s", run.run_id, name, exc)
            raise
        self.store.save_run(run)

    def _record_item_error(self, run: DiscoveryRun, phase: str, item: str, exc: BaseException) -> None:
        failure = diagnose_failure(exc)
        run.errors.append(RunError(phase=phase, item=item, failure_type=failure, message=str(exc)))
        run.bump("failed")
        logger.warning("%s failed for %s (%s): %s", phase, item, failure, exc)

    async def preflight(self, config: DiscoveryConfig) -> None:
        """Validate the run configuration and the remaining search quota.

        Raises:
            ConfigurationError: Invalid parameters or not enough quota.
        """
        if config.max_repositories < 1:
            msg = f"max_repositories must be positive, got {config.max_repositories}"
            raise ConfigurationError(msg)
        if config.concurrency < 1 or config.batch_size < 1:
            msg = "concurrency and batch_size must be positive"
            raise ConfigurationError(msg)
        if not 0 <= config.min_confidence <= 100:
            msg = f"min_confidence must be within 0..100, got {config.min_confidence}"
            raise ConfigurationError(msg)

        try:
            status = await self.scanner.get_rate_limit_status()
        except CatalogError as exc:
            msg = f"Unable to read the GitHub rate limit: {exc}"
            raise ConfigurationError(msg) from exc

        required = self.scanner.config.min_search_quota
        if status.search.remaining < required:
            reset = status.search.reset.isoformat() if status.search.reset else "unknown"
            msg = (
                f"Insufficient GitHub search quota: {status.search.remaining} remaining, "
                f"{required} required (resets at {reset})"
            )
            raise ConfigurationError(msg)
        logger.info(
            "GitHub quota: core %d/%d, search %d/%d",
            status.core.remaining,
            status.core.limit,
            status.search.remaining,
            status.search.limit,
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def run_discovery(self, config: DiscoveryConfig | None = None) -> DiscoveryResult:
        """Run the scanner-only pipeline.

        Args:
            config: Run configuration; defaults to the orchestrator's.

        Returns:
            The finished run, its report and the analyzed repositories.

        Raises:
            ConfigurationError: Before any phase starts; the run is never "running".
            CatalogError: A phase failed; the run is persisted as failed.
        """
        config = config or self.config
        started = time.monotonic()
        run = DiscoveryRun(
            run_id=generate_run_id("discovery", self._clock()),
            kind="discovery",
            config=config.model_dump(mode="json"),
            started_at=self._clock(),
        )

        try:
            await self.preflight(config)
        except ConfigurationError as exc:
            run.status = RunStatus.FAILED
            run.failed_phase = "preflight"
            run.error_message = str(exc)
            run.finished_at = self._clock()
            self.store.save_run(run)
            raise

        run.status = RunStatus.RUNNING
        self.store.save_run(run)
        logger.info("Starting discovery run %s", run.run_id)
        detector = self._detector_for(config)

        with self._phase(run, "discover", 1):
            scan = await self.scanner.discover(
                max_results=config.max_repositories,
                min_stars=config.min_stars,
                include_archived=config.include_archived,
            )
            run.bump("discovered", len(scan.records))
            run.bump("search_results", scan.stats.total_results)
            run.bump("duplicates_filtered", scan.stats.duplicates_filtered)

        with self._phase(run, "analyze", 2):
            analyzed = await self._analyze(run, scan.records, config)

        with self._phase(run, "classify", 3):
            for item in analyzed:
                item.detection = detector.classify(item.profile)
                run.bump("classified")
                if item.detection.is_candidate:
                    run.bump("detected")

        with self._phase(run, "store", 4):
            if config.dry_run:
                logger.info("Dry run, skipping storage")
            else:
                self._store(run, analyzed, config)

        with self._phase(run, "report", 5):
            report = self.build_report(run, analyzed, detector)

        run.status = RunStatus.COMPLETED
        run.phase = None
        run.finished_at = self._clock()
        report["duration_seconds"] = round(time.monotonic() - started, 3)
        self.store.save_run(run)
        logger.info(
            "Discovery run %s complete: %d discovered, %d analyzed, %d detected, %d stored",
            run.run_id,
            run.counters.get("discovered", 0),
            run.counters.get("analyzed", 0),
            run.counters.get("detected", 0),
            run.counters.get("stored", 0),
        )
        return DiscoveryResult(run=run, report=report, analyzed=analyzed)

    async def _fetch_and_analyze(self, repo: Repository) -> AnalyzedRepository:
        details = await self.scanner.get_details(repo.owner, repo.name)
        repository = details.repository
        repository.search_pattern = repo.search_pattern
        repository.discovered_at = repo.discovered_at
        profile = self.analyzer.analyze(repository, details.files, details.structure)
        return AnalyzedRepository(repository=repository, profile=profile)

    async def _analyze(
        self, run: DiscoveryRun, repos: list[Repository], config: DiscoveryConfig
    ) -> list[AnalyzedRepository]:
        analyzed: list[AnalyzedRepository] = []
        batches = _batches(repos, config.batch_size)
        for index, batch in enumerate(batches, start=1):
            logger.info("Analyzing batch %d/%d (%d repositories)", index, len(batches), len(batch))
            results = await self.scanner.process_repositories(
                batch, self._fetch_and_analyze, concurrency=config.concurrency, delay=config.request_delay
            )
            for repo, result in zip(batch, results, strict=True):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if isinstance(result, BaseException):
                    self._record_item_error(run, "analyze", repo.full_name, result)
                    continue
                analyzed.append(result)
                run.bump("analyzed")
            self.store.save_run(run)
            if index < len(batches) and config.batch_pause_seconds > 0:
                await asyncio.sleep(config.batch_pause_seconds)
        return analyzed

    def _store(self, run: DiscoveryRun, analyzed: list[AnalyzedRepository], config: DiscoveryConfig) -> None:
        eligible = [
            (a, a.detection)
            for a in analyzed
            if a.detection is not None and a.detection.confidence >= config.min_confidence
        ]
        run.bump("below_threshold", len(analyzed) - len(eligible))
        for batch in _batches(eligible, config.store_batch_size):
            for item, detection in batch:
                try:
                    is_new = self.store.store_result(item.repository, item.profile, detection)
                except StorageConflictError as exc:
                    self._record_item_error(run, "store", item.repository.full_name, exc)
                    continue
                run.bump("stored")
                run.bump("new" if is_new else "updated")
            logger.debug("Stored %d/%d results", run.counters.get("stored", 0), len(eligible))

    def build_report(
        self, run: DiscoveryRun, analyzed: list[AnalyzedRepository], detector: MCPDetector
    ) -> dict[str, Any]:
        """Run counters plus live aggregates from the store."""
        detections = [a.detection for a in analyzed if a.detection is not None]
        return {
            "run_id": run.run_id,
            "counters": dict(run.counters),
            "errors": len(run.errors),
            "detection": detector.summarize(detections).model_dump(mode="json"),
            "analysis": self.analyzer.summarize(a.profile for a in analyzed).model_dump(mode="json"),
            "catalog": self.store.stats(),
            "confidence_histogram": self.store.confidence_histogram(detector.thresholds),
            "languages": self.store.language_breakdown(),
        }

    # ------------------------------------------------------------------
    # Queries and export
    # ------------------------------------------------------------------

    def get_high_confidence_records(self, limit: int = 100) -> list[ScannerCandidate]:
        """Stored repositories whose detection reaches the high band."""
        threshold = self.detector.thresholds.high
        candidates = [c for c in self.store.list_scanner_candidates(threshold) if c.detection.confidence >= threshold]
        return candidates[:limit]

    def export_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {"exported_at": self._clock().isoformat()}
        data.update(self.store.export_data())
        data["total_count"] = len(data["repositories"])
        return data

    def export_catalog(self, format: str = "json") -> str:
        """Serialize the catalog as JSON, YAML, or CSV (repositories only).

        Raises:
            ConfigurationError: Unsupported format.
        """
        format = format.lower()
        if format not in EXPORT_FORMATS:
            msg = f"Unsupported export format {format!r}; expected one of {', '.join(EXPORT_FORMATS)}"
            raise ConfigurationError(msg)
        if format == "csv":
            return self._export_csv()
        data = self.export_data()
        if format == "yaml":
            return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
        return json.dumps(data, indent=2)

    def _export_csv(self) -> str:
        detections = {d.full_name: d for d in self.store.list_detections()}
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for repo in self.store.list_repositories():
            row: dict[str, Any] = repo.model_dump(mode="json")
            detection = detections.get(repo.full_name)
            if detection is not None:
                row.update(
                    confidence=detection.confidence,
                    band=detection.band.value,
                    classification=detection.classification.value,
                    is_candidate=detection.is_candidate,
                )
            writer.writerow(row)
        return buffer.getvalue()


class SuperDiscoveryOrchestrator:
    """Fused pipeline: Discover, Sync, Merge, HealthCheck and Report.

    Only the GitHub phase is a hard dependency. Directory sync, merge and
    health checks degrade to recorded errors so a run still produces
    scanner-only records when the directory is unreachable.
    """

    def __init__(
        self,
        store: CatalogStore,
        discovery: DiscoveryOrchestrator | None = None,
        directory_client: DirectoryClient | None = None,
        directory_sync: DirectorySync | None = None,
        merger: DataMerger | None = None,
        monitor: HealthMonitor | None = None,
        settings: CatalogSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or CATALOG_SETTINGS
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self.discovery = discovery or DiscoveryOrchestrator(
            store,
            scanner=GitHubScanner(self.settings.scanner),
            config=self.settings.discovery,
            clock=self._clock,
        )
        self.directory_client = directory_client or DirectoryClient(self.settings.directory)
        self.directory_sync = directory_sync or DirectorySync(
            store, self.directory_client, self.settings.sync, self.settings.health, clock=self._clock
        )
        self.merger = merger or DataMerger(store, self.settings.merge)
        self.monitor = monitor or HealthMonitor(store, self.directory_client, self.settings.health, clock=self._clock)

    @property
    def config(self) -> DiscoveryConfig:
        return self.discovery.config

    async def aclose(self) -> None:
        await self.stop_health_monitoring()
        await self.discovery.aclose()
        await self.directory_client.aclose()

    def _degraded(self, run: DiscoveryRun, phase: str, exc: BaseException) -> None:
        run.errors.append(RunError(phase=phase, failure_type=diagnose_failure(exc), message=str(exc)))
        logger.warning("Phase %s degraded: %s", phase, exc)
        self.store.save_run(run)

    async def run_super_discovery(self, config: DiscoveryConfig | None = None) -> SuperDiscoveryResult:
        """Run the fused pipeline.

        Raises:
            ConfigurationError: Invalid parameters or insufficient quota.
            CatalogError: The GitHub phase failed.
        """
        config = config or self.config
        started = time.monotonic()
        run = DiscoveryRun(
            run_id=generate_run_id("super-discovery", self._clock()),
            kind="super-discovery",
            config=config.model_dump(mode="json"),
            status=RunStatus.RUNNING,
            started_at=self._clock(),
        )
        result = SuperDiscoveryResult(run=run, report={})
        logger.info("Starting super discovery run %s", run.run_id)

        run.phase = "github"
        logger.info("Phase 1: github discovery")
        try:
            result.discovery = await self.discovery.run_discovery(config)
        except ConfigurationError as exc:
            run.status = RunStatus.FAILED
            run.failed_phase = "github"
            run.error_message = str(exc)
            run.finished_at = self._clock()
            self.store.save_run(run)
            raise
        except Exception as exc:
            run.status = RunStatus.FAILED
            run.failed_phase = "github"
            run.error_message = str(exc)
            run.finished_at = self._clock()
            run.errors.append(RunError(phase="github", failure_type=diagnose_failure(exc), message=str(exc)))
            self.store.save_run(run)
            raise
        for name, value in result.discovery.run.counters.items():
            run.bump(f"github_{name}", value)
        self.store.save_run(run)

        if config.include_directory:
            run.phase = "sync"
            logger.info("Phase 2: directory sync")
            try:
                result.sync = await self.directory_sync.sync(force=config.force_sync)
            except (CatalogError, httpx.HTTPError) as exc:
                self._degraded(run, "sync", exc)
            else:
                run.bump("directory_fetched", result.sync.stats.fetched)
                run.bump("directory_new", result.sync.stats.new)
                run.bump("directory_updated", result.sync.stats.updated)
                self.store.save_run(run)

        run.phase = "merge"
        logger.info("Phase 3: merge")
        try:
            result.merge = self.merger.merge()
        except CatalogError as exc:
            self._degraded(run, "merge", exc)
        else:
            run.bump("merged_matched", result.merge.matched)
            run.bump("merged_scanner_only", result.merge.scanner_only)
            run.bump("merged_directory_only", result.merge.directory_only)
            self.store.save_run(run)

        if config.enable_health_monitoring:
            run.phase = "health"
            logger.info("Phase 4: health check")
            try:
                result.health = await self.monitor.check()
            except (CatalogError, httpx.HTTPError) as exc:
                self._degraded(run, "health", exc)
            else:
                run.bump("health_checked", result.health.total)
                run.bump("health_alerts", result.health.alerts_generated)
                self.store.save_run(run)

        run.phase = "report"
        logger.info("Phase 5: report")
        result.report = self.build_report(result)
        result.report["duration_seconds"] = round(time.monotonic() - started, 3)

        run.status = RunStatus.COMPLETED
        run.phase = None
        run.finished_at = self._clock()
        self.store.save_run(run)
        logger.info("Super discovery run %s complete", run.run_id)
        return result

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def data_quality_score(result: SuperDiscoveryResult, directory_total: int, directory_verified: int) -> int:
        """Average of the match, verification and analysis factors present."""
        score = 0.0
        factors = 0
        counters = result.discovery.run.counters if result.discovery else {}

        if result.merge and result.merge.matched > 0:
            sources = counters.get("detected", 0) + directory_total
            score += (result.merge.matched / sources if sources else 0.0) * 40
            factors += 1
        if directory_verified > 0 and directory_total > 0:
            score += directory_verified / directory_total * 30
            factors += 1
        if counters.get("analyzed", 0) > 0 and counters.get("discovered", 0) > 0:
            score += counters["analyzed"] / counters["discovered"] * 30
            factors += 1
        return round(score / factors) if factors else 0

    @staticmethod
    def overall_health_score(records: list[MergedRecord]) -> int:
        monitored = [r for r in records if r.health_status is not HealthStatus.UNKNOWN]
        if not monitored:
            return 0
        weights = {HealthStatus.HEALTHY: 1.0, HealthStatus.WARNING: 0.6, HealthStatus.CRITICAL: 0.2}
        total = sum(weights.get(r.health_status, 0.0) for r in monitored)
        return round(total / len(monitored) * 100)

    def build_report(self, result: SuperDiscoveryResult) -> dict[str, Any]:
        servers = self.store.list_directory_servers(active_only=True)
        records = self.store.list_merged_records()
        verified = sum(1 for s in servers if s.verified)
        return {
            "run_id": result.run_id,
            "counters": dict(result.run.counters),
            "errors": [e.model_dump(mode="json") for e in result.run.errors],
            "github": result.discovery.report if result.discovery else None,
            "directory": {
                "skipped": result.sync.skipped if result.sync else None,
                "stats": result.sync.stats.model_dump(mode="json") if result.sync else None,
                "active_servers": len(servers),
                "verified_servers": verified,
                "offline": self.directory_client.offline,
            },
            "integration": {
                "merge": result.merge.model_dump(mode="json") if result.merge else None,
                "records": self.store.count_merged_records(),
                "data_quality_score": self.data_quality_score(result, len(servers), verified),
            },
            "health": {
                "check": result.health.model_dump(mode="json") if result.health else None,
                "overall_health_score": self.overall_health_score(records),
            },
            "categories": self.store.category_breakdown(),
            "catalog": self.store.stats(),
        }

    # ------------------------------------------------------------------
    # Queries, export and monitoring
    # ------------------------------------------------------------------

    def get_high_confidence_records(self, limit: int = 100) -> list[MergedRecord]:
        """Unified records in the high band, highest confidence first."""
        return self.store.list_merged_records(min_confidence=self.discovery.detector.thresholds.high, limit=limit)

    def get_top_records(self, limit: int = 50) -> list[MergedRecord]:
        records = self.store.list_merged_records()
        records.sort(key=lambda r: (r.confidence, r.health_score or 0, r.combined_stars), reverse=True)
        return records[:limit]

    def export_catalog(self, format: str = "json") -> str:
        """Like :meth:`DiscoveryOrchestrator.export_catalog`, plus merge and health summaries."""
        format = format.lower()
        if format == "csv" or format not in EXPORT_FORMATS:
            return self.discovery.export_catalog(format)
        data = self.discovery.export_data()
        data["merged"] = self.merger.get_merged_stats()
        data["health"] = self.monitor.generate_health_report(period_days=7)
        if format == "yaml":
            return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
        return json.dumps(data, indent=2, default=str)

    async def start_health_monitoring(self) -> None:
        await self.monitor.start_monitoring()

    async def stop_health_monitoring(self) -> None:
        await self.monitor.stop_monitoring()
