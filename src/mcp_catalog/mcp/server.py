"""FastMCP server exposing catalog discovery tools."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING

from fastmcp import FastMCP

from mcp_catalog.config import CATALOG_SETTINGS
from mcp_catalog.errors import CatalogError
from mcp_catalog.mcp.schemas import (
    DiscoveryInput,
    ExportInput,
    ExportResult,
    HealthReportInput,
    HealthReportResult,
    MonitoringResult,
    RecordsInput,
    RecordsResult,
    RecordSummary,
    RunResult,
)

if TYPE_CHECKING:
    from mcp_catalog.config import DiscoveryConfig
    from mcp_catalog.memory.catalog_store import CatalogStore
    from mcp_catalog.workflows.orchestrator import SuperDiscoveryOrchestrator

# Configure logging to stderr (CRITICAL: never print to stdout for MCP)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP("mcp-catalog")

# Global state (lazy initialized)
_store: CatalogStore | None = None
_orchestrator: SuperDiscoveryOrchestrator | None = None
_init_lock = asyncio.Lock()


async def get_orchestrator() -> SuperDiscoveryOrchestrator:
    """Get or initialize the orchestrator and its catalog store."""
    global _store, _orchestrator

    async with _init_lock:
        if _orchestrator is None:
            from mcp_catalog.memory.catalog_store import CatalogStore
            from mcp_catalog.workflows.orchestrator import SuperDiscoveryOrchestrator

            logger.info("Opening catalog at %s", CATALOG_SETTINGS.db_path)
            _store = CatalogStore(CATALOG_SETTINGS.db_path)
            _orchestrator = SuperDiscoveryOrchestrator(_store, settings=CATALOG_SETTINGS)
            logger.info("Orchestrator initialized")

        return _orchestrator


def _run_config(input: DiscoveryInput) -> DiscoveryConfig:
    return CATALOG_SETTINGS.discovery.model_copy(
        update={
            "max_repositories": input.max_repositories,
            "min_stars": input.min_stars,
            "strict_mode": input.strict_mode,
            "dry_run": input.dry_run,
            "include_directory": input.include_directory,
            "force_sync": input.force_sync,
        }
    )


@mcp.tool
async def run_discovery(input: DiscoveryInput) -> RunResult:
    """Discover MCP servers on GitHub."""
    orchestrator = await get_orchestrator()
    try:
        result = await orchestrator.discovery.run_discovery(_run_config(input))
    except CatalogError as e:
        logger.warning("Discovery failed: %s", e)
        return RunResult(status="failed", errors=[str(e)])
    return RunResult(
        run_id=result.run_id,
        status=result.run.status.value,
        counters=result.stats,
        errors=[err.message for err in result.run.errors],
        report=result.report,
    )


@mcp.tool
async def run_super_discovery(input: DiscoveryInput) -> RunResult:
    """Discover, sync, merge and health-check."""
    orchestrator = await get_orchestrator()
    try:
        result = await orchestrator.run_super_discovery(_run_config(input))
    except CatalogError as e:
        logger.warning("Super discovery failed: %s", e)
        return RunResult(status="failed", errors=[str(e)])
    return RunResult(
        run_id=result.run_id,
        status=result.run.status.value,
        counters=dict(result.run.counters),
        errors=[err.message for err in result.run.errors],
        report=result.report,
    )


@mcp.tool
async def get_high_confidence_records(input: RecordsInput) -> RecordsResult:
    """List high-confidence catalog entries."""
    orchestrator = await get_orchestrator()
    if input.merged:
        summaries = [
            RecordSummary(
                key=record.merge_key,
                name=record.name,
                url=record.url,
                confidence=record.confidence,
                data_sources=record.data_sources.value,
                verified=record.verified,
                health_score=record.health_score,
            )
            for record in orchestrator.get_high_confidence_records(input.limit)
        ]
    else:
        summaries = [
            RecordSummary(
                key=candidate.repository.full_name,
                name=candidate.repository.name,
                url=candidate.repository.html_url,
                confidence=candidate.detection.confidence,
                classification=candidate.detection.classification.value,
            )
            for candidate in orchestrator.discovery.get_high_confidence_records(input.limit)
        ]
    return RecordsResult(records=summaries, total=len(summaries))


@mcp.tool
async def export_catalog(input: ExportInput) -> ExportResult:
    """Export the catalog as json, yaml or csv."""
    orchestrator = await get_orchestrator()
    try:
        content = orchestrator.export_catalog(input.format)
    except CatalogError as e:
        return ExportResult(format=input.format, error=str(e))
    return ExportResult(format=input.format.lower(), content=content)


@mcp.tool
async def get_health_report(input: HealthReportInput) -> HealthReportResult:
    """Summarize catalog health."""
    orchestrator = await get_orchestrator()
    return HealthReportResult(report=orchestrator.monitor.generate_health_report(input.period_days))


@mcp.tool
async def start_health_monitoring() -> MonitoringResult:
    """Start periodic health checks."""
    orchestrator = await get_orchestrator()
    await orchestrator.start_health_monitoring()
    return MonitoringResult(monitoring=orchestrator.monitor.is_monitoring)


@mcp.tool
async def stop_health_monitoring() -> MonitoringResult:
    """Stop periodic health checks."""
    orchestrator = await get_orchestrator()
    await orchestrator.stop_health_monitoring()
    return MonitoringResult(monitoring=orchestrator.monitor.is_monitoring)


def main() -> None:
    """Run the MCP server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
