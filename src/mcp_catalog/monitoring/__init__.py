"""Health monitoring and health math."""

from mcp_catalog.monitoring.health_monitor import HealthCheckStats, HealthMonitor, HealthReading
from mcp_catalog.monitoring.trends import (
    exponential_smoothing,
    half_split_trend,
    health_status,
    reliability_score,
    smoothed_trend,
)

__all__ = [
    "HealthCheckStats",
    "HealthMonitor",
    "HealthReading",
    "exponential_smoothing",
    "half_split_trend",
    "health_status",
    "reliability_score",
    "smoothed_trend",
]
