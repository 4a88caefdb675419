"""Pure health math: status, reliability and trend."""

from __future__ import annotations

import math
from statistics import fmean
from typing import TYPE_CHECKING

from mcp_catalog.entities.catalog import HealthStatus
from mcp_catalog.entities.directory import HealthTrend

if TYPE_CHECKING:
    from collections.abc import Sequence

# Relative change below this is "stable".
STABLE_CHANGE = 0.10


def health_status(score: float, *, critical: float = 50.0, warning: float = 70.0) -> HealthStatus:
    """Healthy at or above ``warning``, warning at or above ``critical``."""
    if score >= warning:
        return HealthStatus.HEALTHY
    if score >= critical:
        return HealthStatus.WARNING
    return HealthStatus.CRITICAL


def half_split_trend(scores: Sequence[float]) -> HealthTrend:
    """Compare the mean of the later half of ``scores`` with the earlier half.

    ``scores`` is oldest first. With an odd count the middle point belongs
    to the later half. Fewer than two points is stable.
    """
    if len(scores) < 2:
        return HealthTrend.STABLE
    middle = len(scores) // 2
    earlier, later = fmean(scores[:middle]), fmean(scores[middle:])
    if later > earlier:
        return HealthTrend.IMPROVING
    if later < earlier:
        return HealthTrend.DECLINING
    return HealthTrend.STABLE


def exponential_smoothing(values: Sequence[float], alpha: float) -> list[float]:
    """Seeded with the first value, then ``alpha * x + (1 - alpha) * previous``."""
    if not values:
        return []
    smoothed = [float(values[0])]
    for value in values[1:]:
        smoothed.append(alpha * value + (1 - alpha) * smoothed[-1])
    return smoothed


def smoothed_trend(values: Sequence[float], alpha: float, min_points: int) -> HealthTrend:
    """Trend from the first and last smoothed values of an oldest-first series."""
    if len(values) < max(min_points, 2):
        return HealthTrend.UNKNOWN
    smoothed = exponential_smoothing(values, alpha)
    first, last = smoothed[0], smoothed[-1]
    if first == 0:
        change = 0.0 if last == 0 else math.copysign(math.inf, last)
    else:
        change = (last - first) / abs(first)
    if abs(change) < STABLE_CHANGE:
        return HealthTrend.STABLE
    return HealthTrend.IMPROVING if change > 0 else HealthTrend.DECLINING


def reliability_score(scores_newest_first: Sequence[float]) -> float | None:
    """Recency-weighted average with weight ``1 / sqrt(rank)``, rank 1 newest."""
    if not scores_newest_first:
        return None
    weighted = 0.0
    total_weight = 0.0
    for rank, score in enumerate(scores_newest_first, start=1):
        weight = 1 / math.sqrt(rank)
        weighted += score * weight
        total_weight += weight
    return round(weighted / total_weight, 2)
