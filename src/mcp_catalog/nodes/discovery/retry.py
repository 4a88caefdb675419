"""Tenacity retry policies for the GitHub and directory clients."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type
from tenacity.stop import stop_base
from tenacity.wait import wait_base

from mcp_catalog.errors import QuotaExceededError

if TYPE_CHECKING:
    from tenacity import RetryCallState


@dataclass(frozen=True)
class WaitRetryAfterOrBackoff(wait_base):
    """Wait for a quota error's ``retry_after``, else back off exponentially.

    Attributes:
        initial: First backoff delay in seconds.
        max_s: Upper bound on any single wait.
    """

    initial: float
    max_s: float = float("inf")

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome else None
        if isinstance(exc, QuotaExceededError) and exc.retry_after is not None:
            return max(0.0, min(exc.retry_after, self.max_s))
        return min(self.max_s, self.initial * (2 ** (retry_state.attempt_number - 1)))


class StopAfterFailures(stop_base):
    """Stop once one kind of failure has happened ``limit`` times.

    Limits are checked in insertion order, so subclasses must come before
    their bases. Counters live on the instance: build one per request.
    """

    def __init__(self, limits: dict[type[BaseException], int]) -> None:
        self.limits = limits
        self._counts: dict[type[BaseException], int] = {}

    def __call__(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome else None
        for kind, limit in self.limits.items():
            if isinstance(exc, kind):
                self._counts[kind] = self._counts.get(kind, 0) + 1
                return self._counts[kind] >= limit
        return True


def build_retrying(
    limits: dict[type[BaseException], int],
    *,
    initial: float,
    max_wait: float = float("inf"),
    log: logging.Logger | None = None,
) -> AsyncRetrying:
    """Retry the failures named in ``limits`` and re-raise the last one."""
    return AsyncRetrying(
        retry=retry_if_exception_type(tuple(limits)),
        stop=StopAfterFailures(limits),
        wait=WaitRetryAfterOrBackoff(initial=initial, max_s=max_wait),
        before_sleep=before_sleep_log(log or logging.getLogger(__name__), logging.WARNING),
        reraise=True,
    )
