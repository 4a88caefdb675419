"""Error taxonomy shared by scanners, sync, fusion and the orchestrator."""

from __future__ import annotations

from enum import StrEnum


class FailureType(StrEnum):
    """Types of pipeline failures."""

    QUOTA_EXCEEDED = "quota_exceeded"
    TRANSIENT_NETWORK = "transient_network"
    NOT_FOUND = "not_found"
    PARSE_FAILURE = "parse_failure"
    STORAGE_CONFLICT = "storage_conflict"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


class CatalogError(Exception):
    """Base class for all catalog errors."""

    failure_type: FailureType = FailureType.UNKNOWN


class QuotaExceededError(CatalogError):
    """An external API rate or abuse limit was exhausted."""

    failure_type = FailureType.QUOTA_EXCEEDED

    def __init__(self, message: str, *, resource: str = "core", retry_after: float | None = None) -> None:
        super().__init__(message)
        self.resource = resource
        self.retry_after = retry_after


class SecondaryRateLimitError(QuotaExceededError):
    """GitHub's secondary (abuse) limit, retried at most once."""


class TransientNetworkError(CatalogError):
    """Timeouts and connection failures that outlived their retries."""

    failure_type = FailureType.TRANSIENT_NETWORK


class NotFoundError(CatalogError):
    """Expected absence of a remote resource."""

    failure_type = FailureType.NOT_FOUND


class ParseFailureError(CatalogError):
    """Malformed manifest or document content."""

    failure_type = FailureType.PARSE_FAILURE


class StorageConflictError(CatalogError):
    """A catalog write failed."""

    failure_type = FailureType.STORAGE_CONFLICT


class ConfigurationError(CatalogError):
    """Invalid run parameters, raised before a run starts."""

    failure_type = FailureType.CONFIGURATION


def diagnose_failure(exc: BaseException) -> FailureType:
    """Diagnose a failure type from an exception.

    Typed catalog errors carry their own type; anything else is matched
    on keywords in its message.
    """
    if isinstance(exc, CatalogError):
        return exc.failure_type

    error_lower = f"{type(exc).__name__} {exc}".lower()

    if any(kw in error_lower for kw in ["rate limit", "403", "429", "too many requests"]):
        return FailureType.QUOTA_EXCEEDED

    if any(kw in error_lower for kw in ["timeout", "connection", "network"]):
        return FailureType.TRANSIENT_NETWORK

    if any(kw in error_lower for kw in ["not found", "404"]):
        return FailureType.NOT_FOUND

    if any(kw in error_lower for kw in ["parse", "decode", "json", "toml", "yaml"]):
        return FailureType.PARSE_FAILURE

    if any(kw in error_lower for kw in ["sqlite", "integrity", "database"]):
        return FailureType.STORAGE_CONFLICT

    return FailureType.UNKNOWN
