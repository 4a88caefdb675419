"""Tests for the failure taxonomy."""

from __future__ import annotations

import pytest

from mcp_catalog.errors import (
    CatalogError,
    ConfigurationError,
    FailureType,
    NotFoundError,
    QuotaExceededError,
    StorageConflictError,
    diagnose_failure,
)


class TestDiagnoseFailure:
    """Typed errors carry their own type; others are keyword-matched."""

    @pytest.mark.parametrize(
        ("exc", "expected"),
        [
            (QuotaExceededError("search exhausted", resource="search"), FailureType.QUOTA_EXCEEDED),
            (NotFoundError("gone"), FailureType.NOT_FOUND),
            (StorageConflictError("locked"), FailureType.STORAGE_CONFLICT),
            (ConfigurationError("bad"), FailureType.CONFIGURATION),
        ],
    )
    def test_typed_errors(self, exc: CatalogError, expected: FailureType) -> None:
        """Catalog errors report their declared failure type."""
        assert diagnose_failure(exc) is expected

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("HTTP 429 Too Many Requests", FailureType.QUOTA_EXCEEDED),
            ("Connection reset by peer", FailureType.TRANSIENT_NETWORK),
            ("file not found", FailureType.NOT_FOUND),
            ("could not decode payload", FailureType.PARSE_FAILURE),
            ("sqlite database is locked", FailureType.STORAGE_CONFLICT),
            ("something odd", FailureType.UNKNOWN),
        ],
    )
    def test_keyword_fallback(self, message: str, expected: FailureType) -> None:
        """Untyped exceptions are classified from their message."""
        assert diagnose_failure(RuntimeError(message)) is expected

    def test_quota_error_keeps_resource(self) -> None:
        """QuotaExceededError records which quota ran out."""
        exc = QuotaExceededError("exhausted", resource="search", retry_after=12.0)
        assert exc.resource == "search"
        assert exc.retry_after == 12.0
        assert isinstance(exc, CatalogError)
