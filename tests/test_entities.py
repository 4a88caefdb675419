"""Tests for entity models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from mcp_catalog.entities.catalog import DiscoveryRun, MergedRecord, Provenance
from mcp_catalog.entities.detection import Classification, ConfidenceBand, Detection, DetectionThresholds
from mcp_catalog.entities.directory import DirectoryServer, ServerFilters
from mcp_catalog.entities.repository import Repository, parse_timestamp


class TestDetectionThresholds:
    """Tests for band boundaries and classification labels."""

    def test_high_band(self) -> None:
        """85 is high and a definite server."""
        thresholds = DetectionThresholds.normal()
        assert thresholds.band_for(85) is ConfidenceBand.HIGH
        assert thresholds.classification_for(85) is Classification.DEFINITE

    def test_band_boundaries_inclusive(self) -> None:
        """Each threshold belongs to the band it opens."""
        thresholds = DetectionThresholds.normal()
        assert thresholds.band_for(70) is ConfidenceBand.HIGH
        assert thresholds.band_for(69) is ConfidenceBand.MEDIUM
        assert thresholds.band_for(50) is ConfidenceBand.MEDIUM
        assert thresholds.band_for(30) is ConfidenceBand.LOW
        assert thresholds.band_for(10) is ConfidenceBand.MINIMAL

    def test_below_minimal(self) -> None:
        """5 is no band and not an MCP server."""
        thresholds = DetectionThresholds.normal()
        assert thresholds.band_for(5) is ConfidenceBand.NONE
        assert thresholds.classification_for(5) is Classification.NOT_MCP

    def test_strict_profile_raises_every_boundary(self) -> None:
        """The strict profile shifts 75 down to medium."""
        strict = DetectionThresholds.strict()
        assert (strict.high, strict.medium, strict.low, strict.minimal) == (80, 60, 40, 20)
        assert strict.band_for(75) is ConfidenceBand.MEDIUM

    def test_unordered_thresholds_rejected(self) -> None:
        """Thresholds must be strictly decreasing."""
        with pytest.raises(ValidationError):
            DetectionThresholds(high=50, medium=60, low=30, minimal=10)


class TestDetection:
    """Tests for the Detection model."""

    def test_confidence_clamped(self) -> None:
        """Confidence is always an integer within 0..100."""
        assert Detection(full_name="a/b", confidence=150).confidence == 100
        assert Detection(full_name="a/b", confidence=-7).confidence == 0
        assert Detection(full_name="a/b", confidence=42.6).confidence == 43


class TestMergedRecord:
    """Tests for merged record provenance."""

    def test_scanner_only(self) -> None:
        """A record with only a repository link is scanner provenance."""
        record = MergedRecord(
            merge_key=MergedRecord.key_for("acme/server", None),
            repository_full_name="acme/server",
            name="server",
            data_sources=Provenance.SCANNER,
        )
        assert record.merge_key == "repo:acme/server"

    def test_directory_only_key(self) -> None:
        """Without a repository the key uses the directory id."""
        assert MergedRecord.key_for(None, "srv-1") == "dir:srv-1"
        assert MergedRecord.key_for("acme/server", "srv-1") == "repo:acme/server"

    def test_both_requires_match_score(self) -> None:
        """A fused record without a match score is invalid."""
        with pytest.raises(ValidationError):
            MergedRecord(
                merge_key="repo:acme/server",
                repository_full_name="acme/server",
                directory_server_id="srv-1",
                name="server",
                data_sources=Provenance.BOTH,
            )

    def test_provenance_must_match_links(self) -> None:
        """data_sources is checked against which links are present."""
        with pytest.raises(ValidationError):
            MergedRecord(
                merge_key="dir:srv-1",
                directory_server_id="srv-1",
                name="server",
                data_sources=Provenance.SCANNER,
            )

    def test_record_needs_a_link(self) -> None:
        """A record linked to nothing is rejected."""
        with pytest.raises(ValidationError):
            MergedRecord(merge_key="x", name="server", data_sources=Provenance.SCANNER)


class TestRepository:
    """Tests for GitHub payload mapping."""

    def test_from_github(self) -> None:
        """Search items map onto repositories."""
        repo = Repository.from_github(
            {
                "full_name": "acme/files-mcp",
                "owner": {"login": "acme"},
                "name": "files-mcp",
                "description": None,
                "stargazers_count": 12,
                "license": {"spdx_id": "MIT"},
                "updated_at": "2025-01-02T03:04:05Z",
            },
            search_pattern="mcp-",
        )
        assert repo.owner == "acme"
        assert repo.description == ""
        assert repo.stars == 12
        assert repo.license == "MIT"
        assert repo.html_url == "https://github.com/acme/files-mcp"
        assert repo.updated_at is not None and repo.updated_at.tzinfo is not None
        assert repo.search_pattern == "mcp-"

    def test_parse_timestamp_tolerates_garbage(self) -> None:
        """Unparseable timestamps become None."""
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp("") is None


class TestDirectoryModels:
    """Tests for directory payload mapping."""

    def test_from_api_camel_case(self) -> None:
        """camelCase payloads map onto DirectoryServer."""
        server = DirectoryServer.from_api(
            {
                "id": 7,
                "name": "Files",
                "healthScore": 91,
                "isActive": False,
                "repositoryUrl": "https://github.com/acme/files",
                "installation": {"npm": "npm install files"},
            }
        )
        assert server.id == "7"
        assert server.health_score == 91
        assert server.active is False
        assert server.repository_url == "https://github.com/acme/files"
        assert server.installation == "npm install files"

    def test_filters_to_params(self) -> None:
        """Only set filters are sent, booleans lowercased."""
        params = ServerFilters(verified=True, page=2, limit=50).to_params()
        assert params == {"page": 2, "limit": 50, "verified": "true"}


class TestDiscoveryRun:
    """Tests for run counters."""

    def test_bump(self) -> None:
        """bump creates and increments counters."""
        run = DiscoveryRun(run_id="r1")
        run.bump("analyzed")
        run.bump("analyzed", 2)
        assert run.counters == {"analyzed": 3}
