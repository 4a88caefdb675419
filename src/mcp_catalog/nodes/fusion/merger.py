"""Fuse scanner detections with directory servers into unified catalog records."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from mcp_catalog.config import MergeConfig
from mcp_catalog.entities.catalog import MergedRecord, Provenance
from mcp_catalog.errors import StorageConflictError
from mcp_catalog.nodes.fusion.similarity import MatchSide, match_reasons, match_score

if TYPE_CHECKING:
    from mcp_catalog.entities.analysis import AnalysisProfile
    from mcp_catalog.entities.directory import DirectoryServer
    from mcp_catalog.memory.catalog_store import CatalogStore, ScannerCandidate

logger = logging.getLogger(__name__)

CATEGORY_SERVER_TYPES: dict[str, str] = {
    "development": "development-tools",
    "productivity": "productivity",
    "data": "data-analysis",
    "communication": "communication",
    "ai-ml": "ai-integration",
    "automation": "automation",
    "content": "content-management",
    "integration": "api-integration",
}


def infer_server_type(category: str | None) -> str:
    return CATEGORY_SERVER_TYPES.get(category or "", "general")


def _profile_language(profile: AnalysisProfile | None) -> str | None:
    if profile is None or profile.language == "unknown":
        return None
    return profile.language


@dataclass
class MatchedPair:
    """A scanner candidate paired with the directory server it matched."""

    scanner: ScannerCandidate
    directory: DirectoryServer
    score: float
    reasons: list[str] = field(default_factory=list)


class MergeStats(BaseModel):
    """Outcome of one merge run."""

    scanner_total: int = 0
    directory_total: int = 0
    matched: int = 0
    scanner_only: int = 0
    directory_only: int = 0
    created: int = 0
    updated: int = 0
    replaced: int = 0
    pruned: int = 0
    errors: int = 0
    duration_seconds: float = 0.0


class DataMerger:
    """Greedy one-to-one fusion of the two catalogs.

    Each scanner candidate, in store order, takes the best remaining
    directory server scoring at least ``min_match_score``; ties keep the
    first server encountered. Matched servers leave the pool. Every record
    is upserted by its merge key, so re-running a merge is idempotent.
    """

    def __init__(self, store: CatalogStore, config: MergeConfig | None = None) -> None:
        self.store = store
        self.config = config or MergeConfig()

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    @staticmethod
    def scanner_side(candidate: ScannerCandidate) -> MatchSide:
        repo = candidate.repository
        capabilities = [str(cap) for cap in candidate.profile.capabilities] if candidate.profile else []
        return MatchSide(
            name=repo.name,
            description=repo.description,
            url=repo.clone_url or repo.html_url,
            capabilities=capabilities,
        )

    @staticmethod
    def directory_side(server: DirectoryServer) -> MatchSide:
        return MatchSide(
            name=server.name,
            description=server.description,
            url=server.repository_url,
            capabilities=list(server.capabilities),
        )

    def find_matches(
        self, candidates: list[ScannerCandidate], servers: list[DirectoryServer]
    ) -> tuple[list[MatchedPair], list[ScannerCandidate], list[DirectoryServer]]:
        """Pair scanner candidates with directory servers.

        Returns:
            Matched pairs, unmatched scanner candidates, unmatched servers.
        """
        threshold = self.config.capability_fuzz_threshold
        remaining = list(servers)
        sides = {server.id: self.directory_side(server) for server in servers}
        matches: list[MatchedPair] = []
        unmatched: list[ScannerCandidate] = []

        for candidate in candidates:
            side = self.scanner_side(candidate)
            best: DirectoryServer | None = None
            best_score = 0.0
            for server in remaining:
                score = match_score(side, sides[server.id], threshold)
                if score >= self.config.min_match_score and score > best_score:
                    best, best_score = server, score

            if best is None:
                unmatched.append(candidate)
                continue
            remaining.remove(best)
            matches.append(
                MatchedPair(
                    scanner=candidate,
                    directory=best,
                    score=best_score,
                    reasons=match_reasons(side, sides[best.id], threshold),
                )
            )

        return matches, unmatched, remaining

    # ------------------------------------------------------------------
    # Record construction
    # ------------------------------------------------------------------

    def fused_confidence(self, scanner_confidence: int, server: DirectoryServer) -> int:
        confidence = scanner_confidence
        if server.verified:
            confidence += self.config.confidence_boost
        if server.health_score:
            confidence += int(server.health_score // 10)
        return min(confidence, 100)

    @staticmethod
    def directory_confidence(server: DirectoryServer) -> int:
        confidence = 50
        if server.verified:
            confidence += 30
        if (server.health_score or 0) > 80:
            confidence += 15
        if server.downloads > 1000:
            confidence += 10
        if server.stars > 50:
            confidence += 5
        return min(confidence, 100)

    @staticmethod
    def _merge_capabilities(*groups: list[str]) -> list[str]:
        merged: list[str] = []
        for group in groups:
            for cap in group:
                cap = cap.lower()
                if cap not in merged:
                    merged.append(cap)
        return merged

    def fuse(self, pair: MatchedPair) -> MergedRecord:
        candidate, server = pair.scanner, pair.directory
        repo, profile = candidate.repository, candidate.profile
        prefer_directory = self.config.prefer_directory and server.verified

        def pick(directory_value: str, scanner_value: str) -> str:
            first, second = (directory_value, scanner_value) if prefer_directory else (scanner_value, directory_value)
            return first or second

        scanner_caps = [str(cap) for cap in profile.capabilities] if profile else []
        package_name = profile.package.name if profile and profile.package else ""
        fields = dict(
            merge_key=MergedRecord.key_for(repo.full_name, server.id),
            repository_full_name=repo.full_name,
            directory_server_id=server.id,
            name=pick(server.name, repo.name),
            description=pick(server.description, repo.description),
            url=repo.html_url or server.repository_url,
            language=server.language or _profile_language(profile) or repo.language,
            category=server.category,
            server_type=(profile.server_type if profile and profile.server_type != "general" else None)
            or infer_server_type(server.category),
            capabilities=self._merge_capabilities(scanner_caps, server.capabilities),
            stars=repo.stars,
            combined_stars=repo.stars + server.stars,
            downloads=server.downloads,
            package_name=package_name or server.name,
            installation=server.installation or (profile.installation_method if profile else ""),
            confidence=self.fused_confidence(candidate.detection.confidence, server),
            verified=server.verified,
            health_score=server.health_score,
            health_trend=server.health_trend,
            match_score=pair.score,
            match_reasons=pair.reasons,
            data_sources=Provenance.BOTH,
            last_updated=server.last_updated or repo.updated_at,
        )
        return MergedRecord.model_validate(fields, context={"min_match_score": self.config.min_match_score})

    @staticmethod
    def scanner_only(candidate: ScannerCandidate) -> MergedRecord:
        repo, profile = candidate.repository, candidate.profile
        installation = profile.installation_method if profile and profile.installation_method != "unknown" else ""
        return MergedRecord(
            merge_key=MergedRecord.key_for(repo.full_name, None),
            repository_full_name=repo.full_name,
            name=repo.name,
            description=repo.description,
            url=repo.html_url,
            language=_profile_language(profile) or repo.language,
            server_type=profile.server_type if profile else "general",
            capabilities=[str(cap) for cap in profile.capabilities] if profile else [],
            stars=repo.stars,
            combined_stars=repo.stars,
            package_name=profile.package.name if profile and profile.package else "",
            installation=installation,
            confidence=candidate.detection.confidence,
            data_sources=Provenance.SCANNER,
            last_updated=repo.updated_at,
        )

    def directory_only(self, server: DirectoryServer) -> MergedRecord:
        return MergedRecord(
            merge_key=MergedRecord.key_for(None, server.id),
            directory_server_id=server.id,
            name=server.name,
            description=server.description,
            url=server.repository_url or server.homepage,
            language=server.language,
            category=server.category,
            server_type=infer_server_type(server.category),
            capabilities=self._merge_capabilities(server.capabilities),
            stars=server.stars,
            combined_stars=server.stars,
            downloads=server.downloads,
            package_name=server.name,
            installation=server.installation,
            confidence=self.directory_confidence(server),
            verified=server.verified,
            health_score=server.health_score,
            health_trend=server.health_trend,
            data_sources=Provenance.DIRECTORY,
            last_updated=server.last_updated,
        )

    # ------------------------------------------------------------------
    # Merge run
    # ------------------------------------------------------------------

    def _store(self, record: MergedRecord, stats: MergeStats) -> None:
        try:
            if self.store.upsert_merged_record(record):
                stats.created += 1
            else:
                stats.updated += 1
        except StorageConflictError as exc:
            stats.errors += 1
            logger.warning("Failed to store merged record %s: %s", record.merge_key, exc)

    def merge(self) -> MergeStats:
        """Load both catalogs, match them and upsert every unified record."""
        started = time.monotonic()
        candidates = self.store.list_scanner_candidates(self.config.min_scanner_confidence)
        servers = self.store.list_directory_servers(active_only=True)
        stats = MergeStats(scanner_total=len(candidates), directory_total=len(servers))
        logger.info("Merging %d scanner candidates with %d directory servers", len(candidates), len(servers))
        if not candidates and not servers:
            logger.warning("No data to merge")

        matches, unmatched, remaining = self.find_matches(candidates, servers)
        stats.matched = len(matches)
        stats.scanner_only = len(unmatched)
        stats.directory_only = len(remaining)

        produced: set[str] = set()
        for pair in matches:
            record = self.fuse(pair)
            produced.add(record.merge_key)
            self._store(record, stats)
            # A server that was directory-only before now lives under the repository key.
            if self.store.delete_merged_record(MergedRecord.key_for(None, pair.directory.id)):
                stats.replaced += 1
        for record in [self.scanner_only(c) for c in unmatched] + [self.directory_only(s) for s in remaining]:
            produced.add(record.merge_key)
            self._store(record, stats)

        stats.pruned = self._prune(produced)
        self._update_provenance(stats)
        stats.duration_seconds = round(time.monotonic() - started, 3)
        logger.info(
            "Merge complete: %d matched, %d scanner-only, %d directory-only",
            stats.matched,
            stats.scanner_only,
            stats.directory_only,
        )
        return stats

    def _prune(self, produced: set[str]) -> int:
        """Delete merged records this pass did not produce.

        Each input lands in exactly one record, so a fused record whose
        repository dropped below the scanner threshold must not outlive
        the directory-only record its server now has.
        """
        pruned = 0
        for key in self.store.list_merged_keys():
            if key not in produced and self.store.delete_merged_record(key):
                pruned += 1
        if pruned:
            logger.info("Pruned %d stale merged records", pruned)
        return pruned

    def _update_provenance(self, stats: MergeStats) -> None:
        self.store.set_metadata("last_merge_time", datetime.now(tz=UTC).isoformat())
        self.store.set_metadata("merge_stats", stats.model_dump_json())
        for source, count in self.store.count_merged_records().items():
            self.store.set_metadata(f"merged_records_{source}", str(count))

    def get_merged_stats(self) -> dict[str, Any]:
        records = self.store.list_merged_records()
        last_stats = self.store.get_metadata("merge_stats")
        return {
            "total": len(records),
            "verified": sum(1 for r in records if r.verified),
            "high_confidence": sum(1 for r in records if r.confidence >= 70),
            "sources": self.store.count_merged_records(),
            "last_merge": self.store.get_metadata("last_merge_time"),
            "last_stats": json.loads(last_stats) if last_stats else None,
        }
