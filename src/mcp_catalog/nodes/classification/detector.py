"""Confidence Classifier: turns an analysis profile into a :class:`Detection`."""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from mcp_catalog.entities.detection import (
    ConfidenceBand,
    Detection,
    DetectionSummary,
    DetectionThresholds,
    EdgeCase,
    IndicatorKind,
    IndicatorMatch,
)
from mcp_catalog.nodes.classification.rules import DEFAULT_RULES, DetectionRules, IndicatorRule

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from mcp_catalog.entities.analysis import AnalysisProfile

logger = logging.getLogger(__name__)

_POSITIVE_KINDS = {IndicatorKind.STRONG, IndicatorKind.POSITIVE, IndicatorKind.WEAK, IndicatorKind.FILE}


class _Tally:
    """Mutable state for one classification."""

    def __init__(self) -> None:
        self.positive: list[IndicatorMatch] = []
        self.negative: list[IndicatorMatch] = []
        self.edge_cases: list[EdgeCase] = []
        self.negative_patterns = 0

    def add(self, indicator: str, weight: int, reason: str, kind: IndicatorKind) -> int:
        match = IndicatorMatch(indicator=indicator, weight=weight, reason=reason, kind=kind)
        (self.negative if weight < 0 else self.positive).append(match)
        return weight

    @property
    def has_positive(self) -> bool:
        return any(m.kind in _POSITIVE_KINDS for m in self.positive)

    def count(self, kind: IndicatorKind) -> int:
        return sum(1 for m in self.positive if m.kind is kind)


class MCPDetector:
    """Rule-based scorer: seed + pattern, file and characteristic passes.

    Args:
        rules: Indicator tables.
        strict_mode: Use the strict threshold profile.
        thresholds: Explicit thresholds, overriding ``strict_mode``.
        clock: Returns "now", for activity checks.
    """

    def __init__(
        self,
        rules: DetectionRules | None = None,
        *,
        strict_mode: bool = False,
        thresholds: DetectionThresholds | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.rules = rules or DEFAULT_RULES
        self.strict_mode = strict_mode
        self.thresholds = thresholds or (DetectionThresholds.strict() if strict_mode else DetectionThresholds.normal())
        self._clock = clock or (lambda: datetime.now(tz=UTC))
        self._official = re.compile(self.rules.boosts.official_namespace, re.IGNORECASE)

    def classify(self, profile: AnalysisProfile) -> Detection:
        """Score a profile and derive band, label and candidacy."""
        tally = _Tally()
        confidence = profile.seed_confidence
        confidence += self._pattern_pass(profile, tally)
        confidence += self._file_pass(profile, tally)
        confidence += self._characteristic_pass(profile, tally)
        confidence = self._edge_cases(profile, confidence, tally)
        confidence = self._final_adjustments(profile, confidence, tally)

        # Negative dominance also caps the boosts, the official bonus included.
        if tally.negative_patterns and not tally.has_positive:
            confidence = min(confidence, self.thresholds.low - 1)

        confidence = max(0, min(100, confidence))
        detection = Detection(
            full_name=profile.full_name,
            confidence=confidence,
            band=self.thresholds.band_for(confidence),
            classification=self.thresholds.classification_for(confidence),
            is_candidate=confidence >= self.thresholds.minimal,
            seed_confidence=profile.seed_confidence,
            positive_indicators=tally.positive,
            negative_indicators=tally.negative,
            edge_cases=tally.edge_cases,
            strict_mode=self.strict_mode,
        )
        logger.debug(
            "Detection for %s: confidence=%d band=%s", profile.full_name, detection.confidence, detection.band
        )
        return detection

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    @staticmethod
    def _pattern_text(profile: AnalysisProfile) -> str:
        parts = [
            profile.traits.description,
            profile.traits.name,
            profile.package.description if profile.package else "",
            *profile.indicators,
        ]
        return " ".join(p for p in parts if p).lower()

    @staticmethod
    def _matches(rule: IndicatorRule, text: str) -> bool:
        return re.search(rule.pattern, text, re.IGNORECASE) is not None

    def _pattern_pass(self, profile: AnalysisProfile, tally: _Tally) -> int:
        text = self._pattern_text(profile)
        delta = 0

        for rule in self.rules.strong:
            if self._matches(rule, text):
                delta += tally.add(rule.pattern, rule.weight, rule.description, IndicatorKind.STRONG)
        for rule in self.rules.positive:
            if self._matches(rule, text):
                delta += tally.add(rule.pattern, rule.weight, rule.description, IndicatorKind.POSITIVE)

        weak_hits = 0
        for rule in self.rules.weak:
            if self._matches(rule, text):
                weak_hits += 1
                tally.add(rule.pattern, rule.weight, rule.description, IndicatorKind.WEAK)
        delta += min(weak_hits * self.rules.weak_per_match, self.rules.weak_cap)

        for rule in self.rules.negative:
            if self._matches(rule, text):
                tally.negative_patterns += 1
                delta += tally.add(rule.pattern, rule.weight, rule.description, IndicatorKind.NEGATIVE)

        return delta

    def _file_pass(self, profile: AnalysisProfile, tally: _Tally) -> int:
        delta = 0
        listing = {name.lower() for name in profile.traits.top_level_files}

        for rule in (*self.rules.file_positive, *self.rules.file_negative):
            if rule.listing_only:
                if rule.file.lower() in listing:
                    delta += tally.add(rule.file, rule.weight, rule.description, IndicatorKind.FILE)
                continue
            content = profile.file_excerpts.get(rule.file)
            if content is None:
                continue
            for pattern in rule.patterns:
                if re.search(pattern, content, re.IGNORECASE):
                    delta += tally.add(f"{rule.file}: {pattern}", rule.weight, rule.description, IndicatorKind.FILE)

        return delta

    def _characteristic_pass(self, profile: AnalysisProfile, tally: _Tally) -> int:
        weights = self.rules.characteristics
        traits = profile.traits
        docs = profile.documentation
        delta = 0

        def check(condition: bool, name: str, weight: int, reason: str) -> None:
            nonlocal delta
            if condition:
                delta += tally.add(name, weight, reason, IndicatorKind.CHARACTERISTIC)

        has_executable = bool(profile.package and profile.package.has_executable) or any(
            "server" in f.lower() for f in profile.mcp_relevant_files
        )
        has_config = docs.has_config_example or any(
            "config" in f.lower() or "claude" in f.lower() for f in profile.mcp_relevant_files
        )
        age_days = (self._clock() - traits.updated_at).days if traits.updated_at else None

        check(has_executable, "server_executable", weights.server_executable, "Has server executable")
        check(has_config, "config_example", weights.config_example, "Has config examples")
        check(docs.has_installation, "install_instructions", weights.install_instructions, "Has install instructions")
        check(
            age_days is not None and age_days < weights.recent_days,
            "recent_activity",
            weights.recent_activity,
            "Recently active",
        )
        check(docs.has_tests, "tests", weights.has_tests, "Has test suite")
        check(traits.archived, "archived", weights.archived, "Repository is archived")
        check(
            age_days is not None and age_days > weights.inactive_days,
            "no_activity",
            weights.no_activity,
            "No recent activity (>2 years)",
        )
        check(traits.fork, "fork", weights.fork, "Is a fork")
        check(traits.size < 1, "very_small", weights.very_small, "Very small repository (<1KB)")
        check(not traits.description, "no_description", weights.no_description, "No description")

        return delta

    def _edge_cases(self, profile: AnalysisProfile, confidence: int, tally: _Tally) -> int:
        rules = self.rules.edge_cases
        combined = f"{profile.full_name} {profile.traits.description}".lower()

        def hit(patterns: tuple[str, ...]) -> bool:
            return any(re.search(p, combined) for p in patterns)

        if hit(rules.monorepo):
            tally.edge_cases.append(EdgeCase.MONOREPO)

        if hit(rules.example):
            tally.edge_cases.append(EdgeCase.EXAMPLE)
            if confidence < self.thresholds.medium:
                confidence += tally.add(
                    "example", rules.example_penalty, "Appears to be an example/demo project", IndicatorKind.EDGE_CASE
                )

        if hit(rules.documentation):
            tally.edge_cases.append(EdgeCase.DOCUMENTATION)
            confidence += tally.add(
                "documentation",
                rules.documentation_penalty,
                "Appears to be a documentation repository",
                IndicatorKind.EDGE_CASE,
            )

        return confidence

    def _final_adjustments(self, profile: AnalysisProfile, confidence: int, tally: _Tally) -> int:
        boosts = self.rules.boosts

        if tally.count(IndicatorKind.STRONG) >= boosts.multiple_strong_min:
            confidence += tally.add(
                "multiple_strong", boosts.multiple_strong, "Multiple strong MCP indicators present", IndicatorKind.BOOST
            )

        docs = profile.documentation
        if docs.has_readme and docs.has_installation and tally.has_positive:
            confidence += tally.add(
                "documented", boosts.documented, "Well-documented with MCP indicators", IndicatorKind.BOOST
            )

        if not tally.has_positive and confidence > 0:
            confidence += tally.add(
                "no_positive", boosts.no_positive_penalty, "No clear MCP indicators found", IndicatorKind.BOOST
            )

        package_name = profile.package.name if profile.package else ""
        if package_name and self._official.match(package_name):
            confidence += tally.add("official_package", boosts.official_package, "Official MCP package", IndicatorKind.BOOST)

        return confidence

    # ------------------------------------------------------------------
    # Batch helpers
    # ------------------------------------------------------------------

    def classify_many(self, profiles: Iterable[AnalysisProfile]) -> list[Detection]:
        return [self.classify(profile) for profile in profiles]

    @staticmethod
    def filter_by_confidence(detections: Iterable[Detection], min_confidence: int) -> list[Detection]:
        """Detections at or above ``min_confidence``, highest first."""
        kept = [d for d in detections if d.confidence >= min_confidence]
        return sorted(kept, key=lambda d: d.confidence, reverse=True)

    def high_confidence(self, detections: Iterable[Detection]) -> list[Detection]:
        return self.filter_by_confidence(detections, self.thresholds.high)

    @staticmethod
    def summarize(detections: Iterable[Detection]) -> DetectionSummary:
        """Band histogram, classifications, edge cases and detection rate."""
        detections = list(detections)
        summary = DetectionSummary(total=len(detections))
        if not detections:
            return summary

        classifications: Counter[str] = Counter()
        edge_cases: Counter[str] = Counter()
        for detection in detections:
            if detection.is_candidate:
                summary.candidates += 1
            summary.bands[ConfidenceBand(detection.band).value] += 1
            classifications[detection.classification.value] += 1
            edge_cases.update(e.value for e in detection.edge_cases)

        summary.classifications = dict(classifications.most_common())
        summary.edge_cases = dict(edge_cases.most_common())
        summary.average_confidence = round(sum(d.confidence for d in detections) / len(detections), 2)
        summary.detection_rate = round(summary.candidates / len(detections) * 100, 2)
        return summary
