"""Detector output: bounded confidence, band and classification."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ConfidenceBand(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    MINIMAL = "minimal"
    NONE = "none"


class Classification(StrEnum):
    DEFINITE = "definite_mcp_server"
    LIKELY = "likely_mcp_server"
    POSSIBLE = "possible_mcp_server"
    WEAK = "weak_mcp_candidate"
    NOT_MCP = "not_mcp_server"


BAND_CLASSIFICATION: dict[ConfidenceBand, Classification] = {
    ConfidenceBand.HIGH: Classification.DEFINITE,
    ConfidenceBand.MEDIUM: Classification.LIKELY,
    ConfidenceBand.LOW: Classification.POSSIBLE,
    ConfidenceBand.MINIMAL: Classification.WEAK,
    ConfidenceBand.NONE: Classification.NOT_MCP,
}


class EdgeCase(StrEnum):
    MONOREPO = "monorepo"
    EXAMPLE = "example"
    DOCUMENTATION = "documentation"


class IndicatorKind(StrEnum):
    STRONG = "strong"
    POSITIVE = "positive"
    WEAK = "weak"
    NEGATIVE = "negative"
    FILE = "file"
    CHARACTERISTIC = "characteristic"
    EDGE_CASE = "edge_case"
    BOOST = "boost"


class DetectionThresholds(BaseModel):
    """Band boundaries, swappable between normal and strict profiles."""

    model_config = ConfigDict(frozen=True)

    high: int = 70
    medium: int = 50
    low: int = 30
    minimal: int = 10

    @model_validator(mode="after")
    def _check_order(self) -> DetectionThresholds:
        if not (self.high > self.medium > self.low > self.minimal >= 0):
            msg = "thresholds must satisfy high > medium > low > minimal >= 0"
            raise ValueError(msg)
        return self

    @classmethod
    def normal(cls) -> DetectionThresholds:
        return cls()

    @classmethod
    def strict(cls) -> DetectionThresholds:
        """Raised thresholds for when false positives cost more than misses."""
        return cls(high=80, medium=60, low=40, minimal=20)

    def band_for(self, confidence: int) -> ConfidenceBand:
        if confidence >= self.high:
            return ConfidenceBand.HIGH
        if confidence >= self.medium:
            return ConfidenceBand.MEDIUM
        if confidence >= self.low:
            return ConfidenceBand.LOW
        if confidence >= self.minimal:
            return ConfidenceBand.MINIMAL
        return ConfidenceBand.NONE

    def classification_for(self, confidence: int) -> Classification:
        return BAND_CLASSIFICATION[self.band_for(confidence)]


class IndicatorMatch(BaseModel):
    """A single weighted signal that moved the confidence."""

    model_config = ConfigDict(frozen=True)

    indicator: str
    weight: int
    reason: str
    kind: IndicatorKind


class Detection(BaseModel):
    """Final judgment for one analysis profile."""

    full_name: str
    confidence: int = 0
    band: ConfidenceBand = ConfidenceBand.NONE
    classification: Classification = Classification.NOT_MCP
    is_candidate: bool = False
    seed_confidence: int = 0
    positive_indicators: list[IndicatorMatch] = Field(default_factory=list)
    negative_indicators: list[IndicatorMatch] = Field(default_factory=list)
    edge_cases: list[EdgeCase] = Field(default_factory=list)
    strict_mode: bool = False
    detected_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: float) -> int:
        return max(0, min(100, round(v)))


class DetectionSummary(BaseModel):
    """Aggregate view over a batch of detections."""

    total: int = 0
    candidates: int = 0
    bands: dict[str, int] = Field(default_factory=lambda: {b.value: 0 for b in ConfidenceBand})
    classifications: dict[str, int] = Field(default_factory=dict)
    edge_cases: dict[str, int] = Field(default_factory=dict)
    average_confidence: float = 0.0
    detection_rate: float = 0.0
