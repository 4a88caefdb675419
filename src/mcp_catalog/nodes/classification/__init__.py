"""Confidence classification nodes."""

from mcp_catalog.nodes.classification.detector import MCPDetector
from mcp_catalog.nodes.classification.rules import DEFAULT_RULES, DetectionRules, FileRule, IndicatorRule

__all__ = [
    "DEFAULT_RULES",
    "DetectionRules",
    "FileRule",
    "IndicatorRule",
    "MCPDetector",
]
