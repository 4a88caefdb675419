"""Fusion of scanner detections with directory servers."""

from mcp_catalog.nodes.fusion.merger import DataMerger, MatchedPair, MergeStats, infer_server_type
from mcp_catalog.nodes.fusion.similarity import (
    MatchSide,
    capability_overlap,
    jaccard,
    match_reasons,
    match_score,
    normalize_url,
)

__all__ = [
    "DataMerger",
    "MatchSide",
    "MatchedPair",
    "MergeStats",
    "capability_overlap",
    "infer_server_type",
    "jaccard",
    "match_reasons",
    "match_score",
    "normalize_url",
]
