"""Content analysis nodes."""

from mcp_catalog.nodes.analysis.analyzer import ContentAnalyzer
from mcp_catalog.nodes.analysis.manifests import ManifestParser, default_parsers
from mcp_catalog.nodes.analysis.vocabulary import DEFAULT_VOCABULARY, AnalyzerVocabulary, AnalyzerWeights

__all__ = [
    "AnalyzerVocabulary",
    "AnalyzerWeights",
    "ContentAnalyzer",
    "DEFAULT_VOCABULARY",
    "ManifestParser",
    "default_parsers",
]
