"""Memory package."""

from mcp_catalog.memory.catalog_store import CatalogStore, ScannerCandidate

__all__ = [
    "CatalogStore",
    "ScannerCandidate",
]
