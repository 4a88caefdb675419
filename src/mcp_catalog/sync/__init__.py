"""External directory client, data sources and sync."""

from mcp_catalog.sync.data_sources import DataSource, LiveDirectorySource
from mcp_catalog.sync.directory_client import DirectoryClient
from mcp_catalog.sync.directory_sync import DirectorySync
from mcp_catalog.sync.synthetic import SyntheticDirectorySource

__all__ = [
    "DataSource",
    "DirectoryClient",
    "DirectorySync",
    "LiveDirectorySource",
    "SyntheticDirectorySource",
]
