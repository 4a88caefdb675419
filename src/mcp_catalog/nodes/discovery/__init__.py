"""GitHub discovery nodes."""

from mcp_catalog.nodes.discovery.github_scanner import GitHubScanner
from mcp_catalog.nodes.discovery.retry import StopAfterFailures, WaitRetryAfterOrBackoff, build_retrying
from mcp_catalog.nodes.discovery.throttle import RateLimiter

__all__ = ["GitHubScanner", "RateLimiter", "StopAfterFailures", "WaitRetryAfterOrBackoff", "build_retrying"]
