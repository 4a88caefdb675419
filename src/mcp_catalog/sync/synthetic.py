"""Deterministic offline directory used when the live API is unreachable."""

from __future__ import annotations

import math
import random
from datetime import UTC, datetime, timedelta
from statistics import fmean

from mcp_catalog.entities.directory import (
    DirectoryCategory,
    DirectoryServer,
    DirectoryStats,
    ServerFilters,
    ServerPage,
)

SYNTHETIC_CATEGORIES: tuple[DirectoryCategory, ...] = (
    DirectoryCategory(id="development", name="Development Tools", server_count=1247),
    DirectoryCategory(id="productivity", name="Productivity", server_count=892),
    DirectoryCategory(id="data", name="Data & Analytics", server_count=734),
    DirectoryCategory(id="communication", name="Communication", server_count=621),
    DirectoryCategory(id="ai-ml", name="AI & Machine Learning", server_count=589),
    DirectoryCategory(id="automation", name="Automation", server_count=456),
    DirectoryCategory(id="content", name="Content Management", server_count=387),
    DirectoryCategory(id="integration", name="Integration", server_count=344),
)

SYNTHETIC_CAPABILITIES = (
    "file-system",
    "web-search",
    "database",
    "api-integration",
    "code-generation",
    "task-automation",
    "data-analysis",
    "content-creation",
)

SYNTHETIC_LANGUAGES = ("JavaScript", "Python", "TypeScript", "Go", "Rust", "Java", "C++", "Ruby")

# Fixed so repeated runs produce identical records.
REFERENCE_TIME = datetime(2025, 1, 1, tzinfo=UTC)


class SyntheticDirectorySource:
    """Serves a stable, seeded directory with the live API's shape.

    Args:
        server_count: Number of servers to generate.
        seed: Random seed; the same seed always yields the same directory.
    """

    offline = True

    def __init__(self, server_count: int = 5670, seed: int = 20240101) -> None:
        self.server_count = server_count
        self.seed = seed
        self._servers: list[DirectoryServer] | None = None

    @property
    def servers(self) -> list[DirectoryServer]:
        if self._servers is None:
            self._servers = self._generate()
        return self._servers

    def _generate(self) -> list[DirectoryServer]:
        rng = random.Random(self.seed)
        servers = []
        for i in range(1, self.server_count + 1):
            category = rng.choice(SYNTHETIC_CATEGORIES).id
            language = rng.choice(SYNTHETIC_LANGUAGES)
            capabilities: list[str] = []
            for _ in range(rng.randint(1, 4)):
                cap = rng.choice(SYNTHETIC_CAPABILITIES)
                if cap not in capabilities:
                    capabilities.append(cap)
            installer = "npm install" if rng.random() > 0.5 else "pip install"
            servers.append(
                DirectoryServer(
                    id=f"mock-server-{i}",
                    name=f"MCP Server {i}",
                    description=f"Mock MCP server for {category} with {', '.join(capabilities)} capabilities",
                    category=category,
                    language=language,
                    capabilities=capabilities,
                    version=f"{rng.randint(1, 3)}.{rng.randint(0, 9)}.{rng.randint(0, 19)}",
                    author=f"developer-{rng.randint(0, 999)}",
                    repository_url=f"https://github.com/mock-org/mcp-server-{i}",
                    verified=rng.random() > 0.4,
                    active=rng.random() > 0.08,
                    health_score=float(rng.randint(70, 99)),
                    last_updated=REFERENCE_TIME - timedelta(days=rng.uniform(0, 90)),
                    downloads=rng.randint(0, 9999),
                    stars=rng.randint(0, 499),
                    installation=f"{installer} mcp-server-{i}",
                )
            )
        return servers

    def _filter(self, filters: ServerFilters) -> list[DirectoryServer]:
        servers = self.servers
        if filters.category:
            servers = [s for s in servers if s.category == filters.category]
        if filters.verified is not None:
            servers = [s for s in servers if s.verified == filters.verified]
        if filters.active is not None:
            servers = [s for s in servers if s.active == filters.active]
        return servers

    async def check(self) -> bool:
        return True

    async def list_servers(self, filters: ServerFilters) -> ServerPage:
        matching = self._filter(filters)
        start = (filters.page - 1) * filters.limit
        return ServerPage(
            servers=matching[start : start + filters.limit],
            page=filters.page,
            total_pages=max(1, math.ceil(len(matching) / filters.limit)),
            total=len(matching),
            offline=True,
        )

    async def get_server(self, server_id: str) -> DirectoryServer | None:
        return next((s for s in self.servers if s.id == server_id), None)

    async def search(self, query: str, limit: int = 50) -> list[DirectoryServer]:
        needle = query.lower()
        results = [
            s
            for s in self.servers
            if needle in s.name.lower()
            or needle in s.description.lower()
            or any(needle in cap.lower() for cap in s.capabilities)
        ]
        return results[:limit]

    async def get_categories(self) -> list[DirectoryCategory]:
        return list(SYNTHETIC_CATEGORIES)

    async def get_stats(self) -> DirectoryStats:
        servers = self.servers
        scores = [s.health_score for s in servers if s.health_score is not None]
        return DirectoryStats(
            total_servers=len(servers),
            active_servers=sum(1 for s in servers if s.active),
            verified_servers=sum(1 for s in servers if s.verified),
            categories=len(SYNTHETIC_CATEGORIES),
            average_health_score=round(fmean(scores), 1) if scores else 0.0,
            last_updated=REFERENCE_TIME,
        )
