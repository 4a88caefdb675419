"""Rate-limited GitHub search and content scanner.

Searches repositories with a fixed set of MCP query patterns, deduplicates
across patterns and fetches the metadata plus fixed file set the Analyzer
needs.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar

import httpx

from mcp_catalog.config import ScannerConfig
from mcp_catalog.entities.repository import (
    RateLimitBucket,
    RateLimitStatus,
    Release,
    Repository,
    RepositoryDetails,
    ScanResult,
    ScanStats,
    StructureEntry,
)
from mcp_catalog.errors import (
    CatalogError,
    NotFoundError,
    QuotaExceededError,
    SecondaryRateLimitError,
    TransientNetworkError,
)
from mcp_catalog.nodes.discovery.retry import build_retrying
from mcp_catalog.nodes.discovery.throttle import RateLimiter

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# GitHub search never pages past this many results.
SEARCH_RESULT_CEILING = 1000


class GitHubScanner:
    """Discovers candidate MCP repositories through the GitHub REST API.

    Primary rate limits block until the reset time and retry, secondary
    (abuse) limits back off and retry once, and exhausted retries surface
    as :class:`QuotaExceededError`.
    """

    def __init__(
        self,
        config: ScannerConfig | None = None,
        client: httpx.AsyncClient | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self.config = config or ScannerConfig()
        self._client = client or httpx.AsyncClient(timeout=self.config.request_timeout)
        self._owns_client = client is None
        self._limiter = limiter or RateLimiter(
            requests_per_window=self.config.requests_per_minute,
            min_interval=self.config.min_request_interval,
        )
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_requests)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> GitHubScanner:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.config.user_agent,
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    @staticmethod
    def _rate_limit_kind(response: httpx.Response) -> str | None:
        """Classify a 403/429 as a primary or secondary rate limit."""
        if response.status_code not in (403, 429):
            return None
        if response.headers.get("x-ratelimit-remaining") == "0":
            return "primary"
        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text}
        message = str(payload.get("message", "") if isinstance(payload, dict) else "").lower()
        if "secondary rate limit" in message or "abuse" in message:
            return "secondary"
        if "rate limit" in message or response.status_code == 429:
            return "primary"
        if "retry-after" in response.headers:
            return "secondary"
        return None

    def _primary_wait(self, response: httpx.Response) -> float:
        retry_after = response.headers.get("retry-after")
        if retry_after is not None:
            wait = float(retry_after)
        else:
            reset = response.headers.get("x-ratelimit-reset")
            wait = float(reset) - time.time() if reset else self.config.retry_base_delay
        return max(0.0, min(wait, self.config.max_rate_limit_wait))

    def _secondary_wait(self, response: httpx.Response) -> float:
        return float(response.headers.get("retry-after", self.config.secondary_backoff_seconds))

    async def _attempt(self, url: str, path: str, params: dict[str, Any] | None, resource: str) -> httpx.Response:
        """One throttled GET, raising a typed error for anything worth retrying."""
        await self._limiter.acquire()
        try:
            async with self._semaphore:
                response = await self._client.get(url, params=params, headers=self._headers())
        except httpx.TransportError as exc:
            msg = f"GET {path} failed: {exc}"
            raise TransientNetworkError(msg) from exc

        kind = self._rate_limit_kind(response)
        if kind == "primary":
            msg = f"GitHub {resource} rate limit exhausted for {path}"
            raise QuotaExceededError(msg, resource=resource, retry_after=self._primary_wait(response))
        if kind == "secondary":
            msg = f"GitHub secondary rate limit persisted for {path}"
            raise SecondaryRateLimitError(msg, resource=resource, retry_after=self._secondary_wait(response))
        if response.status_code >= 500:
            msg = f"GET {path} returned {response.status_code}"
            raise TransientNetworkError(msg)
        return response

    async def _request(self, path: str, params: dict[str, Any] | None = None, *, resource: str = "core") -> httpx.Response:
        """GET ``path`` with throttling, rate-limit handling and retries."""
        url = f"{self.config.api_url.rstrip('/')}{path}"
        retrying = build_retrying(
            {
                SecondaryRateLimitError: 2,
                QuotaExceededError: self.config.max_retries + 1,
                TransientNetworkError: self.config.max_retries,
            },
            initial=self.config.retry_base_delay,
            max_wait=self.config.max_rate_limit_wait,
            log=logger,
        )
        return await retrying(self._attempt, url, path, params, resource)

    async def _get_json(self, path: str, params: dict[str, Any] | None = None, *, resource: str = "core") -> Any:
        response = await self._request(path, params, resource=resource)
        if response.status_code == 404:
            msg = f"{path} not found"
            raise NotFoundError(msg)
        response.raise_for_status()
        return response.json()

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def build_query(self, pattern: str, *, min_stars: int = 0, include_archived: bool = False) -> str:
        """Build a search query restricted to name, description and readme."""
        query = pattern
        if not include_archived:
            query += " archived:false"
        if min_stars > 0:
            query += f" stars:>={min_stars}"
        if self.config.language:
            query += f" language:{self.config.language}"
        return f"{query} in:name,description,readme"

    async def search_pattern(
        self,
        pattern: str,
        max_results: int,
        *,
        min_stars: int = 0,
        include_archived: bool = False,
    ) -> list[Repository]:
        """Page through one search pattern, in page order."""
        query = self.build_query(pattern, min_stars=min_stars, include_archived=include_archived)
        per_page = self.config.per_page
        results: list[Repository] = []
        page = 1

        while len(results) < max_results:
            logger.debug("Searching %r page %d", query, page)
            data = await self._get_json(
                "/search/repositories",
                {"q": query, "sort": "updated", "order": "desc", "per_page": per_page, "page": page},
                resource="search",
            )
            items = data.get("items") or []
            if not items:
                break
            for item in items[: max_results - len(results)]:
                results.append(Repository.from_github(item, search_pattern=pattern))
            if len(items) < per_page or page * per_page >= SEARCH_RESULT_CEILING:
                break
            page += 1

        return results

    async def discover(
        self,
        max_results: int = 1000,
        min_stars: int = 0,
        include_archived: bool = False,
    ) -> ScanResult:
        """Run every search pattern and deduplicate by ``full_name``.

        Args:
            max_results: Cap on unique repositories returned.
            min_stars: Minimum stargazer count.
            include_archived: Keep archived repositories.

        Returns:
            Deduplicated repositories with search statistics.
        """
        stats = ScanStats()
        seen: dict[str, Repository] = {}

        for index, pattern in enumerate(self.config.search_patterns):
            if len(seen) >= max_results:
                break
            per_pattern = min(self.config.max_results_per_pattern, SEARCH_RESULT_CEILING, max_results - len(seen))
            try:
                repos = await self.search_pattern(
                    pattern, per_pattern, min_stars=min_stars, include_archived=include_archived
                )
            except TransientNetworkError as exc:
                logger.warning("Search failed for pattern %r: %s", pattern, exc)
                continue

            stats.patterns_searched += 1
            stats.total_results += len(repos)
            for repo in repos:
                if repo.full_name in seen:
                    stats.duplicates_filtered += 1
                else:
                    seen[repo.full_name] = repo
            logger.info("Pattern %r: %d results (%d unique so far)", pattern, len(repos), len(seen))

            if self.config.pattern_pause_seconds and index < len(self.config.search_patterns) - 1:
                await asyncio.sleep(self.config.pattern_pause_seconds)

        records = list(seen.values())[:max_results]
        stats.unique_repositories = len(records)
        return ScanResult(records=records, stats=stats)

    async def search_by_file_content(self, filename: str, content: str, max_results: int = 100) -> list[dict[str, Any]]:
        """Code search for repositories containing ``filename`` with ``content``."""
        try:
            data = await self._get_json(
                "/search/code",
                {"q": f"filename:{filename} {content}", "per_page": min(max_results, 100)},
                resource="search",
            )
        except (TransientNetworkError, NotFoundError, httpx.HTTPStatusError) as exc:
            logger.warning("File content search failed: %s", exc)
            return []

        return [
            {
                "repository": Repository.from_github(item.get("repository") or {}),
                "file": {
                    "name": item.get("name"),
                    "path": item.get("path"),
                    "sha": item.get("sha"),
                    "url": item.get("html_url"),
                },
                "score": item.get("score"),
            }
            for item in data.get("items") or []
        ]

    # ------------------------------------------------------------------
    # Repository details
    # ------------------------------------------------------------------

    async def get_file_content(self, owner: str, name: str, path: str) -> str | None:
        """Return a decoded file, or None when it is absent or a directory."""
        try:
            data = await self._get_json(f"/repos/{owner}/{name}/contents/{path}")
        except NotFoundError:
            return None
        if not isinstance(data, dict) or data.get("type", "file") != "file":
            return None
        content = data.get("content") or ""
        if data.get("encoding") == "base64":
            return base64.b64decode(content).decode("utf-8", errors="replace")
        return content

    async def get_structure(self, owner: str, name: str) -> list[StructureEntry]:
        """Top-level directory listing."""
        data = await self._get_json(f"/repos/{owner}/{name}/contents")
        if not isinstance(data, list):
            return []
        return [
            StructureEntry(name=entry["name"], type=entry.get("type", "file"), size=entry.get("size") or 0)
            for entry in data
            if entry.get("name")
        ]

    async def _fetch_file(self, owner: str, name: str, path: str) -> tuple[str, str | None]:
        try:
            return path, await self.get_file_content(owner, name, path)
        except QuotaExceededError:
            raise
        except (CatalogError, httpx.HTTPError) as exc:
            logger.warning("Failed to fetch %s from %s/%s: %s", path, owner, name, exc)
            return path, None

    async def get_repository_contents(self, owner: str, name: str) -> tuple[dict[str, str], list[StructureEntry]]:
        """Fetch the fixed content file set plus the root listing.

        Missing files are normal and skipped silently. Other failures are
        logged and the file is omitted.
        """
        fetched = await asyncio.gather(*(self._fetch_file(owner, name, path) for path in self.config.content_files))
        files = {path: content for path, content in fetched if content is not None}

        try:
            structure = await self.get_structure(owner, name)
        except QuotaExceededError:
            raise
        except NotFoundError:
            structure = []
        except (CatalogError, httpx.HTTPError) as exc:
            logger.warning("Failed to list contents of %s/%s: %s", owner, name, exc)
            structure = []

        return files, structure

    async def _best_effort(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            return await self._get_json(path, params)
        except QuotaExceededError:
            raise
        except (CatalogError, httpx.HTTPError) as exc:
            logger.debug("Optional request %s failed: %s", path, exc)
            return None

    async def get_details(self, owner: str, name: str) -> RepositoryDetails:
        """Fetch repository metadata, content files, listing, releases and topics.

        Raises:
            NotFoundError: The repository itself no longer exists.
        """
        repo_data = await self._get_json(f"/repos/{owner}/{name}")
        (files, structure), releases, topics = await asyncio.gather(
            self.get_repository_contents(owner, name),
            self._best_effort(f"/repos/{owner}/{name}/releases", {"per_page": 5}),
            self._best_effort(f"/repos/{owner}/{name}/topics"),
        )

        repository = Repository.from_github(repo_data)
        topic_names = list((topics or {}).get("names") or repository.topics)
        if topic_names:
            repository.topics = topic_names

        return RepositoryDetails(
            repository=repository,
            files=files,
            structure=structure,
            releases=[Release.model_validate(r) for r in releases or [] if r.get("tag_name")],
            topics=topic_names,
        )

    async def get_rate_limit_status(self) -> RateLimitStatus:
        """Remaining/limit/reset for the core, search and graphql quotas."""
        data = await self._get_json("/rate_limit")
        resources = data.get("resources") or {}

        def bucket(key: str) -> RateLimitBucket:
            raw = resources.get(key) or {}
            reset = raw.get("reset")
            return RateLimitBucket(
                limit=raw.get("limit", 0),
                remaining=raw.get("remaining", 0),
                used=raw.get("used", 0),
                reset=datetime.fromtimestamp(reset, tz=UTC) if reset else None,
            )

        return RateLimitStatus(core=bucket("core"), search=bucket("search"), graphql=bucket("graphql"))

    async def process_repositories(
        self,
        repos: Iterable[T],
        processor: Callable[[T], Awaitable[R]],
        concurrency: int | None = None,
        delay: float = 0.0,
    ) -> list[R | BaseException]:
        """Run ``processor`` over ``repos`` with bounded concurrency.

        Consecutive starts are at least ``delay`` seconds apart. Failures are
        returned in place of results instead of raised.
        """
        semaphore = asyncio.Semaphore(concurrency or self.config.max_concurrent_requests)
        spacing = RateLimiter(min_interval=delay)

        async def run(repo: T) -> R:
            async with semaphore:
                await spacing.acquire()
                return await processor(repo)

        return await asyncio.gather(*(run(repo) for repo in repos), return_exceptions=True)
