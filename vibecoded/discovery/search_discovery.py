"""Search-based discovery of AI-assisted repositories.

Discovery is a two-stage funnel: a fixed battery of weighted GitHub searches
builds a cheap, de-duplicated candidate ranking, and only the top of that
ranking goes through the expensive per-repository detection pass.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Optional

from ..constants import (
    CANDIDATE_POOL_FACTOR,
    DISCOVERY_QUERY_DELAY,
    DISCOVERY_RESULTS_PER_QUERY,
    STAR_BONUS_CAP,
    STAR_BONUS_STEP,
    VERIFY_POOL_FACTOR,
    QueryKind,
)
from ..github.schemas import SearchRepository
from ..utils.repos import repo_key, repo_url

if TYPE_CHECKING:
    from ..analyzer.detector import DetectionResult, RepositoryDetector
    from ..github.client import GitHubClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchQuery:
    """One entry of the discovery battery."""

    query: str
    kind: QueryKind
    weight: int


DEFAULT_QUERIES: list[SearchQuery] = [
    SearchQuery("path:.cursorrules", QueryKind.CODE, 5),
    SearchQuery("filename:CLAUDE.md", QueryKind.CODE, 5),
    SearchQuery("path:.cursor/rules", QueryKind.CODE, 4),
    SearchQuery("filename:.windsurfrules", QueryKind.CODE, 4),
    SearchQuery('"vibe coded" in:description', QueryKind.REPO, 3),
    SearchQuery("topic:vibe-coded", QueryKind.REPO, 3),
    SearchQuery("topic:vibe-coding", QueryKind.REPO, 2),
    SearchQuery('"vibe coded" in:readme', QueryKind.REPO, 2),
    SearchQuery('"vibe coded"', QueryKind.COMMIT, 3),
    SearchQuery('"co-authored-by: claude"', QueryKind.COMMIT, 3),
    SearchQuery('"generated with claude code"', QueryKind.COMMIT, 3),
    SearchQuery("claude", QueryKind.COMMIT, 1),
    SearchQuery("gemini", QueryKind.COMMIT, 1),
]


def star_bonus(stars: int | None) -> int:
    """Up to 3 bonus points, one per 25 stars."""
    return min(STAR_BONUS_CAP, max(0, int(stars or 0)) // STAR_BONUS_STEP)


@dataclass
class Candidate:
    """A repository surfaced by search, accumulating weight across queries."""

    full_name: str
    description: Optional[str] = None
    stars: int = 0
    score: int = 0
    matched_queries: list[str] = field(default_factory=list)

    def absorb(self, item: SearchRepository, query: SearchQuery) -> None:
        stars = int(item.stargazers_count or 0)
        self.score += query.weight + star_bonus(stars)
        if query.query not in self.matched_queries:
            self.matched_queries.append(query.query)
        self.stars = max(self.stars, stars)
        if self.description is None and item.description is not None:
            self.description = item.description


@dataclass
class DiscoveredProject:
    """A candidate that passed verification."""

    full_name: str
    url: str
    description: Optional[str]
    stars: int
    score: int
    matched_queries: list[str]
    detection: "DetectionResult"

    def to_dict(self) -> dict[str, Any]:
        return {
            "full_name": self.full_name,
            "url": self.url,
            "description": self.description,
            "stars": self.stars,
            "score": self.score,
            "matched_queries": list(self.matched_queries),
            "detection": self.detection.to_dict(),
        }


class DiscoveryEngine:
    """Runs the query battery, ranks candidates and verifies the best ones."""

    def __init__(
        self,
        *,
        client: "GitHubClient",
        detector: "RepositoryDetector",
        known: Iterable[str] = (),
        denied: Iterable[str] = (),
        queries: list[SearchQuery] | None = None,
        results_per_query: int = DISCOVERY_RESULTS_PER_QUERY,
        query_delay: float = DISCOVERY_QUERY_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.detector = detector
        self.known = {repo_key(n) for n in known}
        self.denied = {repo_key(n) for n in denied}
        self.queries = list(queries if queries is not None else DEFAULT_QUERIES)
        self.results_per_query = max(1, int(results_per_query))
        self.query_delay = max(0.0, float(query_delay))
        self._sleep = sleep

    async def _search(self, query: SearchQuery) -> list[SearchRepository]:
        if query.kind == QueryKind.CODE:
            return await self.client.search_code(query.query, per_page=self.results_per_query)
        if query.kind == QueryKind.COMMIT:
            return await self.client.search_commits(query.query, per_page=self.results_per_query)
        return await self.client.search_repos(query.query, per_page=self.results_per_query)

    async def collect_candidates(self, limit: int) -> dict[str, Candidate]:
        """Issue queries in order, merging hits into a pool keyed by lowercase name."""
        pool: dict[str, Candidate] = {}
        pool_cap = CANDIDATE_POOL_FACTOR * limit

        for index, query in enumerate(self.queries):
            if len(pool) >= pool_cap:
                logger.info("Candidate pool reached %d; skipping remaining queries", len(pool))
                break

            new = 0
            merged = 0
            excluded = 0
            try:
                logger.info("Searching (%s): %s", query.kind.value, query.query)
                items = await self._search(query)
                for item in items:
                    key = repo_key(item.full_name)
                    if not key or key in self.known or key in self.denied:
                        excluded += 1
                        continue
                    candidate = pool.get(key)
                    if candidate is None:
                        candidate = Candidate(full_name=item.full_name)
                        pool[key] = candidate
                        new += 1
                    else:
                        merged += 1
                    candidate.absorb(item, query)
                logger.info(
                    "Search %r -> %d results, %d new, %d merged, %d excluded",
                    query.query,
                    len(items),
                    new,
                    merged,
                    excluded,
                )
            except Exception as e:
                logger.warning("Search failed for query %r: %s", query.query, e)
            finally:
                if self.query_delay and index < len(self.queries) - 1:
                    await self._sleep(self.query_delay)

        return pool

    @staticmethod
    def rank(candidates: Iterable[Candidate], limit: int) -> list[Candidate]:
        """Top ``12 * limit`` candidates by score, then stars (both descending)."""
        ordered = sorted(candidates, key=lambda c: (-c.score, -c.stars))
        return ordered[: VERIFY_POOL_FACTOR * limit]

    async def verify(self, ranked: list[Candidate], limit: int) -> list[DiscoveredProject]:
        """Run detection in rank order until ``limit`` candidates pass the gate."""
        verified: list[DiscoveredProject] = []
        for candidate in ranked:
            if len(verified) >= limit:
                break
            try:
                result = await self.detector.detect(candidate.full_name)
            except Exception as e:
                logger.warning("Verification failed for %s: %s", candidate.full_name, e)
                continue

            if not result.should_surface:
                score = result.detection_summary.score if result.detection_summary else 0
                logger.info("Skipped: %s (score %d below gate)", candidate.full_name, score)
                continue

            logger.info(
                "Verified: %s (tools: %s)",
                candidate.full_name,
                ", ".join(e.name for e in result.ai_tools) or "none",
            )
            verified.append(
                DiscoveredProject(
                    full_name=candidate.full_name,
                    url=repo_url(candidate.full_name),
                    description=candidate.description,
                    stars=candidate.stars,
                    score=candidate.score,
                    matched_queries=list(candidate.matched_queries),
                    detection=result,
                )
            )
        return verified

    async def discover(self, limit: int = 5) -> list[DiscoveredProject]:
        limit = max(1, int(limit))
        pool = await self.collect_candidates(limit)
        ranked = self.rank(pool.values(), limit)
        logger.info("Found %d candidates; verifying top %d", len(pool), len(ranked))
        return await self.verify(ranked, limit)
