"""Tests for search-based discovery."""

import pytest

from vibecoded.analyzer.detector import DetectionResult
from vibecoded.constants import DetectionLevel, QueryKind
from vibecoded.discovery.search_discovery import (
    DEFAULT_QUERIES,
    DiscoveryEngine,
    SearchQuery,
    star_bonus,
)
from vibecoded.github.schemas import SearchRepository
from vibecoded.storage.models import DetectionSummary


def _hit(full_name, stars=None, description=None):
    return SearchRepository(full_name=full_name, stargazers_count=stars, description=description)


class _StubSearch:
    def __init__(self, results: dict[str, list[SearchRepository]], failing=()):
        self.results = results
        self.failing = set(failing)
        self.calls: list[tuple[str, str, int]] = []

    async def _search(self, kind, query, per_page):
        self.calls.append((kind, query, per_page))
        if query in self.failing:
            raise RuntimeError("search unavailable")
        return list(self.results.get(query, []))

    async def search_code(self, query, per_page=30):
        return await self._search("code", query, per_page)

    async def search_repos(self, query, per_page=30):
        return await self._search("repo", query, per_page)

    async def search_commits(self, query, per_page=30):
        return await self._search("commit", query, per_page)


class _StubDetector:
    def __init__(self, surface=(), failing=()):
        self.surface = {n.lower() for n in surface}
        self.failing = {n.lower() for n in failing}
        self.calls: list[str] = []

    async def detect(self, full_name):
        self.calls.append(full_name)
        if full_name.lower() in self.failing:
            raise RuntimeError("detection exploded")
        passed = full_name.lower() in self.surface
        return DetectionResult(
            full_name=full_name,
            default_branch="main",
            detection_summary=DetectionSummary(
                score=9 if passed else 1,
                level=DetectionLevel.HIGH if passed else DetectionLevel.LOW,
            ),
            should_surface=passed,
        )


class _Sleeper:
    def __init__(self):
        self.waits: list[float] = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


Q_CODE = SearchQuery("path:.cursorrules", QueryKind.CODE, 5)
Q_REPO = SearchQuery("topic:vibe-coded", QueryKind.REPO, 3)
Q_COMMIT = SearchQuery("claude", QueryKind.COMMIT, 1)


def _engine(search, detector=None, queries=(Q_CODE, Q_REPO, Q_COMMIT), sleeper=None, **kwargs):
    return DiscoveryEngine(
        client=search,
        detector=detector or _StubDetector(),
        queries=list(queries),
        sleep=sleeper or _Sleeper(),
        **kwargs,
    )


def test_default_battery():
    assert len(DEFAULT_QUERIES) == 13
    assert DEFAULT_QUERIES[0] == SearchQuery("path:.cursorrules", QueryKind.CODE, 5)
    assert [q.weight for q in DEFAULT_QUERIES[-2:]] == [1, 1]


def test_star_bonus():
    assert star_bonus(None) == 0
    assert star_bonus(24) == 0
    assert star_bonus(25) == 1
    assert star_bonus(60) == 2
    assert star_bonus(10_000) == 3


class TestCollectCandidates:
    @pytest.mark.asyncio
    async def test_merges_hits_across_queries(self):
        search = _StubSearch(
            {
                Q_CODE.query: [_hit("acme/app")],
                Q_REPO.query: [_hit("Acme/App", stars=60, description="An app")],
                Q_COMMIT.query: [_hit("acme/app", stars=10, description="Other"), _hit("solo/repo")],
            }
        )
        pool = await _engine(search).collect_candidates(limit=5)

        app = pool["acme/app"]
        assert app.full_name == "acme/app"
        assert app.score == 5 + (3 + 2) + (1 + 0)
        assert app.stars == 60
        assert app.description == "An app"
        assert app.matched_queries == [Q_CODE.query, Q_REPO.query, Q_COMMIT.query]
        assert pool["solo/repo"].score == 1
        assert [c[:2] for c in search.calls] == [
            ("code", Q_CODE.query),
            ("repo", Q_REPO.query),
            ("commit", Q_COMMIT.query),
        ]
        assert all(c[2] == 50 for c in search.calls)

    @pytest.mark.asyncio
    async def test_excludes_known_and_denied(self):
        search = _StubSearch({Q_CODE.query: [_hit("Known/Repo"), _hit("bad/repo"), _hit("new/repo")]})
        engine = _engine(search, known=["known/repo"], denied=["BAD/Repo"])
        pool = await engine.collect_candidates(limit=5)
        assert list(pool) == ["new/repo"]

    @pytest.mark.asyncio
    async def test_failed_query_is_skipped(self):
        sleeper = _Sleeper()
        search = _StubSearch(
            {Q_COMMIT.query: [_hit("acme/app")]},
            failing={Q_CODE.query},
        )
        pool = await _engine(search, sleeper=sleeper).collect_candidates(limit=5)
        assert list(pool) == ["acme/app"]
        assert len(search.calls) == 3
        assert sleeper.waits == [1.5, 1.5]

    @pytest.mark.asyncio
    async def test_stops_when_pool_is_full(self):
        sleeper = _Sleeper()
        search = _StubSearch({Q_CODE.query: [_hit(f"owner/repo{i}") for i in range(8)]})
        pool = await _engine(search, sleeper=sleeper).collect_candidates(limit=1)
        assert len(pool) == 8
        assert len(search.calls) == 1
        assert sleeper.waits == [1.5]


class TestVerification:
    @pytest.mark.asyncio
    async def test_rank_order_and_limit(self):
        search = _StubSearch(
            {
                Q_CODE.query: [_hit("top/one"), _hit("top/two", stars=30)],
                Q_REPO.query: [_hit("mid/one", stars=100)],
                Q_COMMIT.query: [_hit("low/one"), _hit("top/one")],
            }
        )
        detector = _StubDetector(surface={"top/one", "mid/one", "low/one"})

        found = await _engine(search, detector).discover(limit=2)

        # top/one: 5+1=6, top/two: 5+1=6 with more stars, mid/one: 3+3=6 with most stars.
        assert detector.calls == ["mid/one", "top/two", "top/one"]
        assert [p.full_name for p in found] == ["mid/one", "top/one"]
        assert found[0].url == "https://github.com/mid/one"
        assert found[1].matched_queries == [Q_CODE.query, Q_COMMIT.query]
        assert found[0].detection.should_surface

    @pytest.mark.asyncio
    async def test_failed_verification_is_skipped(self):
        search = _StubSearch({Q_CODE.query: [_hit("a/broken"), _hit("b/fine")]})
        detector = _StubDetector(surface={"a/broken", "b/fine"}, failing={"a/broken"})

        found = await _engine(search, detector).discover(limit=3)

        assert detector.calls == ["a/broken", "b/fine"]
        assert [p.full_name for p in found] == ["b/fine"]

    @pytest.mark.asyncio
    async def test_verifies_at_most_twelve_per_requested(self):
        search = _StubSearch({Q_CODE.query: [_hit(f"owner/repo{i:02d}") for i in range(20)]})
        detector = _StubDetector()

        found = await _engine(search, detector, queries=(Q_CODE,)).discover(limit=1)

        assert found == []
        assert len(detector.calls) == 12

    @pytest.mark.asyncio
    async def test_to_dict(self):
        search = _StubSearch({Q_CODE.query: [_hit("acme/app", stars=5, description="d")]})
        found = await _engine(search, _StubDetector(surface={"acme/app"})).discover(limit=1)
        data = found[0].to_dict()
        assert data["full_name"] == "acme/app"
        assert data["score"] == 5
        assert data["matched_queries"] == [Q_CODE.query]
        assert data["detection"]["detectionSummary"]["level"] == "high"
