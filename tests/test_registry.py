"""Tests for registry maintenance operations."""

import asyncio

import pytest

from vibecoded.analyzer.detector import DetectionResult
from vibecoded.analyzer.vulnerabilities import ScanResult, ScannerError
from vibecoded.constants import DetectedVia, DetectionLevel
from vibecoded.github.client import GitHubError
from vibecoded.github.schemas import Contributor, GitHubRepo, GitHubUser
from vibecoded.pipeline.registry import InvalidRepositoryError, Registry
from vibecoded.storage.catalog import ShardedCatalogStore
from vibecoded.storage.denylist import Denylist
from vibecoded.storage.models import (
    CommitMessageSignals,
    DetectionSummary,
    Evidence,
    Project,
    VulnDetail,
)


def _repo_payload(full_name, **overrides):
    owner = full_name.split("/")[0]
    data = {
        "full_name": full_name,
        "description": "A repo",
        "stargazers_count": 42,
        "created_at": "2025-01-01T00:00:00Z",
        "language": "TypeScript",
        "archived": False,
        "html_url": f"https://github.com/{full_name}",
        "forks_count": 3,
        "open_issues_count": 1,
        "license": {"name": "MIT License"},
        "topics": ["ai"],
        "size": 100,
        "default_branch": "main",
        "owner": {
            "login": owner,
            "avatar_url": f"https://avatars.example/{owner}",
            "html_url": f"https://github.com/{owner}",
        },
    }
    data.update(overrides)
    return data


class _StubGitHub:
    def __init__(self, *, repos=None, failing_users=(), languages=None, counts=None, contributors=()):
        self.repos = repos or {}
        self.failing_users = set(failing_users)
        self.languages = languages if languages is not None else {"TypeScript": 900}
        self.counts = counts or {}
        self.contributors = [Contributor(login=c, avatar_url=f"https://avatars.example/{c}") for c in contributors]

    async def get_repo(self, full_name):
        if full_name not in self.repos:
            raise GitHubError(404, "Not Found")
        return GitHubRepo.model_validate(self.repos[full_name])

    async def get_user(self, login):
        if login in self.failing_users:
            raise GitHubError(404, "Not Found")
        return GitHubUser.model_validate(
            {
                "login": login,
                "avatar_url": f"https://avatars.example/{login}",
                "html_url": f"https://github.com/{login}",
                "created_at": "2020-01-01T00:00:00Z",
                "followers": 7,
                "following": 2,
                "public_repos": 9,
            }
        )

    async def get_languages(self, full_name):
        return dict(self.languages)

    async def get_count(self, path):
        return self.counts.get(path.rsplit("/", 1)[-1])

    async def get_contributors(self, full_name, limit=100):
        return self.contributors[:limit]


class _StubDetector:
    def __init__(self, *, tools=("claude",), fail=False):
        self.tools = tools
        self.fail = fail

    async def detect(self, full_name):
        if self.fail:
            raise RuntimeError("detector down")
        evidence = [
            Evidence(name=t, detected_via=DetectedVia.FILE, evidence_url=f"https://github.com/{full_name}/blob/main/x")
            for t in self.tools
        ]
        return DetectionResult(
            full_name=full_name,
            default_branch="main",
            ai_tools=evidence,
            commit_message_signals=CommitMessageSignals(sample_size=10, em_dash_count=2),
            detection_summary=DetectionSummary(score=4 * len(evidence), level=DetectionLevel.LOW),
            has_sast=True,
            sast_evidence_url=f"https://github.com/{full_name}/blob/main/.semgrep.yml",
        )


class _StubScanner:
    def __init__(self, summary=("lodash@4.17.20 (CVE-2021-23337)",), fail=False):
        self.summary = list(summary)
        self.fail = fail
        self.scanned: list[str] = []

    async def scan(self, full_name):
        self.scanned.append(full_name)
        if self.fail:
            raise ScannerError("trivy failed (2)")
        details = [
            VulnDetail(pkg="lodash", version="4.17.20", cve="CVE-2021-23337", severity="HIGH", title="t")
            for _ in self.summary
        ]
        return ScanResult(summary=list(self.summary), details=details)


def _registry(tmp_path, client=None, detector=None, scanner=None):
    return Registry(
        client=client or _StubGitHub(repos={"acme/app": _repo_payload("acme/app")}),
        store=ShardedCatalogStore(tmp_path),
        denylist=Denylist(tmp_path / "denied.json"),
        detector=detector or _StubDetector(),
        scanner=scanner or _StubScanner(),
    )


class TestAdd:
    @pytest.mark.asyncio
    async def test_add_builds_full_record(self, tmp_path):
        client = _StubGitHub(
            repos={"acme/app": _repo_payload("acme/app")},
            counts={"commits": 120, "contributors": 4},
            contributors=["alice", "ghost"],
            failing_users={"ghost"},
        )
        registry = _registry(tmp_path, client=client)

        assert await registry.add("https://github.com/acme/app.git") is True

        project = registry.store.get("acme/app")
        assert project.url == "https://github.com/acme/app"
        assert project.stars == 42
        assert project.license == "MIT License"
        assert project.commits == 120
        assert project.contributors == 4
        assert project.languages == {"TypeScript": 900}
        assert project.owner.login == "acme"
        assert project.owner.is_private is False
        assert project.owner.followers == 7
        assert [c.login for c in project.contributor_details] == ["alice", "ghost"]
        assert project.contributor_details[0].followers == 7
        assert project.contributor_details[1].followers is None
        assert project.contributor_details[1].url == "https://github.com/ghost"
        assert [t.name for t in project.ai_tools] == ["claude"]
        assert project.has_sast is True
        assert project.vulnerable_dependencies == ["lodash@4.17.20 (CVE-2021-23337)"]
        assert project.last_updated.endswith("Z")

    @pytest.mark.asyncio
    async def test_existing_is_skipped_unless_forced(self, tmp_path):
        scanner = _StubScanner()
        registry = _registry(tmp_path, scanner=scanner)
        assert await registry.add("acme/app") is True
        assert await registry.add("ACME/app") is False
        assert await registry.add("acme/app", force=True) is True
        assert scanner.scanned == ["acme/app", "acme/app"]

    @pytest.mark.asyncio
    async def test_invalid_input(self, tmp_path):
        with pytest.raises(InvalidRepositoryError):
            await _registry(tmp_path).add("https://gitlab.com/acme/app")

    @pytest.mark.asyncio
    async def test_private_owner(self, tmp_path):
        client = _StubGitHub(repos={"acme/app": _repo_payload("acme/app")}, failing_users={"acme"})
        registry = _registry(tmp_path, client=client)
        await registry.add("acme/app")

        owner = registry.store.get("acme/app").owner
        assert owner.is_private is True
        assert owner.avatar_url == "https://avatars.example/acme"

    @pytest.mark.asyncio
    async def test_metadata_failure_stores_minimal_record(self, tmp_path):
        registry = _registry(tmp_path, client=_StubGitHub(), scanner=_StubScanner(fail=True))
        assert await registry.add("acme/gone") is True

        project = registry.store.get("acme/gone")
        assert project.url == "https://github.com/acme/gone"
        assert project.stars == 0
        assert project.ai_tools is None
        assert project.vulnerable_dependencies is None


class TestUpdateProject:
    def _previous(self):
        return Project(
            full_name="acme/app",
            url="https://github.com/acme/app",
            stars=1,
            commits=50,
            topics=["legacy"],
            languages={"Python": 10},
            ai_tools=[Evidence(name="cursor", detected_via=DetectedVia.COMMITS, evidence_url="https://c/1")],
            emojis=5,
            vulnerable_dependencies=["old@1.0.0"],
            last_updated="2024-01-01T00:00:00.000Z",
        )

    @pytest.mark.asyncio
    async def test_does_not_regress_on_missing_data(self, tmp_path):
        client = _StubGitHub(
            repos={"acme/app": _repo_payload("acme/app", topics=[])},
            languages={},
        )
        registry = _registry(tmp_path, client=client, detector=_StubDetector(tools=()), scanner=_StubScanner(fail=True))

        previous = self._previous()
        updated = await registry.update_project(previous)

        assert updated.stars == 42
        assert updated.commits == 50
        assert updated.topics == ["legacy"]
        assert updated.languages == {"Python": 10}
        assert [t.name for t in updated.ai_tools] == ["cursor"]
        assert updated.emojis == 5
        assert updated.vulnerable_dependencies == ["old@1.0.0"]
        # Signals are always replaced by a successful detection.
        assert updated.commit_message_signals.em_dash_count == 2
        assert updated.detection_summary.score == 0
        assert updated.last_updated != previous.last_updated
        # The input record is not mutated.
        assert previous.stars == 1

    @pytest.mark.asyncio
    async def test_fresh_data_wins(self, tmp_path):
        registry = _registry(tmp_path)
        updated = await registry.update_project(self._previous())
        assert updated.topics == ["ai"]
        assert updated.languages == {"TypeScript": 900}
        assert [t.name for t in updated.ai_tools] == ["claude"]
        assert updated.vulnerable_dependencies == ["lodash@4.17.20 (CVE-2021-23337)"]

    @pytest.mark.asyncio
    async def test_detection_failure_keeps_signals(self, tmp_path):
        registry = _registry(tmp_path, detector=_StubDetector(fail=True))
        previous = self._previous()
        previous.detection_summary = DetectionSummary(score=9, level=DetectionLevel.HIGH)
        updated = await registry.update_project(previous)
        assert updated.detection_summary.score == 9
        assert updated.stars == 42

    @pytest.mark.asyncio
    async def test_metadata_failure_returns_original(self, tmp_path):
        registry = _registry(tmp_path, client=_StubGitHub())
        previous = self._previous()
        assert await registry.update_project(previous) is previous


class TestRefreshAll:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_others(self, tmp_path):
        names = ["acme/one", "acme/two", "bob/three", "zed/four"]
        client = _StubGitHub(repos={n: _repo_payload(n) for n in names})

        class _FlakyRegistry(Registry):
            async def update_project(self, project):
                if project.full_name == "acme/two":
                    raise RuntimeError("boom")
                return await super().update_project(project)

        store = ShardedCatalogStore(tmp_path)
        for name in names:
            store.upsert(Project(full_name=name, url=f"https://github.com/{name}"))

        registry = _FlakyRegistry(
            client=client,
            store=store,
            denylist=Denylist(tmp_path / "denied.json"),
            detector=_StubDetector(),
            scanner=_StubScanner(),
        )
        stats = await registry.refresh_all(concurrency=2)

        assert (stats.total, stats.updated, stats.failed) == (4, 3, 1)
        stars = {p.full_name: p.stars for p in store.read_all()}
        assert stars == {"acme/one": 42, "acme/two": 0, "bob/three": 42, "zed/four": 42}

    @pytest.mark.asyncio
    async def test_each_project_goes_to_exactly_one_worker(self, tmp_path):
        names = [f"acme/repo-{i}" for i in range(7)]
        store = ShardedCatalogStore(tmp_path)
        for name in names:
            store.upsert(Project(full_name=name, url=f"https://github.com/{name}"))
        seen: list[str] = []

        class _RecordingRegistry(Registry):
            async def update_project(self, project):
                seen.append(project.full_name)
                # Yield so the other workers interleave.
                await asyncio.sleep(0)
                return project

        registry = _RecordingRegistry(
            client=_StubGitHub(),
            store=store,
            denylist=Denylist(tmp_path / "denied.json"),
            detector=_StubDetector(),
            scanner=_StubScanner(),
        )
        stats = await registry.refresh_all(concurrency=3)

        assert sorted(seen) == sorted(names)
        assert len(seen) == len(set(seen))
        assert (stats.total, stats.updated, stats.failed) == (7, 7, 0)

    @pytest.mark.asyncio
    async def test_migrates_legacy_catalog_first(self, tmp_path):
        (tmp_path / "projects.json").write_text(
            '{"schemaVersion": 1, "projects": [{"full_name": "acme/app", "url": "https://github.com/acme/app"}]}'
        )
        registry = _registry(tmp_path)
        stats = await registry.refresh_all(concurrency=5)

        assert stats.updated == 1
        assert registry.store.get("acme/app").stars == 42

    @pytest.mark.asyncio
    async def test_empty_catalog(self, tmp_path):
        stats = await _registry(tmp_path).refresh_all()
        assert stats.total == 0


class TestScanDenyImport:
    @pytest.mark.asyncio
    async def test_scan_and_store(self, tmp_path):
        registry = _registry(tmp_path)
        registry.store.upsert(Project(full_name="acme/app", url="https://github.com/acme/app"))

        result = await registry.scan_and_store("acme/app")

        project = registry.store.get("acme/app")
        assert project.vulnerable_dependencies == result.summary
        assert project.vulnerabilities[0].pkg == "lodash"
        assert project.last_updated is not None

    @pytest.mark.asyncio
    async def test_scan_uncataloged_repo_stores_nothing(self, tmp_path):
        registry = _registry(tmp_path)
        result = await registry.scan_and_store("acme/app")
        assert result.summary
        assert registry.store.read_all() == []

    def test_deny(self, tmp_path):
        registry = _registry(tmp_path)
        assert registry.deny("https://github.com/Spam/Repo") is True
        assert registry.deny("spam/repo") is False
        assert registry.denylist.load() == {"spam/repo"}
        with pytest.raises(InvalidRepositoryError):
            registry.deny("nope")

    @pytest.mark.asyncio
    async def test_import_file(self, tmp_path):
        listing = tmp_path / "repos.txt"
        listing.write_text("# curated list\n\nacme/app\nnot a repo\nhttps://github.com/acme/app\n")

        added = await _registry(tmp_path).import_file(listing)

        assert added == 1
