"""Registry maintenance: adding, refreshing, scanning and denying projects."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..analyzer.detector import DetectionResult, RepositoryDetector
from ..analyzer.vulnerabilities import ScanResult, TrivyScanner
from ..constants import CONTRIBUTOR_DETAILS_LIMIT, GITHUB_WEB_BASE
from ..github.client import GitHubClient
from ..github.schemas import Contributor, GitHubRepo
from ..storage.catalog import ShardedCatalogStore
from ..storage.denylist import Denylist
from ..storage.models import ContributorDetails, OwnerDetails, Project
from ..utils.repos import parse_repo, repo_url

logger = logging.getLogger(__name__)


class InvalidRepositoryError(ValueError):
    """Input is neither ``owner/repo`` nor a GitHub repository URL."""


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class RefreshStats:
    total: int = 0
    updated: int = 0
    failed: int = 0


class Registry:
    """Keeps the on-disk catalog in sync with GitHub, detection and scanning."""

    def __init__(
        self,
        *,
        client: GitHubClient,
        store: ShardedCatalogStore,
        denylist: Denylist,
        detector: RepositoryDetector | None = None,
        scanner: TrivyScanner | None = None,
    ):
        self.client = client
        self.store = store
        self.denylist = denylist
        self.detector = detector or RepositoryDetector(client)
        self.scanner = scanner or TrivyScanner(client)

    # Metadata helpers

    async def _owner_details(self, repo: GitHubRepo, previous: Optional[OwnerDetails] = None) -> OwnerDetails:
        """Owner profile; an unreadable profile is recorded as private."""
        try:
            user = await self.client.get_user(repo.owner.login)
        except Exception as e:
            logger.debug("Owner lookup failed for %s: %s", repo.owner.login, e)
            return OwnerDetails(
                login=repo.owner.login,
                avatar_url=repo.owner.avatar_url,
                url=repo.owner.html_url,
                created_at=previous.created_at if previous else None,
                followers=previous.followers if previous else None,
                following=previous.following if previous else None,
                bio=previous.bio if previous else None,
                public_repos=previous.public_repos if previous else None,
                is_private=True,
            )
        return OwnerDetails(
            login=user.login,
            avatar_url=user.avatar_url,
            url=user.html_url,
            created_at=user.created_at or (previous.created_at if previous else None),
            followers=_first_not_none(user.followers, previous.followers if previous else None),
            following=_first_not_none(user.following, previous.following if previous else None),
            bio=user.bio or (previous.bio if previous else None),
            public_repos=_first_not_none(user.public_repos, previous.public_repos if previous else None),
            is_private=False,
        )

    async def _contributor_detail(self, contributor: Contributor) -> ContributorDetails:
        url = contributor.html_url or f"{GITHUB_WEB_BASE}/{contributor.login}"
        try:
            user = await self.client.get_user(contributor.login)
        except Exception as e:
            logger.debug("Contributor lookup failed for %s: %s", contributor.login, e)
            return ContributorDetails(login=contributor.login, avatar_url=contributor.avatar_url, url=url)
        return ContributorDetails(
            login=contributor.login,
            avatar_url=contributor.avatar_url,
            url=url,
            created_at=user.created_at,
            followers=user.followers,
            following=user.following,
        )

    async def _contributor_details(self, contributors: list[Contributor]) -> list[ContributorDetails]:
        top = contributors[:CONTRIBUTOR_DETAILS_LIMIT]
        return list(await asyncio.gather(*(self._contributor_detail(c) for c in top)))

    async def _fetch_listing_data(self, full_name: str) -> tuple[dict[str, int], Optional[int], Optional[int], list[Contributor]]:
        """Languages, commit count, contributor count and top contributors."""

        async def _languages() -> dict[str, int]:
            try:
                return await self.client.get_languages(full_name)
            except Exception as e:
                logger.warning("Languages lookup failed for %s: %s", full_name, e)
                return {}

        async def _contributors() -> list[Contributor]:
            try:
                return await self.client.get_contributors(full_name, CONTRIBUTOR_DETAILS_LIMIT)
            except Exception as e:
                logger.warning("Contributor listing failed for %s: %s", full_name, e)
                return []

        languages, commits, contributors, top = await asyncio.gather(
            _languages(),
            self.client.get_count(f"repos/{full_name}/commits"),
            self.client.get_count(f"repos/{full_name}/contributors"),
            _contributors(),
        )
        return languages, commits, contributors, top

    async def _detect(self, full_name: str) -> Optional[DetectionResult]:
        try:
            return await self.detector.detect(full_name)
        except Exception as e:
            logger.warning("Detection failed for %s: %s", full_name, e)
            return None

    async def _scan(self, full_name: str) -> Optional[ScanResult]:
        try:
            return await self.scanner.scan(full_name)
        except Exception as e:
            logger.warning("Scan failed for %s: %s", full_name, e)
            return None

    # Operations

    async def add(self, value: str, force: bool = False) -> bool:
        """
        Catalog a repository from ``owner/repo`` or a GitHub URL.

        Returns False when it is already cataloged and ``force`` is not set.
        Metadata failures still store a minimal record; the vulnerability scan
        runs afterwards and its failure is only logged.
        """
        full_name = parse_repo(value)
        if not full_name:
            raise InvalidRepositoryError(f"Invalid: expected owner/repo or GitHub URL, got {value!r}")

        if self.store.get(full_name) is not None and not force:
            logger.info("Already exists: %s", full_name)
            return False

        now = utc_timestamp()
        project = Project(full_name=full_name, url=repo_url(full_name), last_updated=now)

        try:
            repo = await self.client.get_repo(full_name)
            languages, commits, contributors, top = await self._fetch_listing_data(full_name)
            owner = await self._owner_details(repo)
            contributor_details = await self._contributor_details(top)
            detection = await self._detect(full_name)

            project = Project(
                full_name=full_name,
                url=repo_url(full_name),
                description=repo.description,
                stars=repo.stargazers_count,
                forks=repo.forks_count,
                open_issues=repo.open_issues_count,
                license=repo.license.name if repo.license else None,
                topics=repo.topics or None,
                size=repo.size,
                default_branch=repo.default_branch,
                commits=commits,
                contributors=contributors,
                contributor_details=contributor_details or None,
                created_at=repo.created_at,
                language=repo.language,
                languages=languages or None,
                is_archived=repo.archived,
                owner=owner,
                last_updated=now,
            )
            if detection is not None:
                _apply_detection(project, detection)
        except Exception as e:
            logger.warning("Could not fetch details for %s: %s", full_name, e)

        project = self.store.upsert(project)
        logger.info("Added: %s", full_name)

        scan = await self._scan(full_name)
        if scan is not None and scan.summary:
            project.vulnerable_dependencies = scan.summary
            project.vulnerabilities = scan.details
            self.store.upsert(project)
            logger.info("Scanned %s: %d vulnerable dependencies", full_name, len(scan.summary))
        return True

    async def update_project(self, project: Project) -> Project:
        """
        Refresh metadata, detection and scan results for a cataloged project.

        Missing or empty refresh data never overwrites what is already known.
        If the repository metadata itself cannot be fetched, the original
        record is returned unchanged.
        """
        full_name = project.full_name
        logger.info("Updating %s", full_name)

        try:
            repo = await self.client.get_repo(full_name)
        except Exception as e:
            logger.error("Failed to update %s: %s", full_name, e)
            return project

        updated = project.model_copy(deep=True)
        try:
            languages, commits, contributors, top = await self._fetch_listing_data(full_name)
            updated.owner = await self._owner_details(repo, previous=project.owner)
            details = await self._contributor_details(top)

            updated.description = _first_not_none(repo.description, project.description)
            updated.stars = repo.stargazers_count
            updated.forks = _first_not_none(repo.forks_count, project.forks)
            updated.open_issues = _first_not_none(repo.open_issues_count, project.open_issues)
            updated.license = repo.license.name if repo.license else project.license
            updated.topics = repo.topics or project.topics
            updated.size = _first_not_none(repo.size, project.size)
            updated.default_branch = repo.default_branch or project.default_branch
            updated.commits = _first_not_none(commits, project.commits)
            updated.contributors = _first_not_none(contributors, project.contributors)
            updated.language = repo.language or project.language
            updated.languages = languages or project.languages
            updated.is_archived = repo.archived
            updated.contributor_details = details or project.contributor_details
        except Exception as e:
            logger.error("Failed to update %s: %s", full_name, e)
            return project

        detection = await self._detect(full_name)
        if detection is not None:
            _apply_detection(updated, detection, previous=project)

        scan = await self._scan(full_name)
        if scan is not None:
            updated.vulnerable_dependencies = scan.summary
            updated.vulnerabilities = scan.details

        updated.last_updated = utc_timestamp()
        return updated

    async def refresh_all(self, concurrency: int = 5) -> RefreshStats:
        """Update every cataloged project with a bounded pool of workers."""
        self.store.migrate_from_legacy()
        projects = self.store.read_all()
        stats = RefreshStats(total=len(projects))

        queue: asyncio.Queue[Project] = asyncio.Queue()
        for project in projects:
            queue.put_nowait(project)

        worker_count = min(max(1, int(concurrency)), len(projects))
        logger.info("Updating %d projects with %d workers", len(projects), worker_count)

        async def _worker(worker_id: int) -> None:
            while True:
                try:
                    project = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    updated = await self.update_project(project)
                    self.store.upsert(updated)
                    stats.updated += 1
                except Exception as e:
                    logger.error("Worker %d failed on %s: %s", worker_id, project.full_name, e)
                    stats.failed += 1
                done = stats.updated + stats.failed
                if done % 25 == 0:
                    logger.info("Processed %d/%d (updated=%d, failed=%d)", done, stats.total, stats.updated, stats.failed)

        await asyncio.gather(*(_worker(i + 1) for i in range(worker_count)))
        logger.info("Done. updated=%d failed=%d", stats.updated, stats.failed)
        return stats

    async def scan_and_store(self, full_name: str) -> Optional[ScanResult]:
        """
        Scan a repository and record the findings on its catalog entry.

        Returns None when the repository is not cataloged; scanner errors
        propagate to the caller.
        """
        result = await self.scanner.scan(full_name)
        project = self.store.get(full_name)
        if project is None:
            logger.warning("Not in catalog, findings not stored: %s", full_name)
            return result

        project.vulnerable_dependencies = result.summary
        if result.details:
            project.vulnerabilities = result.details
        project.last_updated = utc_timestamp()
        self.store.upsert(project)
        return result

    def deny(self, value: str) -> bool:
        full_name = parse_repo(value)
        if not full_name:
            raise InvalidRepositoryError(f"Invalid: expected owner/repo or GitHub URL, got {value!r}")
        return self.denylist.add(full_name)

    async def import_file(self, path: Path) -> int:
        """Add every repository listed in a file; returns how many were added."""
        added = 0
        text = Path(path).read_text(encoding="utf-8")
        for line in text.splitlines():
            entry = line.strip()
            if not entry or entry.startswith("#"):
                continue
            try:
                if await self.add(entry):
                    added += 1
            except Exception as e:
                logger.warning("Skip %s: %s", entry, e)
        logger.info("Imported: %d", added)
        return added


def _first_not_none(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _apply_detection(
    project: Project,
    detection: DetectionResult,
    previous: Optional[Project] = None,
) -> None:
    """Copy detection output onto a project, keeping prior evidence when none was found."""
    project.ai_tools = detection.ai_tools or (previous.ai_tools if previous else None)
    project.emojis = detection.emojis or (previous.emojis if previous else None)
    project.package_manager = detection.package_manager or (previous.package_manager if previous else None)
    project.commit_message_signals = detection.commit_message_signals
    project.commit_size_signals = detection.commit_size_signals
    project.contributor_signals = detection.contributor_signals
    project.detection_summary = detection.detection_summary
    project.has_sast = detection.has_sast or None
    project.has_linting = detection.has_linting or None
    project.sast_evidence_url = detection.sast_evidence_url
    project.lint_evidence_url = detection.lint_evidence_url
