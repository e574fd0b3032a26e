"""Evidence collectors.

Each probe answers one narrow question about a repository and never raises:
a failed API call is logged and degrades to "no evidence".
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from ..constants import (
    CONTRIBUTOR_SAMPLE_SIZE,
    COMMIT_SAMPLE_SIZE,
    DEFAULT_BRANCH_FALLBACK,
    ISSUE_MAX_PAGES,
    ISSUE_PAGE_SIZE,
    DetectedVia,
)
from ..github.client import GitHubClient
from ..github.schemas import CommitItem
from ..storage.models import ContributorSignals, Evidence, PackageManager
from ..utils.repos import blob_url, tree_url
from .evidence import EvidenceSet

logger = logging.getLogger(__name__)


# (tool, path, is_tree) in priority order; the first hit per tool wins.
AI_TOOL_PATHS: list[tuple[str, str, bool]] = [
    ("cursor", ".cursor", True),
    ("cursor", ".cursorrules", False),
    ("cursor", ".cursor/rules", True),
    ("claude", "CLAUDE.md", False),
    ("claude", ".claude", True),
    ("claude", "claude.md", False),
    ("copilot", ".github/copilot-instructions.md", False),
    ("windsurf", ".windsurfrules", False),
    ("gemini", "GEMINI.md", False),
    ("codex", "AGENTS.md", False),
    ("cline", ".clinerules", False),
    ("aider", ".aider.conf.yml", False),
]

# Tool name -> substrings looked for in lower-cased commit messages.
COMMIT_TOOL_TERMS: list[tuple[str, tuple[str, ...]]] = [
    ("cursor", ("cursor",)),
    ("claude", ("claude",)),
    ("gemini", ("gemini",)),
    ("copilot", ("copilot",)),
    ("windsurf", ("windsurf",)),
    ("codex", ("codex",)),
    ("aider", ("aider",)),
    ("vibe", ("vibe coded", "vibe-coded")),
]

CLAUDE_BOT_RE = re.compile(r"^(?:claude|anthropic)(?:-code)?\[bot\]$", re.IGNORECASE)

# Lockfiles first so e.g. pnpm-lock.yaml wins over a bare package.json.
PACKAGE_MANAGER_FILES: list[tuple[str, str]] = [
    ("pnpm-lock.yaml", "pnpm"),
    ("yarn.lock", "yarn"),
    ("bun.lockb", "bun"),
    ("bun.lock", "bun"),
    ("package-lock.json", "npm"),
    ("uv.lock", "uv"),
    ("poetry.lock", "poetry"),
    ("Pipfile.lock", "pipenv"),
    ("Pipfile", "pipenv"),
    ("Cargo.lock", "cargo"),
    ("Cargo.toml", "cargo"),
    ("go.mod", "go"),
    ("Gemfile.lock", "bundler"),
    ("Gemfile", "bundler"),
    ("composer.lock", "composer"),
    ("composer.json", "composer"),
    ("mix.exs", "mix"),
    ("deno.json", "deno"),
    ("deno.jsonc", "deno"),
    ("pom.xml", "maven"),
    ("build.gradle", "gradle"),
    ("build.gradle.kts", "gradle"),
    ("package.json", "npm"),
    ("requirements.txt", "pip"),
    ("pyproject.toml", "pip"),
]

SAST_CONFIG_PATHS: list[str] = [
    ".github/workflows/codeql.yml",
    ".github/workflows/codeql-analysis.yml",
    ".github/codeql",
    ".semgrep.yml",
    ".semgrep",
    ".snyk",
    "sonar-project.properties",
    ".bandit",
    ".gitleaks.toml",
]

# Entries above that are directories and link as trees.
SAST_CONFIG_DIRS = frozenset({".github/codeql", ".semgrep"})

LINT_CONFIG_PATHS: list[str] = [
    "eslint.config.js",
    "eslint.config.mjs",
    "eslint.config.cjs",
    "eslint.config.ts",
    ".eslintrc",
    ".eslintrc.js",
    ".eslintrc.cjs",
    ".eslintrc.json",
    ".eslintrc.yml",
    "biome.json",
    "biome.jsonc",
    ".prettierrc",
    "ruff.toml",
    ".ruff.toml",
    ".flake8",
    ".pylintrc",
    ".golangci.yml",
    ".golangci.yaml",
    "clippy.toml",
    ".rubocop.yml",
    ".stylelintrc",
]

WORKFLOWS_DIR = ".github/workflows"
SAST_WORKFLOW_RE = re.compile(r"codeql|semgrep|snyk|sonar|bandit|gitleaks|trivy|security", re.IGNORECASE)
LINT_WORKFLOW_RE = re.compile(r"lint|eslint|ruff|flake8|prettier|biome|clippy|golangci", re.IGNORECASE)


@dataclass(frozen=True)
class QualityTooling:
    """SAST and lint configuration found in a repository."""

    has_sast: bool = False
    sast_evidence_url: Optional[str] = None
    has_linting: bool = False
    lint_evidence_url: Optional[str] = None


async def fetch_default_branch(client: GitHubClient, full_name: str) -> str:
    """Default branch of the repository, falling back to ``main``."""
    try:
        repo = await client.get_repo(full_name)
    except Exception as e:
        logger.warning("Could not resolve default branch for %s: %s", full_name, e)
        return DEFAULT_BRANCH_FALLBACK
    return repo.default_branch or DEFAULT_BRANCH_FALLBACK


async def probe_tool_files(client: GitHubClient, full_name: str, branch: str) -> list[Evidence]:
    """Check AI tool config paths; one evidence item per tool at most."""
    found = EvidenceSet()
    for tool, path, is_tree in AI_TOOL_PATHS:
        if tool in found:
            continue
        try:
            exists = await client.has_path(full_name, path)
        except Exception as e:
            logger.warning("Path probe failed for %s:%s: %s", full_name, path, e)
            continue
        if not exists:
            logger.debug("No %s in %s", path, full_name)
            continue
        url = tree_url(full_name, branch, path) if is_tree else blob_url(full_name, branch, path)
        found.add(Evidence(name=tool, detected_via=DetectedVia.FILE, evidence_url=url))
    return found.to_list()


async def fetch_recent_commits(
    client: GitHubClient,
    full_name: str,
    limit: int = COMMIT_SAMPLE_SIZE,
) -> list[CommitItem]:
    try:
        return await client.get_recent_commits(full_name, limit=limit)
    except Exception as e:
        logger.warning("Failed to fetch commits for %s: %s", full_name, e)
        return []


def detect_commit_mentions(commits: Sequence[CommitItem], evidence: EvidenceSet) -> list[Evidence]:
    """
    Add commit-based evidence for tools named in commit messages.

    Tools already present in ``evidence`` (e.g. from the file probe) are not
    re-detected. Returns the newly added items.
    """
    added: list[Evidence] = []
    for commit in commits:
        msg = commit.message.lower()
        for tool, terms in COMMIT_TOOL_TERMS:
            if tool in evidence:
                continue
            if any(term in msg for term in terms):
                item = Evidence(name=tool, detected_via=DetectedVia.COMMITS, evidence_url=commit.html_url)
                evidence.add(item)
                added.append(item)
    return added


def match_bot_logins(logins: Sequence[str]) -> ContributorSignals:
    matched = [login for login in logins if CLAUDE_BOT_RE.match(login or "")]
    return ContributorSignals(has_claude_bot_contributor=bool(matched), matched_bots=matched)


async def probe_contributors(client: GitHubClient, full_name: str) -> ContributorSignals:
    """Match up to 100 contributor logins against the assistant bot pattern."""
    try:
        contributors = await client.get_contributors(full_name, limit=CONTRIBUTOR_SAMPLE_SIZE)
    except Exception as e:
        logger.warning("Failed to fetch contributors for %s: %s", full_name, e)
        return ContributorSignals()
    return match_bot_logins([c.login for c in contributors])


async def probe_package_manager(
    client: GitHubClient,
    full_name: str,
    branch: str,
) -> Optional[PackageManager]:
    """First package manager file present, in lockfile-first priority order."""
    for filename, manager in PACKAGE_MANAGER_FILES:
        try:
            exists = await client.has_path(full_name, filename)
        except Exception as e:
            logger.warning("Package manager probe failed for %s:%s: %s", full_name, filename, e)
            continue
        if exists:
            return PackageManager(
                name=manager,
                detected_via=filename,
                evidence_url=blob_url(full_name, branch, filename),
            )
    return None


async def _first_existing_path(client: GitHubClient, full_name: str, paths: Sequence[str]) -> Optional[str]:
    for path in paths:
        try:
            if await client.has_path(full_name, path):
                return path
        except Exception as e:
            logger.warning("Config probe failed for %s:%s: %s", full_name, path, e)
    return None


async def probe_quality_tooling(client: GitHubClient, full_name: str, branch: str) -> QualityTooling:
    """Look for SAST and lint configuration, falling back to CI workflow names."""
    sast_path, lint_path = await asyncio.gather(
        _first_existing_path(client, full_name, SAST_CONFIG_PATHS),
        _first_existing_path(client, full_name, LINT_CONFIG_PATHS),
    )
    sast_url = None
    if sast_path:
        url_for = tree_url if sast_path in SAST_CONFIG_DIRS else blob_url
        sast_url = url_for(full_name, branch, sast_path)
    lint_url = blob_url(full_name, branch, lint_path) if lint_path else None

    if sast_url is None or lint_url is None:
        try:
            entries = await client.list_directory(full_name, WORKFLOWS_DIR)
        except Exception as e:
            logger.warning("Failed to list workflows for %s: %s", full_name, e)
            entries = []
        for entry in entries:
            if entry.type != "file":
                continue
            if sast_url is None and SAST_WORKFLOW_RE.search(entry.name):
                sast_url = blob_url(full_name, branch, entry.path)
            if lint_url is None and LINT_WORKFLOW_RE.search(entry.name):
                lint_url = blob_url(full_name, branch, entry.path)

    return QualityTooling(
        has_sast=sast_url is not None,
        sast_evidence_url=sast_url,
        has_linting=lint_url is not None,
        lint_evidence_url=lint_url,
    )


async def probe_emoji_reactions(client: GitHubClient, full_name: str) -> int:
    """Sum reactions over up to 5 pages of issues/PRs; stop quietly on failure."""
    total = 0
    for page in range(1, ISSUE_MAX_PAGES + 1):
        try:
            issues = await client.list_issues(full_name, page=page, per_page=ISSUE_PAGE_SIZE)
        except Exception as e:
            logger.debug("Stopping reaction count for %s at page %d: %s", full_name, page, e)
            break
        if not issues:
            break
        total += sum(issue.reactions.total_count for issue in issues if issue.reactions)
        if len(issues) < ISSUE_PAGE_SIZE:
            break
    return total
