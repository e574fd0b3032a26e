"""Persisted record schema for the registry catalog.

Field names on disk keep the JSON spelling the static site reads
(``full_name`` next to ``commitMessageSignals``), so models declare aliases and
are always dumped with ``by_alias=True``.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..constants import SCHEMA_VERSION, DetectedVia, DetectionLevel, FindingType


class _Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class _CamelRecord(_Record):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", alias_generator=to_camel)


class Evidence(_Record):
    """One unit of proof that an AI coding tool was used."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    name: str
    detected_via: DetectedVia
    evidence_url: Optional[str] = None


class PackageManager(_Record):
    name: str
    detected_via: str
    evidence_url: Optional[str] = None


class CommitMessageSignals(_CamelRecord):
    sample_size: int = 0
    avg_message_length: int = 0
    em_dash_count: int = 0
    en_dash_count: int = 0
    ai_mention_count: int = 0


class CommitSizeSignals(_CamelRecord):
    sampled_commits: int = 0
    avg_changes: int = 0
    median_changes: int = 0
    large_commit_count: int = 0


class ContributorSignals(_CamelRecord):
    has_claude_bot_contributor: bool = False
    matched_bots: list[str] = Field(default_factory=list)


class DetectionSummary(_Record):
    score: int
    level: DetectionLevel
    reasons: list[str] = Field(default_factory=list)


class VulnDetail(_CamelRecord):
    """Normalized scanner finding (dependency vulnerability or leaked secret)."""

    pkg: str
    version: str
    cve: str
    severity: str
    title: str
    fixed_version: Optional[str] = None
    type: FindingType = FindingType.VULN
    target: str = ""
    target_url: Optional[str] = None
    scanned_ref: Optional[str] = None

    @property
    def dedup_key(self) -> str:
        if self.type == FindingType.SECRET:
            return f"secret:{self.cve}:{self.title}"
        return f"vuln:{self.pkg}@{self.version}:{self.cve}"

    @property
    def summary_line(self) -> str:
        if self.type == FindingType.SECRET:
            return f"Secret: {self.title}"
        if self.cve:
            return f"{self.pkg}@{self.version} ({self.cve})"
        return f"{self.pkg}@{self.version}"


class OwnerDetails(_Record):
    login: str
    avatar_url: str
    url: str
    created_at: Optional[str] = None
    followers: Optional[int] = None
    following: Optional[int] = None
    bio: Optional[str] = None
    public_repos: Optional[int] = None
    is_private: bool = False


class ContributorDetails(_Record):
    login: str
    avatar_url: str
    url: str
    created_at: Optional[str] = None
    followers: Optional[int] = None
    following: Optional[int] = None


class ProofSource(_Record):
    label: str
    url: str


class Project(_Record):
    """A cataloged repository: metadata, detection signals and scan findings."""

    full_name: str
    url: str
    description: Optional[str] = None
    stars: int = 0
    commits: Optional[int] = None
    contributors: Optional[int] = None
    forks: Optional[int] = None
    open_issues: Optional[int] = None
    license: Optional[str] = None
    topics: Optional[list[str]] = None
    size: Optional[int] = None
    default_branch: Optional[str] = None
    contributor_details: Optional[list[ContributorDetails]] = Field(default=None, alias="contributorDetails")
    created_at: Optional[str] = None
    language: Optional[str] = None
    languages: Optional[dict[str, int]] = None
    is_archived: bool = False
    owner: Optional[OwnerDetails] = None
    ai_tools: Optional[list[Evidence]] = Field(default=None, alias="aiTools")
    emojis: Optional[int] = None
    package_manager: Optional[PackageManager] = Field(default=None, alias="packageManager")
    commit_message_signals: Optional[CommitMessageSignals] = Field(default=None, alias="commitMessageSignals")
    commit_size_signals: Optional[CommitSizeSignals] = Field(default=None, alias="commitSizeSignals")
    contributor_signals: Optional[ContributorSignals] = Field(default=None, alias="contributorSignals")
    detection_summary: Optional[DetectionSummary] = Field(default=None, alias="detectionSummary")
    has_sast: Optional[bool] = Field(default=None, alias="hasSAST")
    has_linting: Optional[bool] = Field(default=None, alias="hasLinting")
    sast_evidence_url: Optional[str] = Field(default=None, alias="sastEvidenceUrl")
    lint_evidence_url: Optional[str] = Field(default=None, alias="lintEvidenceUrl")
    vulnerable_dependencies: Optional[list[str]] = Field(default=None, alias="vulnerableDependencies")
    vulnerabilities: Optional[list[VulnDetail]] = None
    proof_sources: Optional[list[ProofSource]] = None
    last_updated: Optional[str] = Field(default=None, alias="lastUpdated")

    @property
    def key(self) -> str:
        return self.full_name.lower()


class ProjectsData(_Record):
    """Contents of one catalog shard (or the legacy single-file catalog)."""

    schema_version: int = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    projects: list[Project] = Field(default_factory=list)


class DeniedData(_Record):
    schema_version: int = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    denied: list[str] = Field(default_factory=list)
