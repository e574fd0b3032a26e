"""Per-repository detection pass: collect evidence, aggregate signals, score."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..discovery.scorer import DetectionScorer
from ..github.client import GitHubClient
from ..storage.models import (
    CommitMessageSignals,
    CommitSizeSignals,
    ContributorSignals,
    DetectionSummary,
    Evidence,
    PackageManager,
)
from .collectors import (
    detect_commit_mentions,
    fetch_default_branch,
    fetch_recent_commits,
    probe_contributors,
    probe_emoji_reactions,
    probe_package_manager,
    probe_quality_tooling,
    probe_tool_files,
)
from .evidence import EvidenceSet
from .signals import commit_message_signals, commit_size_signals

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    """Everything one detection pass learned about a repository."""

    full_name: str
    default_branch: str
    ai_tools: list[Evidence] = field(default_factory=list)
    emojis: int = 0
    package_manager: Optional[PackageManager] = None
    commit_message_signals: CommitMessageSignals = field(default_factory=CommitMessageSignals)
    commit_size_signals: CommitSizeSignals = field(default_factory=CommitSizeSignals)
    contributor_signals: ContributorSignals = field(default_factory=ContributorSignals)
    detection_summary: Optional[DetectionSummary] = None
    has_sast: bool = False
    has_linting: bool = False
    sast_evidence_url: Optional[str] = None
    lint_evidence_url: Optional[str] = None
    should_surface: bool = False

    def to_dict(self) -> dict:
        return {
            "full_name": self.full_name,
            "default_branch": self.default_branch,
            "aiTools": [e.to_dict() for e in self.ai_tools],
            "emojis": self.emojis,
            "packageManager": self.package_manager.to_dict() if self.package_manager else None,
            "commitMessageSignals": self.commit_message_signals.to_dict(),
            "commitSizeSignals": self.commit_size_signals.to_dict(),
            "contributorSignals": self.contributor_signals.to_dict(),
            "detectionSummary": self.detection_summary.to_dict() if self.detection_summary else None,
            "hasSAST": self.has_sast,
            "hasLinting": self.has_linting,
            "sastEvidenceUrl": self.sast_evidence_url,
            "lintEvidenceUrl": self.lint_evidence_url,
            "shouldSurface": self.should_surface,
        }


class RepositoryDetector:
    """
    Runs the evidence probes for one repository and scores the result.

    Reactions and the commit listing start alongside the default-branch lookup;
    the path probes (files, package manager, SAST/lint config) follow the
    lookup because their evidence URLs name the branch. Commit mentions, commit
    sizes and contributor matching are sequenced after the commit listing.
    """

    def __init__(self, client: GitHubClient, scorer: DetectionScorer | None = None):
        self.client = client
        self.scorer = scorer or DetectionScorer()

    async def _probe_paths(self, full_name: str):
        client = self.client
        branch = await fetch_default_branch(client, full_name)
        file_evidence, package_manager, tooling = await asyncio.gather(
            probe_tool_files(client, full_name, branch),
            probe_package_manager(client, full_name, branch),
            probe_quality_tooling(client, full_name, branch),
        )
        return branch, file_evidence, package_manager, tooling

    async def detect(self, full_name: str) -> DetectionResult:
        client = self.client
        (branch, file_evidence, package_manager, tooling), emojis, commits = await asyncio.gather(
            self._probe_paths(full_name),
            probe_emoji_reactions(client, full_name),
            fetch_recent_commits(client, full_name),
        )

        evidence = EvidenceSet(file_evidence)
        detect_commit_mentions(commits, evidence)
        message_signals = commit_message_signals(commits)
        size_signals = await commit_size_signals(client, full_name, commits)
        contributor_signals = await probe_contributors(client, full_name)

        ai_tools = evidence.to_list()
        summary = self.scorer.score(ai_tools, message_signals, size_signals, contributor_signals)
        surface = self.scorer.should_surface(summary, ai_tools, message_signals, contributor_signals)

        logger.info(
            "Detection for %s: score=%d level=%s tools=%s",
            full_name,
            summary.score,
            summary.level.value,
            ", ".join(evidence.names()) or "none",
        )

        return DetectionResult(
            full_name=full_name,
            default_branch=branch,
            ai_tools=ai_tools,
            emojis=emojis,
            package_manager=package_manager,
            commit_message_signals=message_signals,
            commit_size_signals=size_signals,
            contributor_signals=contributor_signals,
            detection_summary=summary,
            has_sast=tooling.has_sast,
            has_linting=tooling.has_linting,
            sast_evidence_url=tooling.sast_evidence_url,
            lint_evidence_url=tooling.lint_evidence_url,
            should_surface=surface,
        )
