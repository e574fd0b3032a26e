"""Detection scoring for AI-assisted repositories."""

from __future__ import annotations

from typing import Iterable, Optional

from ..constants import (
    AI_MENTION_POINTS,
    BOT_CONTRIBUTOR_POINTS,
    COMMIT_EVIDENCE_POINTS,
    DASH_PUNCTUATION_POINTS,
    FILE_EVIDENCE_POINTS,
    LARGE_COMMIT_CHANGES,
    LARGE_COMMIT_POINTS,
    MIN_AI_MENTION_COMMITS,
    SURFACE_MIN_SCORE,
    DetectedVia,
    DetectionLevel,
)
from ..storage.models import (
    CommitMessageSignals,
    CommitSizeSignals,
    ContributorSignals,
    DetectionSummary,
    Evidence,
)


class DetectionScorer:
    """Scores a repository's aggregated signals for AI-assisted development."""

    def score(
        self,
        evidence: Iterable[Evidence],
        message_signals: Optional[CommitMessageSignals] = None,
        size_signals: Optional[CommitSizeSignals] = None,
        contributor_signals: Optional[ContributorSignals] = None,
    ) -> DetectionSummary:
        """Additive score, three-level label and one reason per triggered rule."""
        items = list(evidence)
        message_signals = message_signals or CommitMessageSignals()
        size_signals = size_signals or CommitSizeSignals()
        contributor_signals = contributor_signals or ContributorSignals()

        score = 0
        reasons: list[str] = []

        for points, reason in (
            self._check_file_evidence(items),
            self._check_commit_evidence(items),
            self._check_bot_contributors(contributor_signals),
            self._check_dash_punctuation(message_signals),
            self._check_ai_mentions(message_signals),
            self._check_large_commits(size_signals),
        ):
            if points:
                score += points
                reasons.append(reason)

        return DetectionSummary(
            score=score,
            level=DetectionLevel.from_score(score),
            reasons=reasons,
        )

    def should_surface(
        self,
        summary: DetectionSummary,
        evidence: Iterable[Evidence],
        message_signals: Optional[CommitMessageSignals] = None,
        contributor_signals: Optional[ContributorSignals] = None,
    ) -> bool:
        """
        Whether a verified candidate is worth persisting.

        Needs the score threshold plus at least one strong signal category:
        commit-message heuristics alone never qualify.
        """
        if summary.score < SURFACE_MIN_SCORE:
            return False
        has_file_evidence = any(e.detected_via == DetectedVia.FILE for e in evidence)
        has_ai_mentions = bool(
            message_signals and message_signals.ai_mention_count >= MIN_AI_MENTION_COMMITS
        )
        has_bot = bool(contributor_signals and contributor_signals.has_claude_bot_contributor)
        return has_file_evidence or has_ai_mentions or has_bot

    def _check_file_evidence(self, items: list[Evidence]) -> tuple[int, str]:
        names = [e.name for e in items if e.detected_via == DetectedVia.FILE]
        if not names:
            return 0, ""
        return FILE_EVIDENCE_POINTS * len(names), f"AI tool config files: {', '.join(names)}"

    def _check_commit_evidence(self, items: list[Evidence]) -> tuple[int, str]:
        names = [e.name for e in items if e.detected_via == DetectedVia.COMMITS]
        if not names:
            return 0, ""
        return COMMIT_EVIDENCE_POINTS * len(names), f"AI tools named in commits: {', '.join(names)}"

    def _check_bot_contributors(self, signals: ContributorSignals) -> tuple[int, str]:
        if not signals.has_claude_bot_contributor:
            return 0, ""
        return BOT_CONTRIBUTOR_POINTS, f"AI bot contributor: {', '.join(signals.matched_bots)}"

    def _check_dash_punctuation(self, signals: CommitMessageSignals) -> tuple[int, str]:
        if not (signals.em_dash_count or signals.en_dash_count):
            return 0, ""
        return (
            DASH_PUNCTUATION_POINTS,
            f"Dash punctuation in commit messages ({signals.em_dash_count} em, {signals.en_dash_count} en)",
        )

    def _check_ai_mentions(self, signals: CommitMessageSignals) -> tuple[int, str]:
        if signals.ai_mention_count < MIN_AI_MENTION_COMMITS:
            return 0, ""
        return (
            AI_MENTION_POINTS,
            f"{signals.ai_mention_count} of {signals.sample_size} sampled commits mention AI tools",
        )

    def _check_large_commits(self, signals: CommitSizeSignals) -> tuple[int, str]:
        if signals.large_commit_count < 1:
            return 0, ""
        return (
            LARGE_COMMIT_POINTS,
            f"{signals.large_commit_count} large commits (>= {LARGE_COMMIT_CHANGES} lines changed)",
        )
