"""Signal aggregators: statistical fingerprints over commits."""

from __future__ import annotations

import logging
import math
from typing import Sequence

from ..constants import COMMIT_SIZE_SAMPLE, LARGE_COMMIT_CHANGES
from ..github.client import GitHubClient
from ..github.schemas import CommitItem
from ..storage.models import CommitMessageSignals, CommitSizeSignals

logger = logging.getLogger(__name__)

EM_DASH = "—"
EN_DASH = "–"

AI_MENTION_TERMS: tuple[str, ...] = (
    "claude",
    "cursor",
    "copilot",
    "gemini",
    "chatgpt",
    "openai",
    "gpt-4",
    "gpt-5",
    "codex",
    "windsurf",
    "aider",
    "generated with",
    "ai-generated",
)


def round_half_up(value: float) -> int:
    """Integer rounding with halves rounded up (2.5 -> 3), unlike round()."""
    return int(math.floor(value + 0.5))


def median(values: Sequence[int]) -> int:
    if not values:
        return 0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return round_half_up((ordered[mid - 1] + ordered[mid]) / 2)


def mentions_ai_tool(message: str) -> bool:
    lowered = (message or "").lower()
    return any(term in lowered for term in AI_MENTION_TERMS)


def commit_message_signals(commits: Sequence[CommitItem]) -> CommitMessageSignals:
    """Message length, dash punctuation and AI-mention counts over a commit sample."""
    messages = [c.message for c in commits]
    if not messages:
        return CommitMessageSignals()

    total_length = sum(len(m) for m in messages)
    return CommitMessageSignals(
        sample_size=len(messages),
        avg_message_length=round_half_up(total_length / len(messages)),
        em_dash_count=sum(m.count(EM_DASH) for m in messages),
        en_dash_count=sum(m.count(EN_DASH) for m in messages),
        # One per commit, however many terms a message contains.
        ai_mention_count=sum(1 for m in messages if mentions_ai_tool(m)),
    )


def summarize_commit_sizes(changes: Sequence[int]) -> CommitSizeSignals:
    if not changes:
        return CommitSizeSignals()
    return CommitSizeSignals(
        sampled_commits=len(changes),
        avg_changes=round_half_up(sum(changes) / len(changes)),
        median_changes=median(changes),
        large_commit_count=sum(1 for c in changes if c >= LARGE_COMMIT_CHANGES),
    )


async def commit_size_signals(
    client: GitHubClient,
    full_name: str,
    commits: Sequence[CommitItem],
    sample: int = COMMIT_SIZE_SAMPLE,
) -> CommitSizeSignals:
    """
    Fetch per-commit change totals for the most recent commits.

    One request per commit, issued sequentially. A failed fetch counts as zero
    changes for that commit rather than aborting the batch.
    """
    shas = [c.sha for c in commits if c.sha][:sample]
    changes: list[int] = []
    for sha in shas:
        try:
            detail = await client.get_commit(full_name, sha)
            changes.append(detail.total_changes)
        except Exception as e:
            logger.warning("Failed to fetch stats for %s@%s: %s", full_name, sha[:7], e)
            changes.append(0)
    return summarize_commit_sizes(changes)
