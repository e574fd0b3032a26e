"""Tests for commit signal aggregators."""

import pytest

from vibecoded.analyzer.signals import (
    commit_message_signals,
    commit_size_signals,
    median,
    round_half_up,
    summarize_commit_sizes,
)
from vibecoded.github.client import GitHubError
from vibecoded.github.schemas import CommitDetail, CommitItem


def _commits(*messages):
    return [
        CommitItem.model_validate({"sha": f"{i:040x}", "commit": {"message": m}})
        for i, m in enumerate(messages, start=1)
    ]


def test_round_half_up():
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4) == 2
    assert round_half_up(0) == 0


def test_median():
    assert median([]) == 0
    assert median([1, 2, 3]) == 2
    assert median([1, 2]) == 2
    assert median([10, 1, 5, 2]) == 4


class TestCommitMessageSignals:
    def test_counts(self):
        signals = commit_message_signals(
            _commits(
                "Fix bug — really",
                "Add – thing",
                "Generated with Claude Code",
                "cursor and copilot",
            )
        )
        assert signals.sample_size == 4
        assert signals.avg_message_length == 18
        assert signals.em_dash_count == 1
        assert signals.en_dash_count == 1
        assert signals.ai_mention_count == 2

    def test_mention_counted_once_per_commit(self):
        signals = commit_message_signals(_commits("claude cursor copilot gemini"))
        assert signals.ai_mention_count == 1

    def test_empty(self):
        signals = commit_message_signals([])
        assert signals.sample_size == 0
        assert signals.avg_message_length == 0
        assert signals.to_dict() == {
            "sampleSize": 0,
            "avgMessageLength": 0,
            "emDashCount": 0,
            "enDashCount": 0,
            "aiMentionCount": 0,
        }


class TestCommitSizeSignals:
    def test_summary(self):
        signals = summarize_commit_sizes([600, 10, 20, 500])
        assert signals.sampled_commits == 4
        assert signals.avg_changes == 283
        assert signals.median_changes == 260
        assert signals.large_commit_count == 2

    def test_empty(self):
        assert summarize_commit_sizes([]).sampled_commits == 0

    @pytest.mark.asyncio
    async def test_failed_fetch_counts_as_zero(self):
        commits = _commits(*[f"commit {i}" for i in range(10)])
        sizes = {commits[0].sha: 100, commits[2].sha: 300}
        requested: list[str] = []

        class _Client:
            async def get_commit(self, full_name, sha):
                requested.append(sha)
                if sha == commits[1].sha:
                    raise GitHubError(502, "bad gateway")
                return CommitDetail.model_validate({"sha": sha, "stats": {"total": sizes.get(sha, 0)}})

        signals = await commit_size_signals(_Client(), "acme/repo", commits)

        assert len(requested) == 8
        assert requested == [c.sha for c in commits[:8]]
        assert signals.sampled_commits == 8
        assert signals.avg_changes == 50
        assert signals.median_changes == 0
        assert signals.large_commit_count == 0
