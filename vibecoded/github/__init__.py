"""GitHub REST API gateway and response schemas."""

from .client import GitHubClient, GitHubError, RateLimitError, compute_rate_limit_wait
from .schemas import (
    CommitDetail,
    CommitItem,
    ContentEntry,
    Contributor,
    GitHubRepo,
    GitHubUser,
    SearchRepository,
)

__all__ = [
    "GitHubClient",
    "GitHubError",
    "RateLimitError",
    "compute_rate_limit_wait",
    "CommitDetail",
    "CommitItem",
    "ContentEntry",
    "Contributor",
    "GitHubRepo",
    "GitHubUser",
    "SearchRepository",
]
