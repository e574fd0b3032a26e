"""Typed views over GitHub REST API responses.

Every response that crosses into the registry is validated here; a shape
mismatch raises ``pydantic.ValidationError`` instead of leaking ``None``
further down the pipeline.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RepoOwner(_ApiModel):
    login: str
    avatar_url: str
    html_url: str


class RepoLicense(_ApiModel):
    name: str


class GitHubRepo(_ApiModel):
    """Repository metadata (GET /repos/{owner}/{repo})."""

    full_name: str
    description: str | None = None
    stargazers_count: int
    created_at: str
    language: str | None = None
    archived: bool
    html_url: str
    forks_count: int | None = None
    open_issues_count: int | None = None
    license: RepoLicense | None = None
    topics: list[str] | None = None
    size: int | None = None
    default_branch: str | None = None
    owner: RepoOwner


class GitHubUser(_ApiModel):
    """User profile (GET /users/{login})."""

    login: str
    avatar_url: str
    html_url: str
    created_at: str | None = None
    followers: int | None = None
    following: int | None = None
    bio: str | None = None
    public_repos: int | None = None


class Contributor(_ApiModel):
    login: str
    avatar_url: str = ""
    html_url: str | None = None


class CommitAuthor(_ApiModel):
    message: str = ""


class CommitItem(_ApiModel):
    """Entry of GET /repos/{owner}/{repo}/commits."""

    sha: str | None = None
    html_url: str = ""
    commit: CommitAuthor | None = None

    @property
    def message(self) -> str:
        return self.commit.message if self.commit else ""


class CommitStats(_ApiModel):
    total: int = 0
    additions: int = 0
    deletions: int = 0


class CommitDetail(_ApiModel):
    """Single commit with stats (GET /repos/{owner}/{repo}/commits/{sha})."""

    sha: str
    stats: CommitStats | None = None

    @property
    def total_changes(self) -> int:
        return self.stats.total if self.stats else 0


class ContentEntry(_ApiModel):
    """Entry of a directory listing (GET /repos/{owner}/{repo}/contents/{path})."""

    name: str
    path: str
    type: str
    html_url: str | None = None


class Reactions(_ApiModel):
    total_count: int = 0


class IssueItem(_ApiModel):
    reactions: Reactions | None = None


class SearchRepository(_ApiModel):
    """Repository record as embedded in search results."""

    full_name: str
    description: str | None = None
    stargazers_count: int | None = None


class CodeSearchItem(_ApiModel):
    repository: SearchRepository


class CommitSearchItem(_ApiModel):
    repository: SearchRepository


class SearchResponse(_ApiModel):
    total_count: int = 0
    items: list[dict] = Field(default_factory=list)
