"""Rate-limited GitHub REST API gateway.

This is the only place in the registry that retries network calls. Rate-limit
responses (429, and 403s that carry a rate-limit signal) are retried after a
clamped backoff; every other non-2xx response raises ``GitHubError``.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from ..constants import (
    GITHUB_API_BASE,
    MAX_REQUEST_ATTEMPTS,
    RATE_LIMIT_DEFAULT_WAIT,
    RATE_LIMIT_MAX_WAIT,
    RATE_LIMIT_MIN_WAIT,
    USER_AGENT,
)
from .schemas import (
    CodeSearchItem,
    CommitDetail,
    CommitItem,
    CommitSearchItem,
    ContentEntry,
    Contributor,
    GitHubRepo,
    GitHubUser,
    IssueItem,
    SearchRepository,
    SearchResponse,
)

logger = logging.getLogger(__name__)

_LAST_PAGE_RE = re.compile(r'<[^>]+[?&]page=(\d+)>[^>]*;\s*rel="last"')


class GitHubError(Exception):
    """GitHub API returned a non-2xx response."""

    def __init__(self, status: int, body: str, message: str | None = None):
        super().__init__(message or f"GitHub API {status}: {body[:200]}")
        self.status = status
        self.body = body


class RateLimitError(GitHubError):
    """Rate limit persisted after the retry budget was spent."""


def is_rate_limited(status: int, headers: Mapping[str, str], body: str) -> bool:
    """Whether a response is a rate-limit signal rather than a hard failure."""
    if status == 429:
        return True
    if status != 403:
        return False
    if headers.get("retry-after"):
        return True
    if headers.get("x-ratelimit-remaining") == "0":
        return True
    return "rate limit" in (body or "").lower()


def compute_rate_limit_wait(headers: Mapping[str, str], now: float) -> float:
    """
    Seconds to wait before retrying a rate-limited request.

    Prefers ``Retry-After``, then ``X-RateLimit-Reset`` (plus a 1s buffer),
    else a 90s default. Always clamped to [1s, 5min]; an over-long wait is
    capped rather than aborted.
    """
    wait: float | None = None

    retry_after = (headers.get("retry-after") or "").strip()
    if retry_after:
        try:
            wait = float(int(retry_after))
        except ValueError:
            wait = None

    if wait is None:
        reset = (headers.get("x-ratelimit-reset") or "").strip()
        if reset:
            try:
                wait = float(int(reset)) - now + 1.0
            except ValueError:
                wait = None

    if wait is None:
        wait = RATE_LIMIT_DEFAULT_WAIT

    return max(RATE_LIMIT_MIN_WAIT, min(wait, RATE_LIMIT_MAX_WAIT))


class GitHubClient:
    """
    Async GitHub REST client.

    The credential is passed in explicitly; a missing token is not an error,
    it only lowers the rate limit GitHub applies. ``client``, ``sleep`` and
    ``clock`` are injectable for tests.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        client: httpx.AsyncClient | None = None,
        api_base: str = GITHUB_API_BASE,
        max_attempts: int = MAX_REQUEST_ATTEMPTS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._token = (token or "").strip() or None
        self._client = client
        self._owns_client = client is None
        self.api_base = api_base.rstrip("/")
        self.max_attempts = max(1, int(max_attempts))
        self._sleep = sleep
        self._clock = clock

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
        }
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            # TODO: add a per-request timeout once stuck workers show up in refresh-all runs.
            self._client = httpx.AsyncClient(timeout=None, follow_redirects=True)
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _url(self, path_or_url: str) -> str:
        if "://" in path_or_url:
            return path_or_url
        return f"{self.api_base}/{path_or_url.lstrip('/')}"

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Perform a request, retrying on rate-limit signals only."""
        client = self._get_client()
        merged = {**self._headers(), **(headers or {})}
        target = self._url(url)

        for attempt in range(1, self.max_attempts + 1):
            resp = await client.request(method, target, params=params, headers=merged)
            if resp.is_success:
                return resp

            body = resp.text
            if not is_rate_limited(resp.status_code, resp.headers, body):
                raise GitHubError(resp.status_code, body)

            if attempt >= self.max_attempts:
                raise RateLimitError(
                    resp.status_code,
                    body,
                    f"GitHub rate limit persisted after {attempt} attempts: {target}",
                )

            wait = compute_rate_limit_wait(resp.headers, self._clock())
            logger.warning(
                "GitHub rate limit hit (%s, attempt %d/%d); waiting %.0fs",
                resp.status_code,
                attempt,
                self.max_attempts,
                wait,
            )
            await self._sleep(wait)

        # Unreachable: the loop either returns or raises.
        raise RateLimitError(429, "", f"GitHub rate limit: {target}")

    async def get_json(self, url: str, params: Mapping[str, Any] | None = None) -> Any:
        resp = await self.request(url, params=params)
        if not resp.content:
            return None
        return resp.json()

    # Repository metadata

    async def get_repo(self, full_name: str) -> GitHubRepo:
        return GitHubRepo.model_validate(await self.get_json(f"repos/{full_name}"))

    async def get_user(self, login: str) -> GitHubUser:
        return GitHubUser.model_validate(await self.get_json(f"users/{login}"))

    async def get_languages(self, full_name: str) -> dict[str, int]:
        data = await self.get_json(f"repos/{full_name}/languages")
        if not isinstance(data, dict):
            raise GitHubError(200, str(data)[:200], "Unexpected languages payload")
        return {str(k): int(v) for k, v in data.items()}

    async def get_contributors(self, full_name: str, limit: int = 100) -> list[Contributor]:
        data = await self.get_json(f"repos/{full_name}/contributors", params={"per_page": limit})
        # Empty repositories answer 204 with no body upstream; treat non-lists as empty.
        if not isinstance(data, list):
            return []
        return [Contributor.model_validate(item) for item in data]

    async def get_count(self, path: str) -> int | None:
        """Count items of a paginated listing via the Link header of a 1-item page."""
        try:
            resp = await self.request(path, params={"per_page": 1})
        except GitHubError as e:
            logger.debug("Count lookup failed for %s: %s", path, e)
            return None

        link = resp.headers.get("link")
        if link:
            match = _LAST_PAGE_RE.search(link)
            if match:
                return int(match.group(1))
        try:
            data = resp.json()
        except ValueError:
            return None
        return len(data) if isinstance(data, list) else None

    # Contents

    async def has_path(self, full_name: str, path: str) -> bool:
        """Whether a file or directory exists (404 means no; other errors raise)."""
        try:
            await self.request(f"repos/{full_name}/contents/{path}")
        except GitHubError as e:
            if e.status == 404:
                return False
            raise
        return True

    async def list_directory(self, full_name: str, path: str) -> list[ContentEntry]:
        """List a directory; a missing directory is an empty listing."""
        try:
            data = await self.get_json(f"repos/{full_name}/contents/{path}")
        except GitHubError as e:
            if e.status == 404:
                return []
            raise
        if not isinstance(data, list):
            return []
        return [ContentEntry.model_validate(item) for item in data]

    # Commits

    async def get_recent_commits(self, full_name: str, limit: int = 100) -> list[CommitItem]:
        data = await self.get_json(f"repos/{full_name}/commits", params={"per_page": limit})
        if not isinstance(data, list):
            raise GitHubError(200, str(data)[:200], "Unexpected commits payload")
        return [CommitItem.model_validate(item) for item in data]

    async def get_commit(self, full_name: str, sha: str) -> CommitDetail:
        return CommitDetail.model_validate(await self.get_json(f"repos/{full_name}/commits/{sha}"))

    async def resolve_ref(self, full_name: str, ref: str) -> str:
        """Resolve a branch name to the commit SHA it currently points at."""
        detail = await self.get_commit(full_name, ref)
        return detail.sha

    # Issues

    async def list_issues(self, full_name: str, *, page: int, per_page: int = 100) -> list[IssueItem]:
        data = await self.get_json(
            f"repos/{full_name}/issues",
            params={"state": "all", "per_page": per_page, "page": page},
        )
        if not isinstance(data, list):
            raise GitHubError(200, str(data)[:200], "Unexpected issues payload")
        return [IssueItem.model_validate(item) for item in data]

    # Search

    async def _search(self, endpoint: str, query: str, per_page: int) -> SearchResponse:
        data = await self.get_json(f"search/{endpoint}", params={"q": query, "per_page": per_page})
        return SearchResponse.model_validate(data)

    async def search_code(self, query: str, per_page: int = 30) -> list[SearchRepository]:
        result = await self._search("code", query, per_page)
        return [CodeSearchItem.model_validate(item).repository for item in result.items]

    async def search_commits(self, query: str, per_page: int = 30) -> list[SearchRepository]:
        result = await self._search("commits", query, per_page)
        return [CommitSearchItem.model_validate(item).repository for item in result.items]

    async def search_repos(self, query: str, per_page: int = 30) -> list[SearchRepository]:
        result = await self._search("repositories", query, per_page)
        return [SearchRepository.model_validate(item) for item in result.items]
