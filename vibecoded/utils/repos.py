"""Repository identity helpers."""

from __future__ import annotations

import re

from ..constants import GITHUB_WEB_BASE

GITHUB_RE = re.compile(
    r"^(?:(?:https?://)?(?:www\.)?github\.com/)?"
    r"([a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)/([a-zA-Z0-9_.-]+?)"
    r"(?:\.git)?/?(?:\?.*)?$"
)


def parse_repo(value: str) -> str | None:
    """
    Normalize an owner/repo string or GitHub URL to ``owner/repo``.

    Accepts URLs with or without scheme, ``www.``, trailing slash, ``.git``
    suffix and query string. Returns None for anything else.
    """
    raw = (value or "").strip()
    if not raw:
        return None
    match = GITHUB_RE.match(raw)
    if not match:
        return None
    return f"{match.group(1)}/{match.group(2)}"


def repo_key(full_name: str) -> str:
    """Case-insensitive identity key for a repository."""
    return (full_name or "").strip().lower()


def repo_url(full_name: str) -> str:
    return f"{GITHUB_WEB_BASE}/{full_name}"


def blob_url(full_name: str, ref: str, path: str) -> str:
    return f"{GITHUB_WEB_BASE}/{full_name}/blob/{ref}/{path}"


def tree_url(full_name: str, ref: str, path: str) -> str:
    return f"{GITHUB_WEB_BASE}/{full_name}/tree/{ref}/{path}"
