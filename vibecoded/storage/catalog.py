"""Sharded JSON catalog of registry projects.

Projects are partitioned by the first character of the owner name into
``projects/{a-z,0-9,other}.json``. Each shard holds ``{schemaVersion, projects}``
sorted by ``full_name``.
"""

from __future__ import annotations

import json
import logging
import os
import string
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from ..utils.repos import repo_key
from .models import Project, ProjectsData

logger = logging.getLogger(__name__)

SHARD_KEYS: tuple[str, ...] = tuple(string.ascii_lowercase + string.digits)
FALLBACK_SHARD = "other"
ALL_SHARDS: tuple[str, ...] = SHARD_KEYS + (FALLBACK_SHARD,)


class CatalogError(RuntimeError):
    """A catalog file exists but cannot be read or parsed."""


def shard_key(full_name: str) -> str:
    """Lowercase first character of the owner, or ``other``."""
    owner = (full_name or "").split("/", 1)[0].lower()
    first = owner[:1]
    if first and first in SHARD_KEYS:
        return first
    return FALLBACK_SHARD


def _sort_key(project: Project) -> tuple[str, str]:
    return (project.full_name.lower(), project.full_name)


def _read_projects_file(path: Path) -> ProjectsData:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CatalogError(f"Cannot read {path}: {e}") from e
    try:
        return ProjectsData.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise CatalogError(f"Invalid catalog file {path}: {e}") from e


def _write_json(path: Path, payload: dict) -> None:
    """Write via a sibling temp file so readers never see a half-written shard."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    os.replace(tmp, path)


class ShardedCatalogStore:
    """File-backed project catalog under ``root/projects``."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.shard_dir = self.root / "projects"
        self.legacy_path = self.root / "projects.json"

    def shard_path(self, key: str) -> Path:
        return self.shard_dir / f"{key}.json"

    def _existing_shards(self) -> list[Path]:
        return [p for p in (self.shard_path(k) for k in ALL_SHARDS) if p.exists()]

    def _load_shard(self, key: str) -> ProjectsData:
        path = self.shard_path(key)
        if not path.exists():
            return ProjectsData()
        return _read_projects_file(path)

    def _save_shard(self, key: str, data: ProjectsData) -> None:
        data.projects.sort(key=_sort_key)
        _write_json(self.shard_path(key), data.to_dict())

    def read_all(self) -> list[Project]:
        """All projects across shards, sorted by name. Missing shards are empty."""
        projects: list[Project] = []
        for path in self._existing_shards():
            projects.extend(_read_projects_file(path).projects)
        projects.sort(key=_sort_key)
        return projects

    def list(self) -> list[Project]:
        return self.read_all()

    def keys(self) -> set[str]:
        return {p.key for p in self.read_all()}

    def get(self, full_name: str) -> Optional[Project]:
        key = repo_key(full_name)
        for project in self._load_shard(shard_key(full_name)).projects:
            if project.key == key:
                return project
        return None

    def upsert(self, project: Project | dict) -> Project:
        """Insert or replace a project (matched case-insensitively by name)."""
        if not isinstance(project, Project):
            project = Project.model_validate(project)
        else:
            # Revalidate so a mutated model cannot write an invalid record.
            project = Project.model_validate(project.to_dict())

        key = shard_key(project.full_name)
        data = self._load_shard(key)
        data.projects = [p for p in data.projects if p.key != project.key]
        data.projects.append(project)
        self._save_shard(key, data)
        return project

    def remove(self, full_name: str) -> bool:
        key = shard_key(full_name)
        data = self._load_shard(key)
        target = repo_key(full_name)
        kept = [p for p in data.projects if p.key != target]
        if len(kept) == len(data.projects):
            return False
        data.projects = kept
        self._save_shard(key, data)
        return True

    def write_all(self, projects: Iterable[Project]) -> None:
        """Distribute projects into shards, replacing those shards wholesale."""
        by_shard: dict[str, list[Project]] = {}
        for project in projects:
            by_shard.setdefault(shard_key(project.full_name), []).append(project)
        for key, items in by_shard.items():
            self._save_shard(key, ProjectsData(projects=items))

    def migrate_from_legacy(self) -> int:
        """
        Split the legacy single-file catalog into shards.

        Only runs when no shard exists yet; returns the number of projects
        migrated (0 when skipped or when there is nothing to migrate).
        """
        if self._existing_shards():
            return 0
        if not self.legacy_path.exists():
            return 0
        data = _read_projects_file(self.legacy_path)
        if not data.projects:
            return 0
        self.write_all(data.projects)
        logger.info("Migrated %d projects from %s into shards", len(data.projects), self.legacy_path)
        return len(data.projects)
