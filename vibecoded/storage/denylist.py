"""Denylist of repositories that must never be cataloged or rediscovered."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from .catalog import CatalogError, _write_json
from .models import DeniedData

logger = logging.getLogger(__name__)


class Denylist:
    def __init__(self, path: Path):
        self.path = Path(path)

    def _read(self) -> DeniedData:
        if not self.path.exists():
            return DeniedData()
        try:
            return DeniedData.model_validate(json.loads(self.path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise CatalogError(f"Invalid denylist {self.path}: {e}") from e

    def load(self) -> set[str]:
        """Denied repositories as lowercase names."""
        return {name.lower() for name in self._read().denied}

    def __contains__(self, full_name: str) -> bool:
        return (full_name or "").lower() in self.load()

    def add(self, full_name: str) -> bool:
        """Add a repository; False if it was already denied (case-insensitive)."""
        data = self._read()
        lowered = full_name.lower()
        if any(name.lower() == lowered for name in data.denied):
            return False
        data.denied.append(full_name)
        data.denied.sort()
        _write_json(self.path, data.to_dict())
        logger.info("Added %s to denylist", full_name)
        return True
