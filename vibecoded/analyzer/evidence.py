"""Ordered, first-seen-wins collection of AI tool evidence."""

from __future__ import annotations

from typing import Iterable, Iterator

from ..constants import DetectedVia
from ..storage.models import Evidence


class EvidenceSet:
    """
    Evidence keyed by tool name, preserving insertion order.

    The file probe runs before the commit probe, so a tool found in both keeps
    its file-based evidence.
    """

    def __init__(self, items: Iterable[Evidence] = ()):
        self._items: dict[str, Evidence] = {}
        for item in items:
            self.add(item)

    def add(self, item: Evidence) -> bool:
        """Insert if the tool is not yet present; return whether it was added."""
        if item.name in self._items:
            return False
        self._items[item.name] = item
        return True

    def __contains__(self, name: object) -> bool:
        return name in self._items

    def __iter__(self) -> Iterator[Evidence]:
        return iter(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def names(self) -> list[str]:
        return list(self._items)

    def by_source(self, via: DetectedVia) -> list[Evidence]:
        return [item for item in self._items.values() if item.detected_via == via]

    def to_list(self) -> list[Evidence]:
        return list(self._items.values())
