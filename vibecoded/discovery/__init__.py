"""Discovery modules: detection scoring and search-based candidate discovery."""

from .scorer import DetectionScorer
from .search_discovery import (
    DEFAULT_QUERIES,
    Candidate,
    DiscoveredProject,
    DiscoveryEngine,
    SearchQuery,
)

__all__ = [
    "DEFAULT_QUERIES",
    "Candidate",
    "DetectionScorer",
    "DiscoveredProject",
    "DiscoveryEngine",
    "SearchQuery",
]
