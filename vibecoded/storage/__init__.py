"""Storage modules for the registry."""

from .catalog import CatalogError, ShardedCatalogStore, shard_key
from .denylist import Denylist
from .models import Project, ProjectsData, VulnDetail

__all__ = [
    "CatalogError",
    "Denylist",
    "Project",
    "ProjectsData",
    "ShardedCatalogStore",
    "VulnDetail",
    "shard_key",
]
