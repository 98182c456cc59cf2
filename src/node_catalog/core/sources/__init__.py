"""Remote node sources."""

from node_catalog.core.sources.base import RemoteNodeSource
from node_catalog.core.sources.github import GitHubNodeSource, package_name_for_path

__all__ = [
    "GitHubNodeSource",
    "RemoteNodeSource",
    "package_name_for_path",
]
