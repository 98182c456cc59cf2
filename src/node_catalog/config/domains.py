"""Domain-specific configuration dataclasses.

Contains small, focused configuration classes for the three moving parts of
the catalog: the remote source adapter, the persistent node cache, and the
lazy registry.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from node_catalog.config.parsing import _parse_list

DEFAULT_NODE_PATHS = [
    "packages/nodes-base/nodes",
    "packages/@n8n/nodes-langchain/nodes",
]

DEFAULT_NAMESPACE_PREFIXES = [
    "n8n-nodes-base.",
    "@n8n/n8n-nodes-langchain.",
]

DEFAULT_POPULAR_NODES = [
    "http-request",
    "openai",
    "postgres",
    "slack",
    "google-sheets",
]


@dataclass
class RemoteSourceConfig:
    """Configuration for the GitHub-backed remote source adapter.

    Attributes:
        api_base_url: GitHub REST API base URL
        owner: Repository owner
        repo: Repository name
        branch: Branch whose head commit is the version token
        node_paths: Repository paths scanned for ``*.node.ts`` files
        token: Optional GitHub token (falls back to GITHUB_TOKEN)
        timeout: Per-request timeout in seconds; also bounds each version check
        fetch_timeout: Upper bound in seconds for one whole fetch_all walk
        max_retries: Retry attempts for transient failures
        max_concurrent_fetches: Parallel blob downloads during fetch_all
    """

    api_base_url: str = "https://api.github.com"
    owner: str = "n8n-io"
    repo: str = "n8n"
    branch: str = "master"
    node_paths: List[str] = field(default_factory=lambda: list(DEFAULT_NODE_PATHS))
    token: Optional[str] = None
    timeout: float = 30.0
    fetch_timeout: float = 600.0
    max_retries: int = 3
    max_concurrent_fetches: int = 8

    def resolved_token(self) -> Optional[str]:
        """Return the configured token or the GITHUB_TOKEN env var."""
        return self.token or os.environ.get("GITHUB_TOKEN") or None

    @classmethod
    def from_toml_dict(
        cls, data: Dict[str, Any], base: Optional["RemoteSourceConfig"] = None
    ) -> "RemoteSourceConfig":
        """Create config from TOML dict (typically [remote] section).

        Args:
            data: Dict from TOML parsing
            base: Values for keys absent from ``data`` (default: built-in defaults)

        Returns:
            RemoteSourceConfig instance
        """
        defaults = base or cls()
        return cls(
            api_base_url=str(data.get("api_base_url", defaults.api_base_url)),
            owner=str(data.get("owner", defaults.owner)),
            repo=str(data.get("repo", defaults.repo)),
            branch=str(data.get("branch", defaults.branch)),
            node_paths=_parse_list(data["node_paths"]) if "node_paths" in data else defaults.node_paths,
            token=data.get("token") or defaults.token,
            timeout=float(data.get("timeout", defaults.timeout)),
            fetch_timeout=float(data.get("fetch_timeout", defaults.fetch_timeout)),
            max_retries=int(data.get("max_retries", defaults.max_retries)),
            max_concurrent_fetches=int(
                data.get("max_concurrent_fetches", defaults.max_concurrent_fetches)
            ),
        )


@dataclass
class CacheConfig:
    """Configuration for the persistent node cache.

    Attributes:
        dir: Directory holding the cache file and its lock
        file_name: Cache file name inside ``dir``
        lock_timeout: Seconds to wait for the cache file lock
        known_categories: Categories indexed by the cache (empty = built-in set)
    """

    dir: Path = field(default_factory=lambda: Path.home() / ".node-catalog" / "cache")
    file_name: str = "node-cache.json"
    lock_timeout: float = 5.0
    known_categories: List[str] = field(default_factory=list)

    @property
    def path(self) -> Path:
        return self.dir.expanduser() / self.file_name

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any], base: Optional["CacheConfig"] = None) -> "CacheConfig":
        """Create config from TOML dict (typically [cache] section)."""
        defaults = base or cls()
        return cls(
            dir=Path(data["dir"]) if "dir" in data else defaults.dir,
            file_name=str(data.get("file_name", defaults.file_name)),
            lock_timeout=float(data.get("lock_timeout", defaults.lock_timeout)),
            known_categories=(
                _parse_list(data["known_categories"])
                if "known_categories" in data
                else defaults.known_categories
            ),
        )


@dataclass
class RegistryConfig:
    """Configuration for the in-process lazy registry.

    Attributes:
        category_load_cap: Max lazily-resolved members per category lookup
        default_search_limit: Result cap used when search() gets no limit
        popular_nodes: Short names resolved by the background preload
        namespace_prefixes: Prefixes stripped when matching loader short names
        max_concurrent_loads: Parallel loads during load_all()
    """

    category_load_cap: int = 20
    default_search_limit: int = 20
    popular_nodes: List[str] = field(default_factory=lambda: list(DEFAULT_POPULAR_NODES))
    namespace_prefixes: List[str] = field(
        default_factory=lambda: list(DEFAULT_NAMESPACE_PREFIXES)
    )
    max_concurrent_loads: int = 8

    @classmethod
    def from_toml_dict(
        cls, data: Dict[str, Any], base: Optional["RegistryConfig"] = None
    ) -> "RegistryConfig":
        """Create config from TOML dict (typically [registry] section)."""
        defaults = base or cls()
        return cls(
            category_load_cap=int(data.get("category_load_cap", defaults.category_load_cap)),
            default_search_limit=int(
                data.get("default_search_limit", defaults.default_search_limit)
            ),
            popular_nodes=(
                _parse_list(data["popular_nodes"]) if "popular_nodes" in data else defaults.popular_nodes
            ),
            namespace_prefixes=(
                _parse_list(data["namespace_prefixes"])
                if "namespace_prefixes" in data
                else defaults.namespace_prefixes
            ),
            max_concurrent_loads=int(
                data.get("max_concurrent_loads", defaults.max_concurrent_loads)
            ),
        )
