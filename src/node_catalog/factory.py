"""Constructors wiring configuration to the registry and the sync coordinator.

There is no process-wide registry or coordinator: callers build the objects
they need and pass them to their consumers.

Example:
    from node_catalog.config import get_config
    from node_catalog.factory import create_coordinator, create_registry

    config = get_config()
    registry = create_registry(config)
    coordinator = create_coordinator(config)
"""

import logging
from typing import Optional

from node_catalog.config import CatalogConfig, get_config
from node_catalog.core.discovery import (
    CORE_NODE_FILES,
    LazyNodeRegistry,
    NodeCacheStore,
    SyncCoordinator,
    build_loader_table,
    load_bundled_record,
)
from node_catalog.core.parsing import NodeParser, NodeSourceParser
from node_catalog.core.sources import GitHubNodeSource, RemoteNodeSource

logger = logging.getLogger(__name__)


def create_registry(config: Optional[CatalogConfig] = None) -> LazyNodeRegistry:
    """Build a LazyNodeRegistry over the bundled corpus.

    The core set is read eagerly here; everything else loads on demand.
    """
    config = config or get_config()
    settings = config.registry
    core_nodes = [load_bundled_record(path) for path in CORE_NODE_FILES]
    registry = LazyNodeRegistry(
        core_nodes,
        build_loader_table(),
        category_load_cap=settings.category_load_cap,
        default_search_limit=settings.default_search_limit,
        popular_nodes=settings.popular_nodes,
        namespace_prefixes=settings.namespace_prefixes,
        max_concurrent_loads=settings.max_concurrent_loads,
    )
    logger.debug(
        "Created registry with %d core nodes and %d loaders",
        len(core_nodes),
        registry.registry_size,
    )
    return registry


def create_store(config: Optional[CatalogConfig] = None) -> NodeCacheStore:
    config = config or get_config()
    return NodeCacheStore(
        config.cache.path,
        lock_timeout=config.cache.lock_timeout,
        known_categories=config.cache.known_categories or None,
    )


def create_coordinator(
    config: Optional[CatalogConfig] = None,
    *,
    source: Optional[RemoteNodeSource] = None,
    parser: Optional[NodeParser] = None,
    store: Optional[NodeCacheStore] = None,
) -> SyncCoordinator:
    """Build a SyncCoordinator; any collaborator can be supplied explicitly."""
    config = config or get_config()
    return SyncCoordinator(
        source or GitHubNodeSource(config.remote),
        parser or NodeSourceParser(),
        store or create_store(config),
        remote_timeout=config.remote.timeout,
        fetch_timeout=config.remote.fetch_timeout,
    )
