"""
Node discovery and cache coherency for node-catalog.

Provides the lazy in-process registry, the persistent node cache and the
sync coordinator that keeps the cache in step with a remote source.

All public symbols are re-exported from sub-modules.
"""

# --- Types (leaf module) ---

from .types import (  # noqa: F401
    DEFAULT_KNOWN_CATEGORIES,
    DiscoverySnapshot,
    DiscoveryStats,
    NodeRecord,
    NodeSummary,
    ParseFailure,
    QueryStats,
    RawEntry,
)

# --- Loaders ---

from .loaders import (  # noqa: F401
    LoaderEntry,
    bundled_entry,
    bundled_loader,
    load_bundled_record,
)

# --- Persistent cache ---

from .store import (  # noqa: F401
    CACHE_SCHEMA_VERSION,
    NodeCacheStore,
)

# --- Lazy registry ---

from .registry import (  # noqa: F401
    LazyNodeRegistry,
)

# --- Sync coordinator ---

from .sync import (  # noqa: F401
    SyncCoordinator,
)

# --- Bundled corpus ---

from .metadata import (  # noqa: F401
    CATALOG_LAYOUT,
    CORE_NODE_FILES,
    build_loader_table,
)
