"""Configuration package for node-catalog.

Re-exports all public symbols. Callers can use
``from node_catalog.config import CatalogConfig`` etc.

Sub-modules:
    parsing    – Boolean/list parsing helpers
    domains    – RemoteSourceConfig, CacheConfig, RegistryConfig
    server     – CatalogConfig dataclass, get_config/set_config globals
    loader     – CatalogConfig loading/validation mixin (_CatalogConfigLoader)
"""

from node_catalog.config.parsing import (  # noqa: F401
    _parse_bool,
    _parse_list,
    _try_parse_bool,
)
from node_catalog.config.domains import (  # noqa: F401
    DEFAULT_NAMESPACE_PREFIXES,
    DEFAULT_NODE_PATHS,
    DEFAULT_POPULAR_NODES,
    CacheConfig,
    RegistryConfig,
    RemoteSourceConfig,
)
from node_catalog.config.server import (  # noqa: F401
    _PACKAGE_VERSION,
    CatalogConfig,
    get_config,
    set_config,
)
