"""CatalogConfig loading and validation logic.

Provides ``_CatalogConfigLoader``, a mixin class whose methods are inherited by
``CatalogConfig`` (defined in ``server.py``).  Splitting loading/validation
logic into its own module keeps ``server.py`` focused on field definitions and
simple accessor methods.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, cast

if TYPE_CHECKING:
    from node_catalog.config.server import CatalogConfig

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from node_catalog.config.domains import CacheConfig, RegistryConfig, RemoteSourceConfig
from node_catalog.config.parsing import _parse_bool, _parse_list, _try_parse_bool

logger = logging.getLogger(__name__)

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "NOTSET"}


class _CatalogConfigLoader:
    """Mixin providing config-loading methods for ``CatalogConfig``.

    These methods are inherited by the ``CatalogConfig`` dataclass defined in
    ``server.py``.  At runtime ``self`` is always a ``CatalogConfig`` instance.
    """

    if TYPE_CHECKING:
        log_level: str
        structured_logging: bool
        service_name: str
        remote: RemoteSourceConfig
        cache: CacheConfig
        registry: RegistryConfig
        startup_warnings: List[str]

        def _add_startup_warning(self, message: str) -> None: ...

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "CatalogConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. Project TOML config (./node-catalog.toml or ./.node-catalog.toml)
        3. User TOML config (~/.node-catalog.toml)
        4. XDG config (~/.config/node-catalog/config.toml)
        5. Default values
        """
        config = cls()

        toml_path = config_file or os.environ.get("NODE_CATALOG_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            xdg_config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
            xdg_config = Path(xdg_config_home) / "node-catalog" / "config.toml"
            if xdg_config.exists():
                config._load_toml(xdg_config)
                logger.debug(f"Loaded XDG config from {xdg_config}")

            home_config = Path.home() / ".node-catalog.toml"
            if home_config.exists():
                config._load_toml(home_config)
                logger.debug(f"Loaded user config from {home_config}")

            project_config = Path("node-catalog.toml")
            if project_config.exists():
                config._load_toml(project_config)
                logger.debug(f"Loaded project config from {project_config}")
            else:
                legacy_config = Path(".node-catalog.toml")
                if legacy_config.exists():
                    config._load_toml(legacy_config)
                    logger.debug(f"Loaded project config from {legacy_config}")

        config._load_env()
        config._validate_startup_configuration()

        return cast("CatalogConfig", config)

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "logging" in data:
                log = data["logging"]
                if "level" in log:
                    self.log_level = str(log["level"]).upper()
                if "structured" in log:
                    self.structured_logging = _parse_bool(log["structured"])

            if "service" in data:
                svc = data["service"]
                if "name" in svc:
                    self.service_name = svc["name"]

            if "remote" in data:
                self.remote = RemoteSourceConfig.from_toml_dict(data["remote"], base=self.remote)

            if "cache" in data:
                self.cache = CacheConfig.from_toml_dict(data["cache"], base=self.cache)

            if "registry" in data:
                self.registry = RegistryConfig.from_toml_dict(data["registry"], base=self.registry)

        except Exception as e:
            logger.error(f"Error loading config file {path}: {e}")

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if level := os.environ.get("NODE_CATALOG_LOG_LEVEL"):
            self.log_level = level.upper()

        if structured := os.environ.get("NODE_CATALOG_STRUCTURED_LOGGING"):
            parsed = _try_parse_bool(structured)
            if parsed is None:
                logger.warning("Ignoring invalid NODE_CATALOG_STRUCTURED_LOGGING=%r", structured)
            else:
                self.structured_logging = parsed

        # Remote source
        if owner := os.environ.get("NODE_CATALOG_REMOTE_OWNER"):
            self.remote.owner = owner
        if repo := os.environ.get("NODE_CATALOG_REMOTE_REPO"):
            self.remote.repo = repo
        if branch := os.environ.get("NODE_CATALOG_REMOTE_BRANCH"):
            self.remote.branch = branch
        if paths := os.environ.get("NODE_CATALOG_REMOTE_NODE_PATHS"):
            self.remote.node_paths = _parse_list(paths)
        if token := os.environ.get("NODE_CATALOG_GITHUB_TOKEN"):
            self.remote.token = token
        if timeout := os.environ.get("NODE_CATALOG_REMOTE_TIMEOUT"):
            try:
                self.remote.timeout = float(timeout)
            except ValueError:
                logger.warning("Ignoring invalid NODE_CATALOG_REMOTE_TIMEOUT=%r", timeout)
        if fetch_timeout := os.environ.get("NODE_CATALOG_REMOTE_FETCH_TIMEOUT"):
            try:
                self.remote.fetch_timeout = float(fetch_timeout)
            except ValueError:
                logger.warning(
                    "Ignoring invalid NODE_CATALOG_REMOTE_FETCH_TIMEOUT=%r", fetch_timeout
                )

        # Cache
        if cache_dir := os.environ.get("NODE_CATALOG_CACHE_DIR"):
            self.cache.dir = Path(cache_dir)
        if categories := os.environ.get("NODE_CATALOG_KNOWN_CATEGORIES"):
            self.cache.known_categories = _parse_list(categories)

        # Registry
        if popular := os.environ.get("NODE_CATALOG_POPULAR_NODES"):
            self.registry.popular_nodes = _parse_list(popular)
        if cap := os.environ.get("NODE_CATALOG_CATEGORY_LOAD_CAP"):
            try:
                self.registry.category_load_cap = int(cap)
            except ValueError:
                logger.warning("Ignoring invalid NODE_CATALOG_CATEGORY_LOAD_CAP=%r", cap)

    def _validate_startup_configuration(self) -> None:
        """Validate startup configuration. Raises on critical misconfigurations."""
        if self.log_level not in _VALID_LOG_LEVELS:
            self._add_startup_warning(
                f"Unknown log level '{self.log_level}', falling back to INFO"
            )
            self.log_level = "INFO"

        if self.remote.timeout <= 0:
            raise ValueError(f"remote.timeout must be positive, got {self.remote.timeout}")
        if self.remote.fetch_timeout <= 0:
            raise ValueError(
                f"remote.fetch_timeout must be positive, got {self.remote.fetch_timeout}"
            )
        if self.remote.max_concurrent_fetches < 1:
            raise ValueError("remote.max_concurrent_fetches must be at least 1")
        if self.registry.category_load_cap < 0:
            raise ValueError("registry.category_load_cap must not be negative")
        if self.registry.default_search_limit < 1:
            raise ValueError("registry.default_search_limit must be at least 1")

        if not self.remote.node_paths:
            self._add_startup_warning(
                "remote.node_paths is empty; refreshes will commit an empty catalog"
            )

        for warning in self.startup_warnings:
            logger.warning(warning)
