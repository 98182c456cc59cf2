"""Bundled node corpus: the static loader table and the eager core set."""

from .catalog import (  # noqa: F401
    CATALOG_LAYOUT,
    CORE_NODE_FILES,
    build_loader_table,
)
