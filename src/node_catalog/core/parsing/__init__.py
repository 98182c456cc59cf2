"""Node source parsing: the literal reader and the description parser."""

from node_catalog.core.parsing.literal import UNRESOLVED, read_literal, read_object_literal
from node_catalog.core.parsing.node_source import NodeParser, NodeSourceParser

__all__ = [
    "NodeParser",
    "NodeSourceParser",
    "UNRESOLVED",
    "read_literal",
    "read_object_literal",
]
