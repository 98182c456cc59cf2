"""
Deferred node loaders for the lazy registry.

A ``LoaderEntry`` pairs a category and short name with an async ``load()``
that materializes one NodeRecord. The bundled loaders read JSON descriptors
shipped in ``node_catalog.data.nodes``.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from importlib import resources
from typing import Awaitable, Callable, Optional, Sequence, Tuple

from pydantic import ValidationError

from node_catalog.core.errors import NodeLoadError

from .types import NodeRecord

logger = logging.getLogger(__name__)

DATA_PACKAGE = "node_catalog.data"

NodeLoader = Callable[[], Awaitable[NodeRecord]]


@dataclass(frozen=True)
class LoaderEntry:
    """A registered, not-yet-resolved node.

    Attributes:
        category: Registry category the node is listed under
        short_name: Lookup key without namespace, e.g. ``http-request``
        load: Async callable returning the NodeRecord, or raising
        node_name: Full name of the record ``load()`` returns, when known
            before loading, e.g. ``n8n-nodes-base.httpRequest``
    """

    category: str
    short_name: str
    load: NodeLoader
    node_name: Optional[str] = None

    @property
    def key(self) -> tuple:
        return (self.category, self.short_name)

    @property
    def aliases(self) -> Tuple[str, ...]:
        """Names matched without a namespace: the short name and the bare node name."""
        if self.node_name is None:
            return (self.short_name,)
        bare = self.node_name.rsplit(".", 1)[-1]
        if bare == self.short_name:
            return (self.short_name,)
        return (self.short_name, bare)

    def answers_to(self, candidates: Sequence[str]) -> bool:
        """True if any lookup candidate names this entry."""
        if self.node_name is not None and self.node_name in candidates:
            return True
        return any(alias in candidates for alias in self.aliases)


def _read_bundled(relative_path: str) -> NodeRecord:
    resource = resources.files(DATA_PACKAGE).joinpath(relative_path)
    short_name = relative_path.rsplit("/", 1)[-1].removesuffix(".json")
    try:
        payload = json.loads(resource.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise NodeLoadError(short_name, f"missing bundled descriptor {relative_path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise NodeLoadError(short_name, f"unreadable descriptor {relative_path}: {exc}") from exc

    try:
        return NodeRecord.model_validate(payload)
    except ValidationError as exc:
        raise NodeLoadError(short_name, f"invalid descriptor {relative_path}: {exc}") from exc


def bundled_loader(relative_path: str) -> NodeLoader:
    """Build a loader for a JSON descriptor under ``node_catalog/data``.

    The file is read off the event loop on every call; memoization is the
    registry's job.
    """

    async def load() -> NodeRecord:
        logger.debug("Loading bundled node descriptor %s", relative_path)
        return await asyncio.to_thread(_read_bundled, relative_path)

    return load


def bundled_entry(
    category: str, short_name: str, directory: str, node_name: Optional[str] = None
) -> LoaderEntry:
    """LoaderEntry for ``data/nodes/<directory>/<short_name>.json``."""
    return LoaderEntry(
        category=category,
        short_name=short_name,
        load=bundled_loader(f"nodes/{directory}/{short_name}.json"),
        node_name=node_name,
    )


def load_bundled_record(relative_path: str) -> NodeRecord:
    """Synchronously read a bundled descriptor (used for the eager core set)."""
    return _read_bundled(relative_path)
