"""
Lazy node registry.

Holds a small eagerly-loaded core set plus a static table of deferred loaders.
Loaders run at most once each: concurrent and repeated resolutions share one
in-flight task, and successful results are memoized for the registry's
lifetime. The registry never touches the network and is not refreshed by
sync; it is a boot-time-fixed convenience index.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from node_catalog.config.domains import (
    DEFAULT_NAMESPACE_PREFIXES,
    DEFAULT_POPULAR_NODES,
)
from node_catalog.core.concurrency import ConcurrencyLimiter

from .loaders import LoaderEntry
from .types import NodeRecord, QueryStats

logger = logging.getLogger(__name__)

EntryKey = Tuple[str, str]


class LazyNodeRegistry:
    """
    Two-tier node registry: core set in memory, everything else on demand.

    Example:
        >>> registry = LazyNodeRegistry(core_nodes, build_loader_table())
        >>> registry.get_core_nodes()
        >>> await registry.get_by_name("slack")
        >>> await registry.search("google", limit=5)
    """

    def __init__(
        self,
        core_nodes: Sequence[NodeRecord],
        loaders: Mapping[str, Sequence[LoaderEntry]],
        *,
        category_load_cap: int = 20,
        default_search_limit: int = 20,
        popular_nodes: Iterable[str] = DEFAULT_POPULAR_NODES,
        namespace_prefixes: Iterable[str] = DEFAULT_NAMESPACE_PREFIXES,
        max_concurrent_loads: int = 8,
    ) -> None:
        """
        Initialize the registry.

        Args:
            core_nodes: Records available immediately, without I/O
            loaders: Category -> loader entries, in lookup order
            category_load_cap: Max lazily-resolved members per category lookup
            default_search_limit: Result cap when search() gets no limit
            popular_nodes: Short names resolved by preload_popular()
            namespace_prefixes: Prefixes stripped when matching short names
            max_concurrent_loads: Parallel loads during load_all()
        """
        self._core: Tuple[NodeRecord, ...] = tuple(core_nodes)
        self._loaders: Dict[str, Tuple[LoaderEntry, ...]] = {
            category: tuple(entries) for category, entries in loaders.items()
        }
        self.category_load_cap = category_load_cap
        self.default_search_limit = default_search_limit
        self.popular_nodes = list(popular_nodes)
        self.namespace_prefixes = list(namespace_prefixes)
        self.max_concurrent_loads = max_concurrent_loads

        # Memo by lookup key and by full record name
        self._resolved: Dict[str, NodeRecord] = {record.name: record for record in self._core}
        self._entry_records: Dict[EntryKey, NodeRecord] = {}
        self._inflight: Dict[EntryKey, "asyncio.Task[NodeRecord]"] = {}
        self._category_cache: Dict[str, Tuple[NodeRecord, ...]] = {}
        self._background: Set["asyncio.Task[None]"] = set()

        self._cache_hits = 0
        self._cache_misses = 0

    # =========================================================================
    # Resolution
    # =========================================================================

    @property
    def registry_size(self) -> int:
        return sum(len(entries) for entries in self._loaders.values())

    def _iter_entries(self) -> Iterable[LoaderEntry]:
        for entries in self._loaders.values():
            yield from entries

    def _short_name_candidates(self, name: str) -> List[str]:
        candidates = [name]
        for prefix in self.namespace_prefixes:
            if prefix and name.startswith(prefix):
                candidates.append(name[len(prefix):])
        return candidates

    def _find_entry(self, name: str) -> Optional[LoaderEntry]:
        candidates = self._short_name_candidates(name)
        for entry in self._iter_entries():
            if entry.answers_to(candidates):
                return entry
        return None

    async def _run_loader(self, entry: LoaderEntry) -> NodeRecord:
        try:
            record = await entry.load()
        finally:
            self._inflight.pop(entry.key, None)
        self._entry_records[entry.key] = record
        self._resolved[entry.short_name] = record
        self._resolved[record.name] = record
        logger.debug("Resolved %s/%s -> %s", entry.category, entry.short_name, record.name)
        return record

    @staticmethod
    def _consume_result(task: "asyncio.Task[NodeRecord]") -> None:
        # Retrieve the exception so abandoned failures are not reported as unhandled
        if not task.cancelled():
            task.exception()

    async def _resolve_entry(self, entry: LoaderEntry) -> Optional[NodeRecord]:
        """Resolve one entry through the memo. Load failures yield None."""
        record = self._entry_records.get(entry.key)
        if record is not None:
            self._cache_hits += 1
            return record

        task = self._inflight.get(entry.key)
        if task is None:
            self._cache_misses += 1
            task = asyncio.create_task(self._run_loader(entry))
            task.add_done_callback(self._consume_result)
            self._inflight[entry.key] = task

        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(
                "Failed to load node %s/%s: %s", entry.category, entry.short_name, exc
            )
            return None

    # =========================================================================
    # Queries
    # =========================================================================

    def get_core_nodes(self) -> List[NodeRecord]:
        """Return the eagerly-loaded core set. Never performs I/O."""
        return list(self._core)

    def get_all_available(self) -> List[NodeRecord]:
        """Return the core set now and warm popular nodes in the background."""
        self.preload_popular()
        return self.get_core_nodes()

    async def get_by_name(self, name: str) -> Optional[NodeRecord]:
        """Look up a node by short name or namespaced full name.

        Returns None when no loader matches or the load fails.
        """
        record = self._resolved.get(name)
        if record is not None:
            self._cache_hits += 1
            return record

        entry = self._find_entry(name)
        if entry is None:
            return None

        record = await self._resolve_entry(entry)
        if record is not None:
            self._resolved[name] = record
        return record

    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> List[NodeRecord]:
        """Two-phase search: the core set first, then matching loader entries.

        Phase 2 filters entries by short or bare node name before loading them, so only
        plausible candidates are ever resolved.

        Args:
            query: Case-insensitive substring
            limit: Max results (default: ``default_search_limit``)
            categories: Categories to scan in phase 2 (default: all, table order)

        Returns:
            At most ``limit`` records, deduplicated by name

        Raises:
            ValueError: If ``limit`` is not positive
        """
        if limit is None:
            limit = self.default_search_limit
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")

        results = [record for record in self._core if record.matches(query)][:limit]
        if len(results) >= limit:
            return results

        seen = {record.name for record in results}
        needle = query.lower()
        scan = list(categories) if categories is not None else list(self._loaders)
        for category in scan:
            for entry in self._loaders.get(category, ()):
                if not any(needle in alias.lower() for alias in entry.aliases):
                    continue
                record = await self._resolve_entry(entry)
                if record is None or record.name in seen:
                    continue
                seen.add(record.name)
                results.append(record)
                if len(results) >= limit:
                    return results
        return results

    async def get_by_category(self, category: str) -> List[NodeRecord]:
        """Core members of ``category`` plus up to ``category_load_cap`` loaded members.

        The result is memoized for the registry's lifetime.
        """
        cached = self._category_cache.get(category)
        if cached is not None:
            self._cache_hits += 1
            return list(cached)

        results = [record for record in self._core if record.in_category(category)]
        seen = {record.name for record in results}

        entries = self._loaders.get(category, ())[: self.category_load_cap]
        loaded = await asyncio.gather(*(self._resolve_entry(entry) for entry in entries))
        for record in loaded:
            if record is None or record.name in seen:
                continue
            seen.add(record.name)
            results.append(record)

        self._category_cache[category] = tuple(results)
        return results

    def get_categories(self) -> List[str]:
        """Core-set categories and subcategories, then registered categories."""
        ordered: List[str] = []
        for record in self._core:
            for label in (record.category, record.subcategory):
                if label and label not in ordered:
                    ordered.append(label)
        for category in self._loaders:
            if category not in ordered:
                ordered.append(category)
        return ordered

    def get_statistics(self) -> QueryStats:
        return QueryStats(
            cache_hits=self._cache_hits,
            cache_misses=self._cache_misses,
            loaded_count=len(self._entry_records),
            registry_size=self.registry_size,
            core_count=len(self._core),
            categories=self.get_categories(),
        )

    # =========================================================================
    # Background and bulk loading
    # =========================================================================

    async def _preload(self, names: List[str]) -> None:
        loaded = 0
        for name in names:
            try:
                if await self.get_by_name(name) is not None:
                    loaded += 1
            except Exception as exc:
                logger.warning("Background preload of %s failed: %s", name, exc)
        logger.debug("Preloaded %d/%d popular nodes", loaded, len(names))

    def preload_popular(self) -> "Optional[asyncio.Task[None]]":
        """Start resolving the popular nodes without waiting for them.

        Returns:
            The background task, or None when no event loop is running
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; skipping popular node preload")
            return None

        task = loop.create_task(self._preload(list(self.popular_nodes)))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def wait_for_background(self) -> None:
        """Wait for outstanding preload tasks to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def load_all(self) -> List[NodeRecord]:
        """Resolve every registered entry. Intended for administrative use."""
        entries = list(self._iter_entries())
        limiter = ConcurrencyLimiter(self.max_concurrent_loads, name="registry-load-all")
        outcome = await limiter.map(self._resolve_entry, entries)

        records = list(self._core)
        seen = {record.name for record in records}
        for record in outcome.results:
            if record is None or record.name in seen:
                continue
            seen.add(record.name)
            records.append(record)
        logger.info(
            "Loaded %d/%d registry entries", len(self._entry_records), self.registry_size
        )
        return records
