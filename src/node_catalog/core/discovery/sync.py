"""
Sync coordinator: keeps the node cache consistent with a remote source.

Every ``discover_nodes()`` call runs one decide-refresh-serve cycle:

1. Decide: an empty cache must be refreshed; otherwise the remote version
   token is compared with the stored one. A failed version check means
   "no refresh" and the cache is served as-is.
2. Refresh: fetch every raw entry, parse each one (bad entries are dropped),
   and replace the cache with whatever parsed, tagged with the new token.
3. Serve: read from the cache.

Refresh cycles are serialized; readers see either the previous snapshot or
the new one. The only failure surfaced to ``discover_nodes()`` callers is an
empty cache whose refresh also failed (``NoDataAvailableError``).
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable, List, Optional, Sequence, Tuple, TypeVar

from node_catalog.core.errors import NoDataAvailableError, RemoteTimeoutError

from .store import NodeCacheStore
from .types import (
    DiscoverySnapshot,
    DiscoveryStats,
    NodeRecord,
    NodeSummary,
    ParseFailure,
    RawEntry,
)

if TYPE_CHECKING:
    from node_catalog.core.parsing.node_source import NodeParser
    from node_catalog.core.sources.base import RemoteNodeSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REMOTE_TIMEOUT = 30.0
DEFAULT_FETCH_TIMEOUT = 600.0


class SyncCoordinator:
    """Decides when to refresh the node cache and serves reads from it.

    Example:
        >>> coordinator = SyncCoordinator(GitHubNodeSource(), NodeSourceParser(), store)
        >>> summaries = await coordinator.discover_nodes()
        >>> coordinator.search_nodes("slack")
    """

    def __init__(
        self,
        source: "RemoteNodeSource",
        parser: "NodeParser",
        store: NodeCacheStore,
        *,
        remote_timeout: Optional[float] = DEFAULT_REMOTE_TIMEOUT,
        fetch_timeout: Optional[float] = DEFAULT_FETCH_TIMEOUT,
    ) -> None:
        """
        Initialize the coordinator.

        Args:
            source: RemoteNodeSource providing version tokens and raw entries
            parser: NodeParser turning raw entries into records
            store: Persistent cache the coordinator owns writes to
            remote_timeout: Upper bound in seconds for a version check (None = unbounded)
            fetch_timeout: Upper bound in seconds for one fetch_all (None = unbounded)
        """
        self._source = source
        self._parser = parser
        self._store = store
        self.remote_timeout = remote_timeout
        self.fetch_timeout = fetch_timeout
        self._refresh_lock = asyncio.Lock()
        self._current: Optional[DiscoverySnapshot] = None

        self._cache_hits = 0
        self._cache_misses = 0
        self._remote_failures = 0
        self._last_error: Optional[str] = None
        self._last_sync: Optional[datetime] = None
        self._last_commit_sha: Optional[str] = None

    @property
    def store(self) -> NodeCacheStore:
        return self._store

    @property
    def current_snapshot(self) -> Optional[DiscoverySnapshot]:
        """The last snapshot committed by this coordinator, or the stored one."""
        if self._current is not None:
            return self._current
        return self._store.current_snapshot()

    # =========================================================================
    # Refresh cycle
    # =========================================================================

    async def _call_remote(
        self, operation: str, call: Awaitable[T], timeout: Optional[float]
    ) -> T:
        if timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise RemoteTimeoutError(
                self._source_name(),
                timeout_seconds=timeout,
                operation=operation,
                original_error=exc,
            ) from exc

    def _source_name(self) -> str:
        return self._source.get_source_name()

    def _record_failure(self, exc: BaseException) -> None:
        self._remote_failures += 1
        self._last_error = f"{type(exc).__name__}: {exc}"

    async def _should_refresh(self) -> Tuple[bool, Optional[str]]:
        """Return (refresh needed, remote token if already fetched)."""
        if self._store.is_empty():
            logger.info("Node cache is empty; refresh required")
            return True, None

        try:
            token = await self._call_remote(
                "get_version_token", self._source.get_version_token(), self.remote_timeout
            )
        except Exception as exc:
            self._record_failure(exc)
            logger.warning("Remote version check failed, serving cached nodes: %s", exc)
            return False, None

        stored = self._store.get_stored_version_token()
        if token == stored:
            logger.debug("Node cache is current (version %s)", stored)
            return False, token
        logger.info("Remote version changed %s -> %s; refresh required", stored, token)
        return True, token

    def _parse_entries(self, entries: Sequence[RawEntry]) -> List[NodeRecord]:
        records: List[NodeRecord] = []
        failures = 0
        for entry in entries:
            try:
                result = self._parser.parse(entry)
            except Exception as exc:
                failures += 1
                logger.warning("Parser raised on %s: %s", entry.source_path, exc)
                continue
            if isinstance(result, ParseFailure):
                failures += 1
                logger.warning("Skipping %s: %s", result.source_path, result.reason)
                continue
            records.append(result)
        if failures:
            logger.warning("Dropped %d/%d entries that failed to parse", failures, len(entries))
        return records

    async def _refresh(self, token: Optional[str] = None) -> DiscoverySnapshot:
        """Fetch, parse and commit one new snapshot. Raises on remote or storage failure."""
        if token is None:
            token = await self._call_remote(
                "get_version_token", self._source.get_version_token(), self.remote_timeout
            )

        entries = await self._call_remote(
            "fetch_all", self._source.fetch_all(token), self.fetch_timeout
        )
        records = self._parse_entries(entries)
        if entries and not records:
            logger.warning("No entries parsed from version %s; committing an empty catalog", token)

        snapshot = await asyncio.to_thread(self._store.replace_all, records, token)
        self._current = snapshot
        self._cache_misses += 1
        self._last_sync = snapshot.timestamp
        self._last_commit_sha = token
        logger.info("Synced %d nodes at version %s", snapshot.record_count, token)
        return snapshot

    async def discover_nodes(self) -> List[NodeSummary]:
        """Run one decide-refresh-serve cycle and return every cached node.

        Raises:
            NoDataAvailableError: If the cache is empty and the refresh failed
        """
        async with self._refresh_lock:
            try:
                needed, token = await self._should_refresh()
                if needed:
                    await self._refresh(token)
                else:
                    self._cache_hits += 1
            except Exception as exc:
                self._record_failure(exc)
                if self._store.is_empty():
                    logger.error("Node refresh failed and no cached data is available: %s", exc)
                    raise NoDataAvailableError(
                        "No cached node data and the refresh failed", cause=exc
                    ) from exc
                logger.warning("Node refresh failed, serving cached nodes: %s", exc)

        return [record.to_summary() for record in self._store.get_all()]

    async def force_refresh(self) -> DiscoverySnapshot:
        """Refresh unconditionally. Failures propagate to the caller."""
        async with self._refresh_lock:
            try:
                return await self._refresh()
            except Exception as exc:
                self._record_failure(exc)
                raise

    # =========================================================================
    # Reads (never trigger a refresh)
    # =========================================================================

    def search_nodes(self, query: str) -> List[NodeSummary]:
        return [record.to_summary() for record in self._store.search(query)]

    def get_nodes_by_category(self, category: str) -> List[NodeSummary]:
        return [record.to_summary() for record in self._store.get_by_category(category)]

    def get_node_details(self, name: str) -> Optional[NodeRecord]:
        return self._store.get_by_name(name)

    def get_available_categories(self) -> List[str]:
        return list(self._store.get_category_counts())

    def get_cache_stats(self) -> DiscoveryStats:
        """Local counters merged with the cache's own totals."""
        records = self._store.get_all()
        credentials = {name for record in records for name in record.credential_names()}
        return DiscoveryStats(
            total_nodes=len(records),
            total_credentials=len(credentials),
            category_counts=self._store.get_category_counts(),
            last_sync=self._last_sync or self._stored_sync_time(),
            cache_hits=self._cache_hits,
            cache_misses=self._cache_misses,
            last_commit_sha=self._last_commit_sha or self._store.get_stored_version_token(),
            remote_failures=self._remote_failures,
            last_error=self._last_error,
        )

    def _stored_sync_time(self) -> Optional[datetime]:
        snapshot = self._store.current_snapshot()
        if snapshot is None:
            return None
        return snapshot.timestamp.astimezone(timezone.utc)
