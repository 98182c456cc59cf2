"""
File-backed node cache with atomic snapshot replacement.

Provides:
- One JSON document per cache, tagged with the version token it was built from
- Atomic writes (temp+fsync+rename) under a file lock
- Immutable in-memory snapshots: readers never see a half-applied replace
- In-memory-only mode when no path is given (tests, ephemeral use)

Storage format::

    {
      "schema_version": 1,
      "version_token": "<commit sha>",
      "synced_at": "2026-01-01T00:00:00+00:00",
      "records": [ {...NodeRecord...}, ... ]
    }
"""

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from filelock import FileLock, Timeout
from pydantic import ValidationError

from node_catalog.core.errors import CacheStorageError, LockAcquisitionError

from .types import DEFAULT_KNOWN_CATEGORIES, DiscoverySnapshot, NodeRecord

logger = logging.getLogger(__name__)

CACHE_SCHEMA_VERSION = 1
DEFAULT_LOCK_TIMEOUT = 5.0


@dataclass(frozen=True)
class _CacheState:
    """One committed cache generation. Never mutated after construction."""

    records: Tuple[NodeRecord, ...] = ()
    by_name: Dict[str, NodeRecord] = field(default_factory=dict)
    by_alias: Dict[str, NodeRecord] = field(default_factory=dict)
    by_category: Dict[str, Tuple[NodeRecord, ...]] = field(default_factory=dict)
    version_token: Optional[str] = None
    synced_at: Optional[datetime] = None


def _sort_key(record: NodeRecord) -> Tuple[str, str]:
    return (record.display_name.lower(), record.name)


def _lock_path(path: Path) -> Path:
    return path.with_name(path.name + ".lock")


def _alias_index(records: Sequence[NodeRecord]) -> Dict[str, NodeRecord]:
    """Lower-cased full names, then display names, then bare names.

    Earlier kinds win on collision, and within a kind the first record in
    sort order wins.
    """
    index: Dict[str, NodeRecord] = {}
    for record in records:
        index.setdefault(record.name.lower(), record)
    for record in records:
        index.setdefault(record.display_name.lower(), record)
    for record in records:
        index.setdefault(record.name.rsplit(".", 1)[-1].lower(), record)
    return index


class NodeCacheStore:
    """Persistent cache of NodeRecords tagged with one version token.

    Example:
        >>> store = NodeCacheStore(Path("~/.node-catalog/cache/node-cache.json"))
        >>> store.replace_all(records, "abc123")
        >>> store.get_by_name("n8n-nodes-base.slack")
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        known_categories: Optional[Iterable[str]] = None,
    ) -> None:
        """Initialize the store.

        Args:
            path: Cache file location; None keeps the cache in memory only
            lock_timeout: Seconds to wait for the file lock
            known_categories: Categories to index (default: DEFAULT_KNOWN_CATEGORIES)
        """
        self.path = Path(path).expanduser() if path is not None else None
        self.lock_timeout = lock_timeout
        self.known_categories = frozenset(known_categories or DEFAULT_KNOWN_CATEGORIES)
        self._state: Optional[_CacheState] = None if self.path is not None else _CacheState()
        self._load_lock = threading.Lock()

    # =========================================================================
    # Snapshot management
    # =========================================================================

    def _snapshot(self) -> _CacheState:
        state = self._state
        if state is not None:
            return state
        with self._load_lock:
            if self._state is None:
                self._state = (
                    self._load_from_disk(self.path) if self.path is not None else _CacheState()
                )
            return self._state

    def _build_state(
        self,
        records: Iterable[NodeRecord],
        version_token: Optional[str],
        synced_at: Optional[datetime],
    ) -> _CacheState:
        by_name: Dict[str, NodeRecord] = {}
        for record in records:
            if record.name in by_name:
                logger.debug("Duplicate node name %s; keeping the later record", record.name)
            by_name[record.name] = record

        ordered = tuple(sorted(by_name.values(), key=_sort_key))
        grouped: Dict[str, List[NodeRecord]] = {}
        for record in ordered:
            if record.category in self.known_categories:
                grouped.setdefault(record.category, []).append(record)

        return _CacheState(
            records=ordered,
            by_name=by_name,
            by_alias=_alias_index(ordered),
            by_category={key: tuple(value) for key, value in grouped.items()},
            version_token=version_token,
            synced_at=synced_at,
        )

    def _read_file(self, path: Path) -> Optional[str]:
        """Read the cache file, under the lock when it can be had in time.

        Writers swap the file with os.replace, so an unlocked read still sees
        exactly one committed generation. Returns None if the file is unreadable.
        """
        try:
            try:
                with FileLock(_lock_path(path), timeout=self.lock_timeout):
                    return path.read_text(encoding="utf-8")
            except Timeout:
                logger.warning(
                    "Timed out waiting for cache lock %s; reading without it", _lock_path(path)
                )
                return path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to read node cache %s: %s", path, exc)
            return None

    def _load_from_disk(self, path: Path) -> _CacheState:
        """Read the cache file. A missing, corrupt or incompatible file loads as empty."""
        if not path.exists():
            return _CacheState()

        raw = self._read_file(path)
        if raw is None:
            return _CacheState()

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("cache document is not an object")
            schema = data.get("schema_version")
            if schema != CACHE_SCHEMA_VERSION:
                raise ValueError(f"unsupported schema_version {schema!r}")
            records = [NodeRecord.model_validate(item) for item in data.get("records", [])]
            synced_raw = data.get("synced_at")
            synced_at = datetime.fromisoformat(synced_raw) if synced_raw else None
        except (json.JSONDecodeError, ValidationError, ValueError, TypeError) as exc:
            logger.warning("Ignoring unreadable node cache %s: %s", path, exc)
            return _CacheState()

        state = self._build_state(records, data.get("version_token"), synced_at)
        logger.debug(
            "Loaded %d cached nodes (version %s) from %s",
            len(state.records),
            state.version_token,
            path,
        )
        return state

    def _write_to_disk(self, path: Path, state: _CacheState) -> None:
        payload: Dict[str, Any] = {
            "schema_version": CACHE_SCHEMA_VERSION,
            "version_token": state.version_token,
            "synced_at": state.synced_at.isoformat() if state.synced_at else None,
            "records": [record.model_dump(mode="json") for record in state.records],
        }

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheStorageError(
                f"Cannot create cache directory {path.parent}", path=path, reason=str(exc)
            ) from exc

        lock_path = _lock_path(path)
        try:
            with FileLock(lock_path, timeout=self.lock_timeout):
                # Atomic write: temp file + fsync + rename
                fd, temp_path = tempfile.mkstemp(
                    dir=path.parent,
                    prefix=f".{path.name}.",
                    suffix=".tmp",
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        json.dump(payload, f, indent=2, default=str)
                        f.flush()
                        os.fsync(f.fileno())
                    os.replace(temp_path, path)
                except Exception:
                    try:
                        os.unlink(temp_path)
                    except OSError:
                        pass
                    raise
        except Timeout as exc:
            raise LockAcquisitionError(
                f"Timed out acquiring cache lock {lock_path}",
                path=path,
                reason=f"lock not acquired within {self.lock_timeout}s",
            ) from exc
        except OSError as exc:
            raise CacheStorageError(
                f"Failed to write node cache {path}", path=path, reason=str(exc)
            ) from exc

    # =========================================================================
    # Write
    # =========================================================================

    def replace_all(
        self, records: Iterable[NodeRecord], version_token: Optional[str]
    ) -> DiscoverySnapshot:
        """Atomically replace every record and retag the cache.

        The in-memory snapshot is swapped only after the file is durably
        replaced, so a failed write leaves the previous generation visible.

        Args:
            records: New record set; later duplicates of a name win
            version_token: Token of the remote state the records came from

        Returns:
            DiscoverySnapshot describing the committed generation

        Raises:
            LockAcquisitionError: If the file lock times out
            CacheStorageError: If the file cannot be written
        """
        synced_at = datetime.now(timezone.utc)
        state = self._build_state(records, version_token, synced_at)
        if self.path is not None:
            self._write_to_disk(self.path, state)
        self._state = state
        logger.info(
            "Committed %d nodes to cache (version %s)", len(state.records), version_token
        )
        return DiscoverySnapshot(
            version_token=version_token,
            record_count=len(state.records),
            timestamp=synced_at,
        )

    # =========================================================================
    # Read
    # =========================================================================

    def is_empty(self) -> bool:
        return not self._snapshot().records

    def count(self) -> int:
        return len(self._snapshot().records)

    def get_stored_version_token(self) -> Optional[str]:
        return self._snapshot().version_token

    def current_snapshot(self) -> Optional[DiscoverySnapshot]:
        """Describe the committed generation, or None if nothing was ever stored."""
        state = self._snapshot()
        if state.synced_at is None:
            return None
        return DiscoverySnapshot(
            version_token=state.version_token,
            record_count=len(state.records),
            timestamp=state.synced_at,
        )

    def get_all(self) -> List[NodeRecord]:
        return list(self._snapshot().records)

    def get_by_name(self, name: str) -> Optional[NodeRecord]:
        """Exact full name first, then a case-insensitive name or display-name match."""
        state = self._snapshot()
        record = state.by_name.get(name)
        if record is None:
            record = state.by_alias.get(name.lower())
        return record

    def search(self, substring: str) -> List[NodeRecord]:
        """Case-insensitive substring match over name, display name and description."""
        return [record for record in self._snapshot().records if record.matches(substring)]

    def get_by_category(self, category: str) -> List[NodeRecord]:
        return list(self._snapshot().by_category.get(category, ()))

    def get_category_counts(self) -> Dict[str, int]:
        state = self._snapshot()
        return {key: len(state.by_category[key]) for key in sorted(state.by_category)}

    def describe(self) -> Dict[str, Any]:
        """Summary of the cache for diagnostics."""
        state = self._snapshot()
        return {
            "path": str(self.path) if self.path is not None else None,
            "schema_version": CACHE_SCHEMA_VERSION,
            "version_token": state.version_token,
            "synced_at": state.synced_at.isoformat() if state.synced_at else None,
            "record_count": len(state.records),
            "category_counts": self.get_category_counts(),
        }
