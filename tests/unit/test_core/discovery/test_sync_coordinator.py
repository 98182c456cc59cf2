"""Tests for SyncCoordinator.

Tests cover:
1. Mandatory refresh of an empty cache
2. Version-token comparison: skip when unchanged, refresh when changed
3. Fail-open behaviour when the remote is unreachable, including under cache lock contention
4. NoDataAvailableError when nothing is cached and the refresh fails
5. force_refresh error propagation
6. Remote call timeouts (version check and full fetch bounded separately)
7. Serialized refresh cycles and snapshot isolation for readers
8. Statistics
"""

import asyncio
import threading

import pytest
from filelock import FileLock

from tests.unit.test_core.fakes import FakeParser, FakeSource, make_entry, make_record

from node_catalog.core.discovery import NodeCacheStore, SyncCoordinator
from node_catalog.core.errors import (
    NoDataAvailableError,
    RemoteTimeoutError,
    RemoteUnavailableError,
)


def _seed(store, count, token="v0"):
    store.replace_all(
        [make_record(f"n8n-nodes-base.seed{i}") for i in range(count)], token
    )


class TestMandatoryRefresh:
    """Tests for the empty-cache path."""

    @pytest.mark.asyncio
    async def test_empty_cache_refreshes_and_drops_bad_entries(self, memory_store, fake_parser):
        source = FakeSource(
            token="abc",
            entries=[
                make_entry("slack"),
                make_entry("discord"),
                make_entry("broken", "BAD"),
                make_entry("telegram"),
            ],
        )
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        summaries = await coordinator.discover_nodes()

        assert {s.name for s in summaries} == {
            "n8n-nodes-base.slack",
            "n8n-nodes-base.discord",
            "n8n-nodes-base.telegram",
        }
        assert memory_store.get_stored_version_token() == "abc"
        assert source.version_calls == 1
        assert source.fetch_calls == 1

    @pytest.mark.asyncio
    async def test_parser_exceptions_are_dropped(self, memory_store, fake_parser):
        source = FakeSource(entries=[make_entry("slack"), make_entry("oops", "RAISE")])
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        summaries = await coordinator.discover_nodes()

        assert [s.name for s in summaries] == ["n8n-nodes-base.slack"]

    @pytest.mark.asyncio
    async def test_stats_after_first_sync(self, memory_store, fake_parser):
        source = FakeSource(token="sha1", entries=[make_entry("slack"), make_entry("discord")])
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        await coordinator.discover_nodes()
        stats = coordinator.get_cache_stats()

        assert stats.total_nodes == 2
        assert stats.total_credentials == 2
        assert stats.category_counts == {"Communication Nodes": 2}
        assert stats.cache_misses == 1
        assert stats.cache_hits == 0
        assert stats.last_commit_sha == "sha1"
        assert stats.last_sync is not None

    @pytest.mark.asyncio
    async def test_all_entries_failing_commits_empty_catalog(self, memory_store, fake_parser):
        source = FakeSource(entries=[make_entry("a", "BAD"), make_entry("b", "BAD")])
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        summaries = await coordinator.discover_nodes()

        assert summaries == []
        assert memory_store.get_stored_version_token() == "v1"
        assert coordinator.current_snapshot.record_count == 0


class TestVersionComparison:
    """Tests for the populated-cache path."""

    @pytest.mark.asyncio
    async def test_unchanged_token_skips_fetch(self, memory_store, fake_parser):
        source = FakeSource(token="v1", entries=[make_entry("slack")])
        coordinator = SyncCoordinator(source, fake_parser, memory_store)
        await coordinator.discover_nodes()

        summaries = await coordinator.discover_nodes()

        assert len(summaries) == 1
        assert source.fetch_calls == 1
        assert coordinator.get_cache_stats().cache_hits == 1

    @pytest.mark.asyncio
    async def test_changed_token_refreshes(self, memory_store, fake_parser):
        _seed(memory_store, 2, token="old")
        source = FakeSource(token="new", entries=[make_entry("slack")])
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        summaries = await coordinator.discover_nodes()

        assert [s.name for s in summaries] == ["n8n-nodes-base.slack"]
        assert memory_store.get_stored_version_token() == "new"
        assert source.version_calls == 1

    @pytest.mark.asyncio
    async def test_refresh_uses_already_fetched_token(self, memory_store, fake_parser):
        _seed(memory_store, 1, token="old")
        source = FakeSource(token="new", entries=[make_entry("slack")])
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        await coordinator.discover_nodes()

        assert source.version_calls == 1
        assert source.fetched_tokens == ["new"]

    @pytest.mark.asyncio
    async def test_fetch_is_pinned_to_the_committed_token(self, memory_store, fake_parser):
        source = FakeSource(token="v1", entries=[make_entry("slack")])
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        await coordinator.discover_nodes()
        source.token = "v2"
        await coordinator.force_refresh()

        assert source.fetched_tokens == ["v1", "v2"]
        assert memory_store.get_stored_version_token() == "v2"


class TestFailOpen:
    """Tests for degraded operation."""

    @pytest.mark.asyncio
    async def test_unreachable_remote_serves_cached_records(self, memory_store, fake_parser):
        _seed(memory_store, 5)
        source = FakeSource()
        source.fail_version = RemoteUnavailableError("fake", "network down")
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        summaries = await coordinator.discover_nodes()

        assert len(summaries) == 5
        assert source.fetch_calls == 0
        stats = coordinator.get_cache_stats()
        assert stats.remote_failures == 1
        assert "network down" in stats.last_error
        assert stats.cache_hits == 1

    @pytest.mark.asyncio
    async def test_failed_fetch_keeps_previous_snapshot(self, memory_store, fake_parser):
        _seed(memory_store, 3, token="old")
        source = FakeSource(token="new")
        source.fail_fetch = RemoteUnavailableError("fake", "tree fetch failed")
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        summaries = await coordinator.discover_nodes()

        assert len(summaries) == 3
        assert memory_store.get_stored_version_token() == "old"
        assert coordinator.get_cache_stats().remote_failures == 1

    @pytest.mark.asyncio
    async def test_contended_cache_lock_still_serves_cached_records(self, tmp_path, fake_parser):
        path = tmp_path / "node-cache.json"
        NodeCacheStore(path).replace_all(
            [make_record(f"n8n-nodes-base.seed{i}") for i in range(3)], "v1"
        )
        source = FakeSource()
        source.fail_version = RemoteUnavailableError("fake", "down")
        source.fail_fetch = RemoteUnavailableError("fake", "down")
        coordinator = SyncCoordinator(
            source, fake_parser, NodeCacheStore(path, lock_timeout=0.05)
        )
        held = threading.Event()
        release = threading.Event()

        def hold_lock():
            with FileLock(str(path) + ".lock"):
                held.set()
                release.wait(5)

        holder = threading.Thread(target=hold_lock)
        holder.start()
        try:
            held.wait(5)
            summaries = await coordinator.discover_nodes()
        finally:
            release.set()
            holder.join()

        assert len(summaries) == 3
        assert source.version_calls == 1
        assert source.fetch_calls == 0

    @pytest.mark.asyncio
    async def test_empty_cache_and_failed_refresh_raises(self, memory_store, fake_parser):
        source = FakeSource()
        source.fail_fetch = RemoteUnavailableError("fake", "offline")
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        with pytest.raises(NoDataAvailableError) as exc_info:
            await coordinator.discover_nodes()

        assert isinstance(exc_info.value.cause, RemoteUnavailableError)
        assert memory_store.is_empty()

    @pytest.mark.asyncio
    async def test_empty_cache_and_failed_version_raises(self, memory_store, fake_parser):
        source = FakeSource()
        source.fail_version = RemoteUnavailableError("fake", "offline")
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        with pytest.raises(NoDataAvailableError):
            await coordinator.discover_nodes()

    @pytest.mark.asyncio
    async def test_recovers_after_remote_returns(self, memory_store, fake_parser):
        source = FakeSource(entries=[make_entry("slack")])
        source.fail_fetch = RemoteUnavailableError("fake", "offline")
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        with pytest.raises(NoDataAvailableError):
            await coordinator.discover_nodes()

        source.fail_fetch = None
        summaries = await coordinator.discover_nodes()

        assert len(summaries) == 1


class TestForceRefresh:
    """Tests for unconditional refresh."""

    @pytest.mark.asyncio
    async def test_force_refresh_fetches_with_unchanged_token(self, memory_store, fake_parser):
        source = FakeSource(token="v1", entries=[make_entry("slack")])
        coordinator = SyncCoordinator(source, fake_parser, memory_store)
        await coordinator.discover_nodes()

        source.entries.append(make_entry("discord"))
        snapshot = await coordinator.force_refresh()

        assert snapshot.record_count == 2
        assert snapshot.version_token == "v1"
        assert source.fetch_calls == 2
        assert coordinator.current_snapshot == snapshot

    @pytest.mark.asyncio
    async def test_force_refresh_propagates_errors(self, memory_store, fake_parser):
        _seed(memory_store, 2)
        source = FakeSource()
        source.fail_fetch = RemoteUnavailableError("fake", "offline")
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        with pytest.raises(RemoteUnavailableError):
            await coordinator.force_refresh()

        assert memory_store.count() == 2
        assert coordinator.get_cache_stats().remote_failures == 1


class TestTimeouts:
    """Tests for the per-call remote timeout."""

    @pytest.mark.asyncio
    async def test_slow_version_check_times_out(self, memory_store, fake_parser):
        _seed(memory_store, 2)
        source = FakeSource()
        source.version_delay = 1.0
        coordinator = SyncCoordinator(source, fake_parser, memory_store, remote_timeout=0.01)

        summaries = await coordinator.discover_nodes()

        assert len(summaries) == 2
        assert "RemoteTimeoutError" in coordinator.get_cache_stats().last_error

    @pytest.mark.asyncio
    async def test_slow_fetch_raises_timeout_from_force_refresh(self, memory_store, fake_parser):
        source = FakeSource()
        source.fetch_delay = 1.0
        coordinator = SyncCoordinator(
            source, fake_parser, memory_store, remote_timeout=5.0, fetch_timeout=0.01
        )

        with pytest.raises(RemoteTimeoutError) as exc_info:
            await coordinator.force_refresh()

        assert exc_info.value.timeout_seconds == 0.01
        assert exc_info.value.operation == "fetch_all"

    @pytest.mark.asyncio
    async def test_fetch_is_bounded_by_fetch_timeout_only(self, memory_store, fake_parser):
        source = FakeSource(entries=[make_entry("slack")])
        source.fetch_delay = 0.05
        coordinator = SyncCoordinator(
            source, fake_parser, memory_store, remote_timeout=0.01, fetch_timeout=1.0
        )

        summaries = await coordinator.discover_nodes()

        assert [summary.name for summary in summaries] == ["n8n-nodes-base.slack"]
        assert coordinator.get_cache_stats().remote_failures == 0


class TestConcurrency:
    """Tests for serialized refresh and snapshot isolation."""

    @pytest.mark.asyncio
    async def test_concurrent_discovery_refreshes_once(self, memory_store, fake_parser):
        source = FakeSource(entries=[make_entry("slack")])
        source.fetch_delay = 0.02
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        results = await asyncio.gather(*(coordinator.discover_nodes() for _ in range(5)))

        assert source.fetch_calls == 1
        assert all(len(result) == 1 for result in results)
        stats = coordinator.get_cache_stats()
        assert stats.cache_misses == 1
        assert stats.cache_hits == 4

    @pytest.mark.asyncio
    async def test_readers_see_old_or_new_snapshot(self, memory_store, fake_parser):
        _seed(memory_store, 3, token="old")
        source = FakeSource(token="new", entries=[make_entry(f"n{i}") for i in range(7)])
        source.fetch_delay = 0.02
        coordinator = SyncCoordinator(source, fake_parser, memory_store)
        observed = []

        async def read_repeatedly():
            for _ in range(20):
                observed.append(len(coordinator.search_nodes("n8n-nodes-base")))
                await asyncio.sleep(0.002)

        await asyncio.gather(coordinator.discover_nodes(), read_repeatedly())

        assert set(observed) <= {3, 7}
        assert memory_store.count() == 7


class TestReads:
    """Tests for the read-only query methods."""

    async def _synced(self, store, parser):
        source = FakeSource(entries=[make_entry("slack"), make_entry("discord")])
        coordinator = SyncCoordinator(source, parser, store)
        await coordinator.discover_nodes()
        return coordinator

    @pytest.mark.asyncio
    async def test_search_nodes(self, memory_store, fake_parser):
        synced = await self._synced(memory_store, fake_parser)
        assert [s.name for s in synced.search_nodes("DISCORD")] == ["n8n-nodes-base.discord"]

    @pytest.mark.asyncio
    async def test_get_nodes_by_category(self, memory_store, fake_parser):
        synced = await self._synced(memory_store, fake_parser)
        assert len(synced.get_nodes_by_category("Communication Nodes")) == 2

    @pytest.mark.asyncio
    async def test_get_node_details(self, memory_store, fake_parser):
        synced = await self._synced(memory_store, fake_parser)
        record = synced.get_node_details("n8n-nodes-base.slack")

        assert record is not None
        assert record.credential_names() == ["slackApi"]
        assert synced.get_node_details("missing") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["Slack", "slack", "N8N-NODES-BASE.SLACK"])
    async def test_get_node_details_ignores_case(self, memory_store, fake_parser, name):
        synced = await self._synced(memory_store, fake_parser)

        record = synced.get_node_details(name)

        assert record is not None
        assert record.name == "n8n-nodes-base.slack"

    @pytest.mark.asyncio
    async def test_get_available_categories(self, memory_store, fake_parser):
        synced = await self._synced(memory_store, fake_parser)
        assert synced.get_available_categories() == ["Communication Nodes"]

    @pytest.mark.asyncio
    async def test_reads_never_call_remote(self, memory_store, fake_parser):
        source = FakeSource()
        coordinator = SyncCoordinator(source, fake_parser, memory_store)

        coordinator.search_nodes("x")
        coordinator.get_nodes_by_category("misc")
        coordinator.get_node_details("x")
        coordinator.get_available_categories()
        coordinator.get_cache_stats()

        assert source.version_calls == 0
        assert source.fetch_calls == 0


class TestPersistedState:
    """Tests for a coordinator started over an existing cache file."""

    @pytest.mark.asyncio
    async def test_new_coordinator_reuses_persisted_token(self, tmp_path):
        path = tmp_path / "node-cache.json"
        source = FakeSource(token="v1", entries=[make_entry("slack")])
        await SyncCoordinator(source, FakeParser(), NodeCacheStore(path)).discover_nodes()

        restarted = SyncCoordinator(source, FakeParser(), NodeCacheStore(path))
        summaries = await restarted.discover_nodes()

        assert len(summaries) == 1
        assert source.fetch_calls == 1
        stats = restarted.get_cache_stats()
        assert stats.last_commit_sha == "v1"
        assert stats.last_sync is not None
        assert restarted.current_snapshot.version_token == "v1"
