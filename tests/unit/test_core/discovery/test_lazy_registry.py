"""Tests for LazyNodeRegistry.

Tests cover:
1. Core set access without I/O
2. Name lookup: memoization, single in-flight load, namespace prefix stripping,
   declared node names
3. Load failures are reported as None and retried on the next lookup
4. Two-phase search with limits and short-name pre-filtering
5. Category listing with load cap and memoization
6. Background preload and bulk loading
7. Statistics
"""

import asyncio
from collections import Counter

import pytest

from tests.unit.test_core.fakes import build_registry, counting_entry, make_record

from node_catalog.core.discovery import LazyNodeRegistry


CORE = [
    make_record("n8n-nodes-base.webhook", display_name="Webhook", category="Core Nodes", subcategory="Triggers"),
    make_record("n8n-nodes-base.set", display_name="Set", category="Core Nodes", subcategory="Data Transformation"),
    make_record("n8n-nodes-base.httpRequest", display_name="HTTP Request", category="Core Nodes", subcategory="Helpers"),
]

TABLE = {
    "Communication Nodes": ["slack", "discord", "telegram"],
    "Database Nodes": ["postgres", "mysql"],
}


@pytest.fixture
def calls():
    return Counter()


@pytest.fixture
def registry(calls):
    return build_registry(TABLE, calls, core=CORE, popular_nodes=["slack", "postgres"])


class TestCoreNodes:
    """Tests for the eagerly-loaded core set."""

    def test_core_nodes_returned_without_loading(self, registry, calls):
        names = [record.name for record in registry.get_core_nodes()]

        assert names == [record.name for record in CORE]
        assert sum(calls.values()) == 0

    def test_get_core_nodes_returns_copy(self, registry):
        registry.get_core_nodes().clear()

        assert len(registry.get_core_nodes()) == 3

    def test_get_all_available_without_loop_returns_core(self, registry, calls):
        result = registry.get_all_available()

        assert len(result) == 3
        assert sum(calls.values()) == 0

    @pytest.mark.asyncio
    async def test_get_all_available_starts_preload(self, registry, calls):
        result = registry.get_all_available()
        await registry.wait_for_background()

        assert len(result) == 3
        assert calls["slack"] == 1
        assert calls["postgres"] == 1

    @pytest.mark.asyncio
    async def test_core_node_lookup_is_a_hit(self, registry, calls):
        record = await registry.get_by_name("n8n-nodes-base.webhook")

        assert record is CORE[0]
        assert registry.get_statistics().cache_hits == 1
        assert sum(calls.values()) == 0


class TestGetByName:
    """Tests for name resolution."""

    @pytest.mark.asyncio
    async def test_loads_by_short_name(self, registry, calls):
        record = await registry.get_by_name("slack")

        assert record is not None
        assert record.name == "n8n-nodes-base.slack"
        assert calls["slack"] == 1

    @pytest.mark.asyncio
    async def test_repeated_lookup_loads_once(self, registry, calls):
        first = await registry.get_by_name("slack")
        second = await registry.get_by_name("slack")

        assert first is second
        assert calls["slack"] == 1

    @pytest.mark.asyncio
    async def test_full_name_and_short_name_share_memo(self, registry, calls):
        by_short = await registry.get_by_name("slack")
        by_full = await registry.get_by_name("n8n-nodes-base.slack")

        assert by_short is by_full
        assert calls["slack"] == 1

    @pytest.mark.asyncio
    async def test_namespace_prefix_is_stripped(self, registry, calls):
        record = await registry.get_by_name("n8n-nodes-base.discord")

        assert record is not None
        assert record.name == "n8n-nodes-base.discord"
        assert calls["discord"] == 1

    @pytest.mark.asyncio
    async def test_langchain_prefix_is_stripped(self, calls):
        registry = build_registry({"AI Nodes": ["openai"]}, calls)

        record = await registry.get_by_name("@n8n/n8n-nodes-langchain.openai")

        assert record is not None
        assert calls["openai"] == 1

    @pytest.mark.asyncio
    async def test_lookup_by_declared_node_name(self, calls):
        entry = counting_entry(
            "Productivity Nodes", "google-sheets", calls, node_name="n8n-nodes-base.googleSheets"
        )
        registry = LazyNodeRegistry([], {"Productivity Nodes": [entry]})

        by_full = await registry.get_by_name("n8n-nodes-base.googleSheets")
        by_bare = await registry.get_by_name("googleSheets")
        by_short = await registry.get_by_name("google-sheets")

        assert by_full is not None
        assert by_full is by_bare is by_short
        assert calls["google-sheets"] == 1

    @pytest.mark.asyncio
    async def test_search_matches_bare_node_name(self, calls):
        entry = counting_entry("Database Nodes", "mysql", calls, node_name="n8n-nodes-base.mySql")
        registry = LazyNodeRegistry([], {"Database Nodes": [entry]})

        records = await registry.search("mySql")

        assert [record.name for record in records] == ["n8n-nodes-base.mySql"]

    @pytest.mark.asyncio
    async def test_unknown_name_returns_none(self, registry, calls):
        assert await registry.get_by_name("does-not-exist") is None
        assert sum(calls.values()) == 0

    @pytest.mark.asyncio
    async def test_concurrent_lookups_share_one_load(self, calls):
        entry = counting_entry("Communication Nodes", "slack", calls, delay=0.01)
        registry = LazyNodeRegistry([], {"Communication Nodes": [entry]})

        results = await asyncio.gather(*(registry.get_by_name("slack") for _ in range(10)))

        assert calls["slack"] == 1
        assert all(result is results[0] for result in results)
        assert results[0] is not None

    @pytest.mark.asyncio
    async def test_failed_load_returns_none(self, calls):
        registry = build_registry(TABLE, calls, failing=["slack"])

        assert await registry.get_by_name("slack") is None

    @pytest.mark.asyncio
    async def test_failed_load_is_retried(self, calls):
        registry = build_registry(TABLE, calls, failing=["slack"])

        await registry.get_by_name("slack")
        await registry.get_by_name("slack")

        assert calls["slack"] == 2
        assert registry.get_statistics().loaded_count == 0

    @pytest.mark.asyncio
    async def test_concurrent_failures_share_one_attempt(self, calls):
        entry = counting_entry(
            "Communication Nodes", "slack", calls, error=RuntimeError("broken"), delay=0.01
        )
        registry = LazyNodeRegistry([], {"Communication Nodes": [entry]})

        results = await asyncio.gather(*(registry.get_by_name("slack") for _ in range(5)))

        assert results == [None] * 5
        assert calls["slack"] == 1


class TestSearch:
    """Tests for two-phase search."""

    @pytest.mark.asyncio
    async def test_core_matches_come_first(self, registry, calls):
        results = await registry.search("http")

        assert [record.name for record in results] == ["n8n-nodes-base.httpRequest"]
        assert sum(calls.values()) == 0

    @pytest.mark.asyncio
    async def test_phase_two_only_loads_matching_short_names(self, registry, calls):
        results = await registry.search("gres")

        assert [record.name for record in results] == ["n8n-nodes-base.postgres"]
        assert calls == Counter({"postgres": 1})

    @pytest.mark.asyncio
    async def test_limit_caps_results_and_loads(self, calls):
        shorts = [f"service{i:02d}" for i in range(50)]
        registry = build_registry({"Productivity Nodes": shorts}, calls)

        results = await registry.search("service", limit=5)

        assert len(results) == 5
        assert sum(calls.values()) == 5

    @pytest.mark.asyncio
    async def test_core_fills_limit_without_loading(self, calls):
        core = [make_record(f"n8n-nodes-base.tool{i}", category="Core Nodes") for i in range(4)]
        registry = build_registry({"Productivity Nodes": ["toolbox"]}, calls, core=core)

        results = await registry.search("tool", limit=3)

        assert len(results) == 3
        assert sum(calls.values()) == 0

    @pytest.mark.asyncio
    async def test_default_limit_applies(self, calls):
        shorts = [f"service{i:02d}" for i in range(30)]
        registry = build_registry({"Productivity Nodes": shorts}, calls, default_search_limit=7)

        assert len(await registry.search("service")) == 7

    @pytest.mark.asyncio
    async def test_results_are_deduplicated(self, calls):
        shared = make_record("n8n-nodes-base.slack")
        loaders = {
            "Communication Nodes": [
                counting_entry("Communication Nodes", "slack", calls, record=shared),
                counting_entry("Communication Nodes", "slackv2", calls, record=shared),
            ]
        }
        registry = LazyNodeRegistry([], loaders)

        results = await registry.search("slack")

        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_categories_restrict_phase_two(self, registry, calls):
        results = await registry.search("s", categories=["Database Nodes"])

        assert {record.name for record in results if record.category == "Communication Nodes"} == set()
        assert calls["slack"] == 0

    @pytest.mark.asyncio
    async def test_failed_loads_are_skipped(self, calls):
        registry = build_registry(TABLE, calls, failing=["slack"])

        assert await registry.search("slack") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -1])
    async def test_non_positive_limit_raises(self, registry, limit):
        with pytest.raises(ValueError, match="limit must be positive"):
            await registry.search("slack", limit=limit)


class TestGetByCategory:
    """Tests for category listing."""

    @pytest.mark.asyncio
    async def test_core_category_includes_every_core_member(self, registry):
        results = await registry.get_by_category("Core Nodes")

        assert {record.name for record in results} == {record.name for record in CORE}

    @pytest.mark.asyncio
    async def test_subcategory_matches_core_members(self, registry):
        results = await registry.get_by_category("Triggers")

        assert [record.name for record in results] == ["n8n-nodes-base.webhook"]

    @pytest.mark.asyncio
    async def test_loads_registered_members(self, registry, calls):
        results = await registry.get_by_category("Communication Nodes")

        assert len(results) == 3
        assert calls == Counter({"slack": 1, "discord": 1, "telegram": 1})

    @pytest.mark.asyncio
    async def test_load_cap_limits_resolved_members(self, calls):
        shorts = [f"db{i}" for i in range(10)]
        registry = build_registry({"Database Nodes": shorts}, calls, category_load_cap=4)

        results = await registry.get_by_category("Database Nodes")

        assert len(results) == 4
        assert sum(calls.values()) == 4

    @pytest.mark.asyncio
    async def test_result_is_memoized(self, registry, calls):
        first = await registry.get_by_category("Database Nodes")
        second = await registry.get_by_category("Database Nodes")

        assert [r.name for r in first] == [r.name for r in second]
        assert calls == Counter({"postgres": 1, "mysql": 1})

    @pytest.mark.asyncio
    async def test_failed_members_are_omitted(self, calls):
        registry = build_registry(TABLE, calls, failing=["discord"])

        results = await registry.get_by_category("Communication Nodes")

        assert {record.name for record in results} == {
            "n8n-nodes-base.slack",
            "n8n-nodes-base.telegram",
        }

    @pytest.mark.asyncio
    async def test_unknown_category_is_empty(self, registry):
        assert await registry.get_by_category("Nope") == []


class TestCategoriesAndStats:
    """Tests for category enumeration and statistics."""

    def test_categories_list_core_labels_then_registered(self, registry):
        assert registry.get_categories() == [
            "Core Nodes",
            "Triggers",
            "Data Transformation",
            "Helpers",
            "Communication Nodes",
            "Database Nodes",
        ]

    def test_initial_statistics(self, registry):
        stats = registry.get_statistics()

        assert stats.cache_hits == 0
        assert stats.cache_misses == 0
        assert stats.loaded_count == 0
        assert stats.registry_size == 5
        assert stats.core_count == 3
        assert stats.cache_efficiency == 0.0

    @pytest.mark.asyncio
    async def test_statistics_track_hits_and_misses(self, registry):
        await registry.get_by_name("slack")
        await registry.get_by_name("slack")
        await registry.get_by_name("postgres")

        stats = registry.get_statistics()

        assert stats.cache_misses == 2
        assert stats.cache_hits == 1
        assert stats.loaded_count == 2
        assert stats.cache_efficiency == pytest.approx(2 / 5)
        assert stats.to_dict()["cache_efficiency"] == pytest.approx(0.4)

    def test_efficiency_with_empty_table(self):
        registry = LazyNodeRegistry([], {})

        assert registry.get_statistics().cache_efficiency == 0.0


class TestBackgroundAndBulk:
    """Tests for preload_popular, wait_for_background and load_all."""

    def test_preload_without_loop_returns_none(self, registry):
        assert registry.preload_popular() is None

    @pytest.mark.asyncio
    async def test_preload_resolves_popular_nodes(self, registry, calls):
        task = registry.preload_popular()
        assert task is not None

        await registry.wait_for_background()

        assert calls == Counter({"slack": 1, "postgres": 1})
        assert registry.get_statistics().loaded_count == 2

    @pytest.mark.asyncio
    async def test_preload_tolerates_failures(self, calls):
        registry = build_registry(TABLE, calls, failing=["slack"], popular_nodes=["slack", "mysql"])

        registry.preload_popular()
        await registry.wait_for_background()

        assert registry.get_statistics().loaded_count == 1

    @pytest.mark.asyncio
    async def test_wait_for_background_without_tasks(self, registry):
        await registry.wait_for_background()

    @pytest.mark.asyncio
    async def test_load_all_resolves_every_entry(self, registry, calls):
        records = await registry.load_all()

        assert len(records) == 3 + 5
        assert all(count == 1 for count in calls.values())
        assert registry.get_statistics().cache_efficiency == 1.0

    @pytest.mark.asyncio
    async def test_load_all_skips_failures(self, calls):
        registry = build_registry(TABLE, calls, failing=["mysql"])

        records = await registry.load_all()

        assert len(records) == 4
        assert "n8n-nodes-base.mysql" not in {record.name for record in records}
