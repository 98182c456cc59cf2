"""Shared fixtures for core unit tests."""

import pytest

from node_catalog.core.discovery import NodeCacheStore, SyncCoordinator
from tests.unit.test_core.fakes import FakeParser, FakeSource


@pytest.fixture
def memory_store():
    """In-memory NodeCacheStore."""
    return NodeCacheStore()


@pytest.fixture
def file_store(tmp_path):
    """File-backed NodeCacheStore in a temp directory."""
    return NodeCacheStore(tmp_path / "cache" / "node-cache.json")


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def fake_parser():
    return FakeParser()


@pytest.fixture
def coordinator(fake_source, fake_parser, memory_store):
    return SyncCoordinator(fake_source, fake_parser, memory_store, remote_timeout=1.0)
