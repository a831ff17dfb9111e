"""Pytest configuration and shared fixtures for all tests."""

import os
import tempfile

import pytest

from headsync.storage.memory_backend import MemoryStore
from headsync.storage.sqlite_backend import SQLiteStore
from headsync.sync.observer import MetricsObserver
from headsync.sync.syncer import Syncer

from tests.fixtures.nodes import FakeNodeClient


# =============================================================================
# Node Fixtures
# =============================================================================

@pytest.fixture
def node():
    """Fake node whose head is at height 10."""
    return FakeNodeClient(head=10)


@pytest.fixture
def node_factory():
    """Factory fixture to create fake nodes with a custom head."""
    def _node_factory(head=10, delay=0.0):
        return FakeNodeClient(head=head, delay=delay)
    return _node_factory


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def memory_store():
    """Empty in-memory store."""
    return MemoryStore()


@pytest.fixture
def temp_db_path():
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def sqlite_store(temp_db_path):
    """SQLite store on a temporary file."""
    store = SQLiteStore(temp_db_path, pool_size=2)
    yield store
    store.close()


# =============================================================================
# Syncer Fixtures
# =============================================================================

@pytest.fixture
def metrics():
    return MetricsObserver()


@pytest.fixture
def syncer(node, memory_store, metrics):
    """Syncer wired to the fake node and the in-memory store."""
    return Syncer("test", node, memory_store, observer=metrics)
