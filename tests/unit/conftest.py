"""
Shared fixtures for memory subsystem unit tests.
"""
import pytest

from persona_memory.memory.store import InMemoryMemoryStore, SQLiteMemoryStore
from persona_memory.persist.sqlite_store import KVStore


@pytest.fixture
def kv(tmp_path):
    """Create a temporary KVStore instance."""
    store = KVStore(tmp_path / "kv.db", tables=("memories", "scratch"))
    yield store
    store.close()


@pytest.fixture
def memory_store(small_config):
    return InMemoryMemoryStore(small_config)


@pytest.fixture
def sqlite_memory_store(tmp_path, small_config):
    store = SQLiteMemoryStore(tmp_path / "memories.db", small_config)
    yield store
    store.close()


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path, small_config):
    """Each backend in turn; lifecycle rules must behave identically."""
    if request.param == "memory":
        yield InMemoryMemoryStore(small_config)
    else:
        store = SQLiteMemoryStore(tmp_path / "memories.db", small_config)
        yield store
        store.close()
