"""Tests for the memory entry cache and its store decorator."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from pingchain.models import MemoryEntry, MemoryKey
from pingchain.storage.memory_cache import CachedEntrySource, MemoryEntryCache
from pingchain.storage.sqlite_store import SQLiteStore

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
KEY = MemoryKey("u1", "c1")


@pytest_asyncio.fixture
async def store(tmp_path):
    s = SQLiteStore(tmp_path / "test.db")
    await s.initialize()
    yield s
    await s.close()


def _entry(i: int, contact_id: str = "c1") -> MemoryEntry:
    return MemoryEntry(id=f"e{i}", user_id="u1", contact_id=contact_id,
                       content=f"entry {i}", timestamp=T0 + timedelta(minutes=i))


def test_cache_get_set_invalidate():
    cache = MemoryEntryCache(max_entries=2)
    assert cache.get(KEY) is None
    cache.set(KEY, [_entry(3), _entry(2), _entry(1)])
    assert [e.id for e in cache.get(KEY)] == ["e3", "e2"]
    assert KEY in cache and len(cache) == 1

    cache.invalidate(KEY)
    assert cache.get(KEY) is None
    cache.invalidate(KEY)


def test_cache_returns_copies():
    cache = MemoryEntryCache()
    cache.set(KEY, [_entry(1)])
    cache.get(KEY).clear()
    assert len(cache.get(KEY)) == 1


def test_keys_are_structured():
    cache = MemoryEntryCache()
    cache.set(MemoryKey("u1:x", "c"), [_entry(1)])
    assert cache.get(MemoryKey("u1", "x:c")) is None
    cache.clear()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_source_reads_through_and_invalidates(store):
    source = CachedEntrySource(store)
    await source.append(_entry(1))
    assert [e.id for e in await source.load(KEY)] == ["e1"]
    assert KEY in source.cache

    await source.append(_entry(2))
    assert KEY not in source.cache
    assert [e.id for e in await source.load(KEY)] == ["e2", "e1"]


@pytest.mark.asyncio
async def test_source_serves_cached_entries(store):
    source = CachedEntrySource(store)
    await source.append(_entry(1))
    await source.load(KEY)
    # write behind the decorator's back; cached view is served until invalidated
    await store.save_memory_entry(_entry(2))
    assert [e.id for e in await source.load(KEY)] == ["e1"]
    source.cache.invalidate(KEY)
    assert len(await source.load(KEY)) == 2


@pytest.mark.asyncio
async def test_failed_write_still_invalidates(store):
    source = CachedEntrySource(store)
    await source.append(_entry(1))
    await source.load(KEY)
    with pytest.raises(Exception):
        await source.append(_entry(1))
    assert KEY not in source.cache


def test_zero_max_entries_is_kept():
    cache = MemoryEntryCache(max_entries=0)
    assert cache.max_entries == 0
    cache.set(KEY, [_entry(1)])
    assert cache.get(KEY) == []
    with pytest.raises(ValueError):
        MemoryEntryCache(max_entries=-1)


@pytest.mark.asyncio
async def test_empty_injected_cache_is_shared(store):
    shared = MemoryEntryCache()
    source = CachedEntrySource(store, shared)
    assert source.cache is shared
    await source.append(_entry(1))
    await source.load(KEY)
    assert KEY in shared
