"""Per-conversation cache of recent memory entries.

The cache is a decorator around the store: ``CachedEntrySource`` answers
reads from ``MemoryEntryCache`` when it can and invalidates the key on every
write. Callers serialise writes per key; different keys never contend.
"""

from __future__ import annotations

import logging

from pingchain.config import ENGINE_CONFIG
from pingchain.models import MemoryEntry, MemoryKey
from pingchain.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class MemoryEntryCache:
    """In-process cache of the newest entries per (user, contact)."""

    def __init__(self, max_entries: int | None = None) -> None:
        if max_entries is None:
            max_entries = ENGINE_CONFIG["memory_cache_entries"]
        if max_entries < 0:
            raise ValueError(f"max_entries must be non-negative, got {max_entries}")
        self.max_entries = max_entries
        self._entries: dict[MemoryKey, list[MemoryEntry]] = {}

    def get(self, key: MemoryKey) -> list[MemoryEntry] | None:
        cached = self._entries.get(key)
        return list(cached) if cached is not None else None

    def set(self, key: MemoryKey, entries: list[MemoryEntry]) -> None:
        self._entries[key] = list(entries[: self.max_entries])

    def invalidate(self, key: MemoryKey) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: MemoryKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class CachedEntrySource:
    """Store access for memory entries with a read-through cache."""

    def __init__(self, store: SQLiteStore, cache: MemoryEntryCache | None = None) -> None:
        self.store = store
        self.cache = cache if cache is not None else MemoryEntryCache()

    async def load(self, key: MemoryKey) -> list[MemoryEntry]:
        """Return the newest entries for a key, newest first."""
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        entries = await self.store.list_memory_entries(
            key.user_id, key.contact_id, limit=self.cache.max_entries,
        )
        self.cache.set(key, entries)
        return entries

    async def append(self, entry: MemoryEntry) -> None:
        key = MemoryKey(entry.user_id, entry.contact_id)
        try:
            await self.store.save_memory_entry(entry)
        finally:
            self.cache.invalidate(key)
        logger.debug("Stored memory entry %s for %s", entry.id, key)
