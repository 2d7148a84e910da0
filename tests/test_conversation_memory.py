"""Tests for the conversation memory manager."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from pingchain.core.conversation_memory import (
    ConversationMemoryManager,
    build_context_summary,
    relationship_strength,
)
from pingchain.models import Contact, MemoryEntry, MemoryKey, Message
from pingchain.storage.memory_cache import MemoryEntryCache
from pingchain.storage.sqlite_store import SQLiteStore

UTC = timezone.utc
NOW = datetime(2024, 6, 10, 12, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def store(tmp_path):
    s = SQLiteStore(tmp_path / "test.db")
    await s.initialize()
    yield s
    await s.close()


@pytest_asyncio.fixture
async def manager(store):
    return ConversationMemoryManager(store)


def _entry(hours_ago: float, content: str = "", **kwargs) -> MemoryEntry:
    return MemoryEntry(content=content or f"note {hours_ago}",
                       timestamp=NOW - timedelta(hours=hours_ago), **kwargs)


@pytest.mark.asyncio
async def test_store_and_get(manager):
    entry_id = await manager.store("u1", "c1", _entry(2, topics=["work"]))
    await manager.store("u1", "c1", _entry(1, topics=["work", "travel"]))
    await manager.store("u1", "c2", _entry(1))

    memory = await manager.get("u1", "c1", now=NOW)
    assert len(memory.entries) == 2
    assert memory.entries[-1].id == entry_id
    assert memory.entries[0].timestamp > memory.entries[1].timestamp
    assert memory.context_summary.key_topics[0] == "work"
    assert memory.context_summary.last_interaction == NOW - timedelta(hours=1)


@pytest.mark.asyncio
async def test_store_invalidates_cache(manager):
    await manager.store("u1", "c1", _entry(3))
    await manager.get("u1", "c1")
    assert MemoryKey("u1", "c1") in manager.source.cache
    await manager.store("u1", "c1", _entry(2))
    assert MemoryKey("u1", "c1") not in manager.source.cache
    assert len((await manager.get("u1", "c1")).entries) == 2


@pytest.mark.asyncio
async def test_empty_memory(manager):
    memory = await manager.get("u1", "nobody")
    assert memory.entries == []
    assert memory.context_summary.relationship_strength == 50.0
    assert memory.context_summary.communication_style == "neutral"
    assert memory.context_summary.last_interaction is None


@pytest.mark.asyncio
async def test_search_any_term(manager):
    await manager.store("u1", "c1", _entry(3, "Lunch on Friday?"))
    await manager.store("u1", "c1", _entry(2, "Sent the slides", topics=["project"]))
    await manager.store("u1", "c1", _entry(1, "ok", emotional_context="excited"))

    assert [e.content for e in await manager.search("u1", "c1", "FRIDAY project")] == [
        "Sent the slides", "Lunch on Friday?",
    ]
    assert [e.content for e in await manager.search("u1", "c1", "excited")] == ["ok"]
    assert await manager.search("u1", "c1", "   ") == []
    assert len(await manager.search("u1", "c1", "o", limit=2)) == 2


@pytest.mark.asyncio
async def test_relevant_memories_ranked_by_overlap(manager):
    await manager.store("u1", "c1", _entry(4, "a", topics=["project", "deadline"]))
    await manager.store("u1", "c1", _entry(3, "b", topics=["project"]))
    await manager.store("u1", "c1", _entry(2, "c", topics=["food"]))
    await manager.store("u1", "c1", _entry(1, "d", topics=["project"]))

    ranked = await manager.relevant_memories("u1", "c1", "project deadline")
    # a: 2/2, d: 1/2 (newer), b: 1/2
    assert [e.content for e in ranked] == ["a", "d", "b"]
    assert len(await manager.relevant_memories("u1", "c1", "project", limit=1)) == 1
    assert await manager.relevant_memories("u1", "c1", "weather") == []


@pytest.mark.asyncio
async def test_record_message_profiles_content(manager):
    contact = Contact(id="c1", user_id="u1", name="Ana", platform="slack")
    message = Message(user_id="u1", contact_id="c1", content="Can we schedule the meeting?",
                      created_at=NOW)
    entry = await manager.record_message("u1", contact, message, use_llm=False)
    assert entry.context == "inbound slack"
    assert "meeting" in entry.topics
    assert entry.urgency == "medium"

    memory = await manager.get("u1", "c1", now=NOW)
    assert memory.context_summary.pending_items == ["Can we schedule the meeting?"]


def test_summary_uses_newest_twenty_entries():
    old = [_entry(100 + i, topics=["old"]) for i in range(10)]
    recent = [_entry(i, topics=["new"], communication_style="casual") for i in range(20)]
    summary = build_context_summary(recent + old, now=NOW)
    assert summary.key_topics == ["new"]
    assert summary.communication_style == "casual"


def test_summary_patterns_and_pending_items():
    entries = [
        _entry(1, "remind me about the invoice", emotional_context="Happy"),
        _entry(2, "Let's schedule a call", emotional_context="happy"),
        _entry(3, "follow up next week", emotional_context="concerned"),
        _entry(4, "meeting moved", emotional_context="excited"),
        _entry(5, "nothing here"),
    ]
    summary = build_context_summary(entries, now=NOW)
    assert summary.emotional_patterns[0] == "happy"
    assert len(summary.emotional_patterns) == 3
    assert summary.pending_items == [
        "remind me about the invoice", "Let's schedule a call", "follow up next week",
    ]


def test_relationship_strength_bounds():
    assert relationship_strength([], now=NOW) == 50.0

    busy = [
        _entry(i * 0.5, emotional_context="happy", response_quality=0.9)
        for i in range(40)
    ]
    assert relationship_strength(busy, now=NOW) == 100.0

    quiet = [_entry(24 * 30, emotional_context="neutral")]
    score = relationship_strength(quiet, now=NOW)
    assert 50.0 < score < 51.0


def test_relationship_strength_components():
    entries = [
        _entry(24, emotional_context="happy", response_quality=0.8),
        _entry(48, emotional_context=None, response_quality=0.5),
    ]
    # 2 entries over 2 days -> +10, half emotional -> +10, half quality -> +5
    assert relationship_strength(entries, now=NOW) == pytest.approx(75.0)


@pytest.mark.asyncio
async def test_manager_uses_injected_cache(store):
    shared = MemoryEntryCache()
    manager = ConversationMemoryManager(store, cache=shared)
    assert manager.source.cache is shared
    await manager.store("u1", "c1", _entry(1))
    await manager.get("u1", "c1", now=NOW)
    assert MemoryKey("u1", "c1") in shared
