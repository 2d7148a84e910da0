"""Conversation Memory Manager.

Keeps a per-(user, contact) history of profiled message entries and derives
a context summary from the most recent ones. Entries are read through
``CachedEntrySource`` so repeated dashboard reads do not hit SQLite.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from datetime import datetime

from pingchain.config import ENGINE_CONFIG
from pingchain.core.timestamps import normalize, utcnow
from pingchain.emotion.scorer import profile_text
from pingchain.models import (
    Contact,
    ContextSummary,
    ConversationMemory,
    MemoryEntry,
    MemoryKey,
    Message,
)
from pingchain.storage.memory_cache import CachedEntrySource, MemoryEntryCache
from pingchain.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class ConversationMemoryManager:
    """Stores, reads, and searches conversation memory entries."""

    def __init__(self, store: SQLiteStore, cache: MemoryEntryCache | None = None) -> None:
        self.source = CachedEntrySource(store, cache)

    async def store(self, user_id: str, contact_id: str, entry: MemoryEntry) -> str:
        """Persist an entry for a conversation and return its id."""
        entry.user_id = user_id
        entry.contact_id = contact_id
        entry.timestamp = normalize(entry.timestamp)
        await self.source.append(entry)
        return entry.id

    async def get(
        self, user_id: str, contact_id: str, now: datetime | None = None,
    ) -> ConversationMemory:
        entries = await self.source.load(MemoryKey(user_id, contact_id))
        return ConversationMemory(
            user_id=user_id,
            contact_id=contact_id,
            entries=entries,
            last_updated=utcnow(),
            context_summary=build_context_summary(entries, now=now),
        )

    async def search(
        self, user_id: str, contact_id: str, query: str, limit: int = 10,
    ) -> list[MemoryEntry]:
        """Entries containing any whitespace-separated query term, newest first."""
        terms = query.lower().split()
        if not terms:
            return []
        entries = await self.source.load(MemoryKey(user_id, contact_id))
        hits = []
        for entry in entries:
            haystack = " ".join([
                entry.content,
                entry.context,
                entry.emotional_context or "",
                " ".join(entry.topics),
            ]).lower()
            if any(term in haystack for term in terms):
                hits.append(entry)
                if len(hits) >= limit:
                    break
        return hits

    async def relevant_memories(
        self, user_id: str, contact_id: str, context: str, limit: int = 5,
    ) -> list[MemoryEntry]:
        """Entries ranked by topic overlap with ``context``."""
        tokens = context.lower().split()
        if not tokens:
            return []
        entries = await self.source.load(MemoryKey(user_id, contact_id))
        scored = []
        for position, entry in enumerate(entries):
            topics = [t.lower() for t in entry.topics if t]
            if not topics:
                continue
            overlap = sum(
                1 for token in tokens
                if any(token in topic or topic in token for topic in topics)
            )
            score = overlap / max(len(tokens), len(topics))
            if score > 0:
                # entries are newest first, so position breaks ties by recency
                scored.append((-score, position, entry))
        scored.sort(key=lambda item: (item[0], item[1]))
        return [entry for _, _, entry in scored[:limit]]

    async def record_message(
        self, user_id: str, contact: Contact, message: Message,
        use_llm: bool | None = None,
    ) -> MemoryEntry:
        """Profile a message and store it as a memory entry."""
        profile = await profile_text(message.content, use_llm=use_llm)
        entry = MemoryEntry(
            content=message.content,
            timestamp=normalize(message.created_at),
            context=f"{message.direction} {message.platform or contact.platform}".strip(),
            emotional_context=profile["emotional_context"],
            communication_style=profile["communication_style"],
            sentiment=profile["sentiment"],
            topics=profile["topics"],
            urgency=profile["urgency"],
            category=profile["category"],
            action_items=profile["action_items"],
        )
        await self.store(user_id, contact.id, entry)
        return entry


def build_context_summary(
    entries: Sequence[MemoryEntry], now: datetime | None = None,
) -> ContextSummary:
    """Summarise the newest entries (entries must be newest first)."""
    if not entries:
        return ContextSummary(relationship_strength=ENGINE_CONFIG["relationship_base_score"])

    recent = list(entries[: ENGINE_CONFIG["memory_summary_window"]])

    topic_counts = Counter(t for e in recent for t in e.topics)
    emotion_counts = Counter(
        e.emotional_context.lower() for e in recent if e.emotional_context
    )
    style_counts = Counter(
        e.communication_style.lower() for e in recent if e.communication_style
    )

    markers = ENGINE_CONFIG["pending_item_markers"]
    pending = [
        e.content for e in recent
        if any(marker in e.content.lower() for marker in markers)
    ]

    return ContextSummary(
        key_topics=[t for t, _ in topic_counts.most_common(ENGINE_CONFIG["memory_key_topics"])],
        emotional_patterns=[
            e for e, _ in emotion_counts.most_common(ENGINE_CONFIG["memory_emotional_patterns"])
        ],
        communication_style=style_counts.most_common(1)[0][0] if style_counts else "neutral",
        relationship_strength=relationship_strength(recent, now=now),
        last_interaction=normalize(entries[0].timestamp),
        pending_items=pending[: ENGINE_CONFIG["memory_pending_items"]],
    )


def relationship_strength(
    entries: Sequence[MemoryEntry], now: datetime | None = None,
) -> float:
    """Score 0-100 from interaction frequency, emotional engagement and reply quality.

    Frequency is entries per day since the oldest entry given, capped.
    """
    base = ENGINE_CONFIG["relationship_base_score"]
    if not entries:
        return base

    now = normalize(now) if now is not None else utcnow()
    score = base

    oldest = min(normalize(e.timestamp) for e in entries)
    days = (now - oldest).total_seconds() / 86400
    if days > 0:
        score += min(len(entries) / days * 10, ENGINE_CONFIG["relationship_frequency_cap"])

    emotional = sum(
        1 for e in entries
        if e.emotional_context and e.emotional_context.lower() != "neutral"
    )
    score += emotional / len(entries) * ENGINE_CONFIG["relationship_emotional_weight"]

    threshold = ENGINE_CONFIG["relationship_quality_threshold"]
    quality = sum(
        1 for e in entries
        if e.response_quality is not None and e.response_quality > threshold
    )
    score += quality / len(entries) * ENGINE_CONFIG["relationship_quality_weight"]

    return max(0.0, min(100.0, score))
