"""Long-range analysis of a conversation memory."""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import timedelta

from pingchain.core.timestamps import hours_between, normalize
from pingchain.models import ConversationMemory, MemoryAnalysis, MemoryEntry

_MAX_GAP = timedelta(days=7)
_TREND_RATIO = 1.5
_MILESTONE_EMOTIONS = ("excited", "happy", "concerned", "frustrated")
_MILESTONE_QUALITY = 0.8
_MAX_MILESTONES = 10
_TOP_TOPICS = 10


def analyze_memory(memory: ConversationMemory) -> MemoryAnalysis:
    entries = sorted(memory.entries, key=lambda e: normalize(e.timestamp))
    if not entries:
        return MemoryAnalysis()

    return MemoryAnalysis(
        total_interactions=len(entries),
        average_gap_hours=average_gap_hours(entries),
        top_topics=Counter(t for e in entries for t in e.topics).most_common(_TOP_TOPICS),
        emotional_trends=emotional_trends(entries),
        communication_evolution=communication_evolution(entries),
        milestones=milestones(entries),
    )


def average_gap_hours(entries: list[MemoryEntry]) -> float:
    """Mean gap between consecutive entries, ignoring gaps of a week or more."""
    times = [normalize(e.timestamp) for e in entries]
    gaps = [
        hours_between(a, b) for a, b in zip(times, times[1:])
        if timedelta(0) < b - a < _MAX_GAP
    ]
    return sum(gaps) / len(gaps) if gaps else 0.0


def emotional_trends(entries: list[MemoryEntry]) -> list[tuple[str, str]]:
    """Per recurring emotion, compare how often it shows up early vs late.

    The conversation's time span is split at its midpoint; emotions seen
    fewer than three times are skipped.
    """
    start = normalize(entries[0].timestamp)
    midpoint = start + (normalize(entries[-1].timestamp) - start) / 2

    counts: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    for entry in entries:
        if not entry.emotional_context:
            continue
        late = normalize(entry.timestamp) > midpoint
        counts[entry.emotional_context.lower()][int(late)] += 1

    trends = []
    for emotion, (early, late) in counts.items():
        if early + late < 3:
            continue
        if late > early * _TREND_RATIO:
            trend = "increasing"
        elif early > late * _TREND_RATIO:
            trend = "decreasing"
        else:
            trend = "stable"
        trends.append((emotion, trend))
    return trends


def communication_evolution(entries: list[MemoryEntry]) -> list[tuple[str, str]]:
    """Dominant style in the early, middle and recent thirds (needs 4+ entries)."""
    n = len(entries)
    if n < 4:
        return []
    bounds = (("early", 0, int(n * 0.33)), ("middle", int(n * 0.33), int(n * 0.66)),
              ("recent", int(n * 0.66), n))
    evolution = []
    for period, lo, hi in bounds:
        styles = Counter(
            e.communication_style.lower() for e in entries[lo:hi] if e.communication_style
        )
        evolution.append((period, styles.most_common(1)[0][0] if styles else "neutral"))
    return evolution


def milestones(entries: list[MemoryEntry]) -> list[tuple]:
    found = [(normalize(entries[0].timestamp), "First interaction")]
    for entry in entries:
        emotion = (entry.emotional_context or "").lower()
        if emotion in _MILESTONE_EMOTIONS:
            found.append((normalize(entry.timestamp), f"Emotional moment: {emotion}"))
        if entry.response_quality is not None and entry.response_quality > _MILESTONE_QUALITY:
            found.append((normalize(entry.timestamp), "High-quality interaction"))
    found.sort(key=lambda item: item[0])
    return found[:_MAX_MILESTONES]
