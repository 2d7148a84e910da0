"""Due-time queue for deferred reminder work.

A min-heap of (due_at, seq, task_id). Cancellation is lazy: cancelled ids are
remembered and skipped when they reach the top of the heap, so cancel is O(1)
and nothing ever has to be removed from the middle of the heap.
"""

from __future__ import annotations

import heapq
import itertools
from datetime import datetime

from pingchain.core.timestamps import normalize


class DueQueue:
    def __init__(self) -> None:
        self._heap: list[tuple[datetime, int, str]] = []
        self._live: dict[str, int] = {}
        self._seq = itertools.count()

    def schedule(self, task_id: str, due_at: datetime) -> None:
        """Queue a task; rescheduling an id replaces its previous due time."""
        seq = next(self._seq)
        self._live[task_id] = seq
        heapq.heappush(self._heap, (normalize(due_at), seq, task_id))

    def cancel(self, task_id: str) -> bool:
        return self._live.pop(task_id, None) is not None

    def pop_due(self, now: datetime) -> list[str]:
        """Remove and return every live task due at or before ``now``, earliest first."""
        now = normalize(now)
        due = []
        while self._heap and self._heap[0][0] <= now:
            _, seq, task_id = heapq.heappop(self._heap)
            if self._live.get(task_id) == seq:
                del self._live[task_id]
                due.append(task_id)
        return due

    def next_due(self) -> datetime | None:
        self._drop_stale()
        return self._heap[0][0] if self._heap else None

    def _drop_stale(self) -> None:
        while self._heap and self._live.get(self._heap[0][2]) != self._heap[0][1]:
            heapq.heappop(self._heap)

    def __len__(self) -> int:
        return len(self._live)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._live
