"""Reminder effectiveness tracking.

In-memory, per contact. Counts are additive and only ever grow; a reply is
credited with the latency between the reminder being sent and the user's
next outbound message to that contact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from pingchain.models import EffectivenessStats

logger = logging.getLogger(__name__)


@dataclass
class _Counts:
    sent: int = 0
    responded: int = 0
    total_latency: float = 0.0


class EffectivenessTracker:
    def __init__(self) -> None:
        self._counts: dict[str, _Counts] = {}

    def track_sent(self, contact_id: str) -> None:
        self._counts.setdefault(contact_id, _Counts()).sent += 1

    def track_response(self, contact_id: str, latency: timedelta | float) -> None:
        """Credit a reply; ``latency`` is a timedelta or a number of seconds."""
        seconds = latency.total_seconds() if isinstance(latency, timedelta) else float(latency)
        if seconds < 0:
            logger.warning("Negative response latency %.1fs for %s, clamping to 0", seconds, contact_id)
            seconds = 0.0
        counts = self._counts.setdefault(contact_id, _Counts())
        counts.responded += 1
        counts.total_latency += seconds

    def stats(self, contact_id: str) -> EffectivenessStats:
        counts = self._counts.get(contact_id)
        if counts is None:
            return EffectivenessStats()
        return EffectivenessStats(
            response_rate=counts.responded / counts.sent if counts.sent else 0.0,
            avg_response_time=counts.total_latency / counts.responded if counts.responded else 0.0,
            total_reminders=counts.sent,
        )
