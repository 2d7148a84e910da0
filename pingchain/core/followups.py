"""One-shot scheduled follow-ups ("remind me to get back to Ana in 3 hours")."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from pingchain.config import ENGINE_CONFIG
from pingchain.core.orchestrator import NotificationOrchestrator
from pingchain.core.timestamps import normalize, utcnow
from pingchain.models import ScheduledFollowup
from pingchain.storage.sqlite_store import SQLiteStore

logger = logging.getLogger(__name__)


class FollowupScheduler:
    """User-requested one-off reminders.

    Not gated by ``scheduled_reminders``; that setting only covers
    contract check-ins.
    """

    def __init__(self, store: SQLiteStore, orchestrator: NotificationOrchestrator) -> None:
        self.store = store
        self.orchestrator = orchestrator

    async def schedule(
        self,
        user_id: str,
        contact_id: str,
        contact_name: str,
        message: str,
        scheduled_for: datetime | None = None,
        delay_hours: float | None = None,
        now: datetime | None = None,
    ) -> ScheduledFollowup:
        """Schedule a follow-up at ``scheduled_for`` or ``delay_hours`` from now."""
        now = normalize(now) if now is not None else utcnow()
        if scheduled_for is None:
            if delay_hours is None:
                delay_hours = ENGINE_CONFIG["followup_default_delay_hours"]
            scheduled_for = now + timedelta(hours=delay_hours)
        followup = ScheduledFollowup(
            user_id=user_id,
            contact_id=contact_id,
            contact_name=contact_name,
            scheduled_for=normalize(scheduled_for),
            message=message,
            created_at=now,
        )
        await self.store.save_followup(followup)
        return followup

    async def cancel(self, followup_id: str) -> bool:
        followup = await self.store.get_followup(followup_id)
        if followup is None or followup.status != "pending":
            return False
        await self.store.update_followup_status(followup_id, "cancelled")
        return True

    async def fire_due(self, user_id: str, now: datetime | None = None) -> list[str]:
        """Turn due pending follow-ups into ``scheduled`` reminders. Returns reminder ids."""
        now = normalize(now) if now is not None else utcnow()
        fired = []
        for followup in await self.store.list_followups(user_id, status="pending"):
            if followup.scheduled_for > now:
                continue
            # status may have changed since the listing
            current = await self.store.get_followup(followup.id)
            if current is None or current.status != "pending":
                continue
            reminder_id = await self.orchestrator.create_reminder(
                user_id=user_id,
                contact_id=followup.contact_id,
                contact_name=followup.contact_name,
                message=followup.message or f"Follow up with {followup.contact_name}.",
                type="scheduled",
                priority="medium",
                now=now,
            )
            await self.store.update_followup_status(followup.id, "sent")
            fired.append(reminder_id)
        if fired:
            logger.info("Fired %d follow-ups for %s", len(fired), user_id)
        return fired
