"""Reminder / Notification Orchestrator.

Owns the reminder lifecycle::

    pending ──deliver──▶ sent
       └────dismiss───▶ dismissed

Nothing leaves ``sent`` or ``dismissed`` except deletion. Reminders with a
future ``scheduled_for`` wait in a ``DueQueue`` until ``run_due``; everything
else is delivered as soon as it is created. Delivery re-reads the stored
reminder first, so a reminder dismissed or deleted while queued is never sent.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from pingchain.channels.base import ChannelAdapter
from pingchain.core.effectiveness import EffectivenessTracker
from pingchain.core.question_detector import extract_questions
from pingchain.core.scheduler import DueQueue
from pingchain.core.timestamps import normalize, utcnow
from pingchain.models import (
    PRIORITIES,
    REMINDER_TYPES,
    DeliveryRecord,
    EffectivenessStats,
    NotificationSettings,
    Reminder,
)
from pingchain.storage.delivery_log import DeliveryLog
from pingchain.storage.sqlite_store import SQLiteStore, StoreWriteError

logger = logging.getLogger(__name__)


class ReminderStateError(ValueError):
    """Requested transition is not allowed from the reminder's current status."""


class NotificationOrchestrator:
    def __init__(
        self,
        store: SQLiteStore,
        channels: dict[str, ChannelAdapter],
        settings: NotificationSettings,
        tracker: EffectivenessTracker | None = None,
        delivery_log: DeliveryLog | None = None,
        queue: DueQueue | None = None,
    ) -> None:
        self.store = store
        self.channels = channels
        self.settings = settings
        self.tracker = tracker if tracker is not None else EffectivenessTracker()
        self.delivery_log = delivery_log
        self.queue = queue if queue is not None else DueQueue()
        # contact_id -> sent_at of every delivered reminder not yet answered
        self._awaiting_reply: dict[str, list[datetime]] = {}

    async def create_reminder(
        self,
        user_id: str,
        contact_id: str,
        contact_name: str,
        message: str,
        type: str = "overdue",
        priority: str = "medium",
        scheduled_for: datetime | None = None,
        now: datetime | None = None,
    ) -> str:
        """Create a reminder and deliver or queue it. Returns the reminder id.

        A pending reminder of the same type for the same contact is reused.
        If it is waiting for a later time and this request is immediate, it
        is taken off the queue and delivered now.
        """
        if type not in REMINDER_TYPES:
            raise ValueError(f"Unknown reminder type {type!r}")
        if priority not in PRIORITIES:
            raise ValueError(f"Unknown reminder priority {priority!r}")
        now = normalize(now) if now is not None else utcnow()

        existing = await self.store.find_pending_reminder(user_id, contact_id, type)
        if existing is not None:
            immediate = scheduled_for is None or normalize(scheduled_for) <= now
            if immediate and existing.scheduled_for is not None and existing.scheduled_for > now:
                self.queue.cancel(existing.id)
                logger.info("Pulling queued %s reminder %s forward for %s", type, existing.id, contact_id)
                await self.deliver(existing.id, now=now)
            else:
                logger.debug("Reusing pending %s reminder %s for %s", type, existing.id, contact_id)
            return existing.id

        reminder = Reminder(
            user_id=user_id,
            contact_id=contact_id,
            contact_name=contact_name,
            type=type,
            priority=priority,
            message=message,
            created_at=now,
            scheduled_for=normalize(scheduled_for) if scheduled_for is not None else None,
        )
        try:
            await self.store.save_reminder(reminder)
        except StoreWriteError:
            reminder.status = "failed"
            logger.error("Could not persist %s reminder for %s", type, contact_id)
            raise

        if reminder.scheduled_for is not None and reminder.scheduled_for > now:
            self.queue.schedule(reminder.id, reminder.scheduled_for)
            logger.info("Queued %s reminder %s for %s", type, reminder.id,
                        reminder.scheduled_for.isoformat())
        else:
            await self.deliver(reminder.id, now=now)
        return reminder.id

    async def deliver(self, reminder_id: str, now: datetime | None = None) -> bool:
        """Fan a pending reminder out to every enabled channel and mark it sent.

        Returns False without side effects if the reminder is gone, no longer
        pending, or suppressed by ``high_priority_only``.
        """
        now = normalize(now) if now is not None else utcnow()
        reminder = await self.store.get_reminder(reminder_id)
        if reminder is None or reminder.status != "pending":
            logger.debug("Reminder %s is not pending at fire time, skipping", reminder_id)
            return False
        if self.settings.high_priority_only and reminder.priority != "high":
            logger.debug("Suppressing %s-priority reminder %s", reminder.priority, reminder_id)
            return False

        names = [n for n in self.channels if self.settings.channel_enabled(n)]
        results = await asyncio.gather(*(self.channels[n].send(reminder) for n in names))
        for name, ok in zip(names, results):
            if not ok:
                logger.warning("Delivery of reminder %s via %s failed", reminder_id, name)
        self._log_delivery(reminder, dict(zip(names, results)), now)

        try:
            await self.store.update_reminder_status(reminder_id, "sent", sent_at=now)
        except StoreWriteError:
            reminder.status = "failed"
            logger.error("Could not mark reminder %s sent", reminder_id)
            raise
        reminder.status = "sent"
        reminder.sent_at = now
        self.tracker.track_sent(reminder.contact_id)
        self._awaiting_reply.setdefault(reminder.contact_id, []).append(now)
        logger.info("Sent %s reminder %s (%d/%d channels ok)",
                    reminder.type, reminder_id, sum(results), len(results))
        return True

    def _log_delivery(self, reminder: Reminder, results: dict[str, bool], now: datetime) -> None:
        if self.delivery_log is None or not results:
            return
        records = [
            DeliveryRecord(
                reminder_id=reminder.id,
                user_id=reminder.user_id,
                contact_id=reminder.contact_id,
                channel=channel,
                success=ok,
                attempted_at=now.isoformat(),
            )
            for channel, ok in results.items()
        ]
        try:
            self.delivery_log.record(records)
        except OSError:
            logger.exception("Could not write delivery record for %s", reminder.id)

    async def dismiss(self, reminder_id: str) -> bool:
        reminder = await self.store.get_reminder(reminder_id)
        if reminder is None:
            return False
        if reminder.status != "pending":
            raise ReminderStateError(
                f"Cannot dismiss reminder {reminder_id} in status {reminder.status!r}"
            )
        self.queue.cancel(reminder_id)
        await self.store.update_reminder_status(reminder_id, "dismissed")
        return True

    async def delete(self, reminder_id: str) -> bool:
        self.queue.cancel(reminder_id)
        return await self.store.delete_reminder(reminder_id)

    async def clear_all(self, user_id: str) -> int:
        for reminder in await self.store.list_reminders(user_id):
            self.queue.cancel(reminder.id)
        return await self.store.clear_reminders(user_id)

    async def list_reminders(self, user_id: str, status: str | None = None) -> list[Reminder]:
        return await self.store.list_reminders(user_id, status=status)

    async def pending_reminders(self, user_id: str) -> list[Reminder]:
        return await self.store.list_reminders(user_id, status="pending")

    async def run_due(self, now: datetime | None = None) -> list[str]:
        """Deliver queued reminders whose time has come; returns the ids sent."""
        now = normalize(now) if now is not None else utcnow()
        sent = []
        for reminder_id in self.queue.pop_due(now):
            if await self.deliver(reminder_id, now=now):
                sent.append(reminder_id)
        return sent

    async def restore(self, user_id: str, now: datetime | None = None) -> int:
        """Re-queue persisted future reminders after a restart.

        Pending reminders whose time already passed are delivered right away.
        Returns the number re-queued.
        """
        now = normalize(now) if now is not None else utcnow()
        queued = 0
        for reminder in await self.pending_reminders(user_id):
            if reminder.scheduled_for is None:
                continue
            if reminder.scheduled_for > now:
                self.queue.schedule(reminder.id, reminder.scheduled_for)
                queued += 1
            else:
                await self.deliver(reminder.id, now=now)
        return queued

    def record_reply(self, contact_id: str, at: datetime | None = None) -> list[timedelta]:
        """Credit every sent, unanswered reminder for a contact with the user's reply.

        Each sent reminder is credited at most once. Returns the latencies
        credited, oldest reminder first.
        """
        sent_times = self._awaiting_reply.pop(contact_id, [])
        at = normalize(at) if at is not None else utcnow()
        latencies = [max(at - sent_at, timedelta(0)) for sent_at in sent_times]
        for latency in latencies:
            self.tracker.track_response(contact_id, latency)
        return latencies

    def delivery_outcome(self, user_id: str, reminder_id: str) -> dict[str, bool]:
        """Latest per-channel result for a reminder, from the delivery log."""
        if self.delivery_log is None:
            return {}
        return self.delivery_log.outcome(user_id, reminder_id)

    def effectiveness(self, contact_id: str) -> EffectivenessStats:
        return self.tracker.stats(contact_id)

    @staticmethod
    def detect_unanswered_questions(texts: list[str]) -> list[str]:
        return extract_questions(texts)
