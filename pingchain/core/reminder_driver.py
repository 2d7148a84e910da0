"""Turns classifier output into reminders.

Runs on every dashboard read, so it is guarded by a per-user snapshot key of
(contact count, message count, pending reply count): an unchanged key means
nothing new can have happened and no reminders are created.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from pingchain.config import ENGINE_CONFIG
from pingchain.core.classifier import (
    classify,
    group_by_contact,
    message_time,
    unanswered_questions,
)
from pingchain.core.orchestrator import NotificationOrchestrator
from pingchain.core.question_detector import has_urgent_keywords
from pingchain.core.timestamps import hours_between, normalize, utcnow
from pingchain.models import Classification, Contact, Message, NotificationSettings, PendingReply
from pingchain.storage.sqlite_store import StoreWriteError

logger = logging.getLogger(__name__)

SnapshotKey = tuple[int, int, int]


def overdue_priority(hours: float) -> str:
    bounds = ENGINE_CONFIG["overdue_priority_hours"]
    if hours >= bounds["high"]:
        return "high"
    if hours >= bounds["medium"]:
        return "medium"
    return "low"


def snapshot_key(
    contacts: Sequence[Contact], messages: Sequence[Message], classification: Classification,
) -> SnapshotKey:
    return (len(contacts), len(messages), len(classification.pending_replies))


class ReminderDriver:
    def __init__(
        self, orchestrator: NotificationOrchestrator, settings: NotificationSettings,
    ) -> None:
        self.orchestrator = orchestrator
        self.settings = settings
        self._snapshots: dict[str, SnapshotKey] = {}

    async def run(
        self,
        user_id: str,
        contacts: Sequence[Contact],
        messages: Sequence[Message],
        classification: Classification | None = None,
        now: datetime | None = None,
    ) -> list[str]:
        """Create overdue, question and urgent reminders. Returns reminder ids."""
        now = normalize(now) if now is not None else utcnow()
        if classification is None:
            classification = classify(contacts, messages, now=now)

        key = snapshot_key(contacts, messages, classification)
        if self._snapshots.get(user_id) == key:
            logger.debug("Snapshot unchanged for %s, no reminders", user_id)
            return []

        created: list[str] = []
        for pending in classification.pending_replies:
            try:
                created.extend(await self._overdue(user_id, pending, now))
            except StoreWriteError:
                raise
            except Exception:
                logger.exception("Overdue check failed for contact %s", pending.contact.id)

        by_contact = group_by_contact(messages)
        for contact in contacts:
            try:
                created.extend(
                    await self._questions_and_urgent(
                        user_id, contact, by_contact.get(contact.id, []), now,
                    )
                )
            except StoreWriteError:
                raise
            except Exception:
                logger.exception("Question check failed for contact %s", contact.id)

        self._snapshots[user_id] = key
        if created:
            logger.info("Created %d reminders for %s", len(created), user_id)
        return created

    async def _overdue(self, user_id: str, pending: PendingReply, now: datetime) -> list[str]:
        hours = pending.hours_since_received
        if hours < self.settings.overdue_threshold:
            return []
        reminder_id = await self.orchestrator.create_reminder(
            user_id=user_id,
            contact_id=pending.contact.id,
            contact_name=pending.contact.name,
            message=f"You haven't replied to {pending.contact.name} in {int(hours)} hours.",
            type="overdue",
            priority=overdue_priority(hours),
            now=now,
        )
        return [reminder_id]

    async def _questions_and_urgent(
        self, user_id: str, contact: Contact, messages: list[Message], now: datetime,
    ) -> list[str]:
        if not messages:
            return []
        created = []
        open_questions = [
            m for m in unanswered_questions(messages)
            if hours_between(message_time(m), now) >= self.settings.question_threshold
        ]
        if open_questions:
            created.append(await self.orchestrator.create_reminder(
                user_id=user_id,
                contact_id=contact.id,
                contact_name=contact.name,
                message=f'{contact.name} asked: "{open_questions[-1].content}"',
                type="question",
                priority="high",
                now=now,
            ))

        outbound = [message_time(m) for m in messages if m.direction == "outbound"]
        last_outbound = max(outbound, default=None)
        urgent = [
            m for m in messages
            if m.direction == "inbound"
            and (last_outbound is None or message_time(m) > last_outbound)
            and has_urgent_keywords(m.content)
        ]
        if urgent:
            created.append(await self.orchestrator.create_reminder(
                user_id=user_id,
                contact_id=contact.id,
                contact_name=contact.name,
                message=f"Urgent message from {contact.name}: {urgent[-1].content}",
                type="urgent",
                priority="high",
                now=now,
            ))
        return created

    def reset(self, user_id: str | None = None) -> None:
        """Forget snapshot keys so the next run re-evaluates everything."""
        if user_id is None:
            self._snapshots.clear()
        else:
            self._snapshots.pop(user_id, None)
