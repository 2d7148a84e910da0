"""Loop Engine: wires storage, memory, reminders and schedulers together.

This is the entry point for the application layer. Construct one per
process (or per test), call ``initialize()`` before use and ``close()`` when
done.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from pingchain.channels.base import ChannelAdapter
from pingchain.channels.registry import build_channels
from pingchain.config import DATA_DIR, ENGINE_CONFIG
from pingchain.core.classifier import assess_conversation, classify, compute_stats, group_by_contact
from pingchain.core.contracts import ContractScheduler
from pingchain.core.conversation_memory import ConversationMemoryManager
from pingchain.core.effectiveness import EffectivenessTracker
from pingchain.core.followups import FollowupScheduler
from pingchain.core.memory_analysis import analyze_memory
from pingchain.core.orchestrator import NotificationOrchestrator
from pingchain.core.reminder_driver import ReminderDriver
from pingchain.core.timestamps import normalize, utcnow
from pingchain.models import (
    Contact,
    ConversationMemory,
    Dashboard,
    MemoryAnalysis,
    Message,
    NotificationSettings,
)
from pingchain.storage.delivery_log import DeliveryLog
from pingchain.storage.sqlite_store import SQLiteStore, StoreWriteError

logger = logging.getLogger(__name__)


class LoopEngine:
    """Top-level object for the conversation engine."""

    def __init__(
        self,
        data_dir: Path | None = None,
        settings: NotificationSettings | None = None,
        channels: dict[str, ChannelAdapter] | None = None,
    ) -> None:
        self.data_dir = data_dir or DATA_DIR
        self.settings = settings or NotificationSettings()

        self.store = SQLiteStore(self.data_dir / "pingchain.db")
        self.delivery_log = DeliveryLog(self.data_dir / "logs" / "deliveries")
        self.memory = ConversationMemoryManager(self.store)
        self.tracker = EffectivenessTracker()

        self.orchestrator = NotificationOrchestrator(
            store=self.store,
            channels=channels if channels is not None else build_channels(self.settings),
            settings=self.settings,
            tracker=self.tracker,
            delivery_log=self.delivery_log,
        )
        self.driver = ReminderDriver(self.orchestrator, self.settings)
        self.contracts = ContractScheduler(self.store, self.orchestrator, self.settings)
        self.followups = FollowupScheduler(self.store, self.orchestrator)

    async def initialize(self) -> None:
        await self.store.initialize()

    async def close(self) -> None:
        await self.store.close()

    def configure(self, raw: dict[str, Any] | None) -> NotificationSettings:
        """Apply user notification settings and rebuild the channel adapters."""
        self.settings = NotificationSettings.from_dict(raw)
        self.orchestrator.settings = self.settings
        self.orchestrator.channels = build_channels(self.settings)
        self.driver.settings = self.settings
        self.contracts.settings = self.settings
        self.driver.reset()
        return self.settings

    # ── Ingestion ──

    async def add_contact(
        self, user_id: str, name: str, platform: str = "email", category: str = "other",
    ) -> Contact:
        contact = Contact(user_id=user_id, name=name, platform=platform, category=category)
        await self.store.save_contact(contact)
        return contact

    async def record_message(
        self,
        user_id: str,
        contact_id: str,
        content: str,
        direction: str = "inbound",
        created_at: Any = None,
        ai_generated: bool = False,
        platform: str = "",
    ) -> Message:
        """Persist a message and update the conversation memory.

        ``created_at`` may be any timestamp shape ``normalize`` accepts.
        """
        if direction not in ("inbound", "outbound"):
            raise ValueError(f"Unknown message direction {direction!r}")
        contact = await self.store.get_contact(contact_id)
        if contact is None or contact.user_id != user_id:
            raise KeyError(contact_id)

        message = Message(
            user_id=user_id,
            contact_id=contact_id,
            content=content,
            direction=direction,
            created_at=normalize(created_at) if created_at is not None else utcnow(),
            ai_generated=ai_generated,
            platform=platform or contact.platform,
        )
        try:
            await self.store.save_message(message)
        except StoreWriteError:
            message.status = "failed"
            logger.error("Could not persist message for contact %s", contact_id)
            raise

        try:
            await self.memory.record_message(user_id, contact, message)
        except StoreWriteError:
            raise
        except Exception:
            logger.exception("Memory update failed for message %s", message.id)

        if direction == "outbound":
            self.orchestrator.record_reply(contact_id, at=message.created_at)
        return message

    # ── Reads ──

    async def dashboard(self, user_id: str, now: datetime | None = None) -> Dashboard:
        """Classify conversations, score their health and raise any new reminders."""
        now = normalize(now) if now is not None else utcnow()
        contacts = await self.store.list_contacts(user_id)
        messages = await self.store.list_messages(user_id)

        classification = classify(contacts, messages, now=now)
        stats = compute_stats(contacts, messages, now=now, classification=classification)

        health = {}
        by_contact = group_by_contact(messages)
        for contact in contacts:
            if contact.id not in by_contact:
                continue
            try:
                health[contact.id] = assess_conversation(
                    by_contact[contact.id], now=now, contact_id=contact.id,
                )
            except Exception:
                logger.exception("Health assessment failed for contact %s", contact.id)

        new_reminders = await self.driver.run(
            user_id, contacts, messages, classification=classification, now=now,
        )
        return Dashboard(
            classification=classification,
            stats=stats,
            health=health,
            new_reminders=new_reminders,
            pending_reminders=await self.orchestrator.pending_reminders(user_id),
        )

    async def conversation_memory(
        self, user_id: str, contact_id: str, now: datetime | None = None,
    ) -> ConversationMemory:
        return await self.memory.get(user_id, contact_id, now=now)

    async def analyze(self, user_id: str, contact_id: str) -> MemoryAnalysis:
        return analyze_memory(await self.memory.get(user_id, contact_id))

    # ── Periodic work ──

    async def restore(self, user_id: str, now: datetime | None = None) -> int:
        """Re-queue a user's future reminders after a restart."""
        return await self.orchestrator.restore(user_id, now=now)

    async def tick(self, user_id: str, now: datetime | None = None) -> dict[str, list[str]]:
        """Deliver due queued reminders, contract check-ins and follow-ups."""
        now = normalize(now) if now is not None else utcnow()
        return {
            "queued": await self.orchestrator.run_due(now),
            "checkins": await self.contracts.fire_due(user_id, now),
            "followups": await self.followups.fire_due(user_id, now),
        }

    async def run_periodic(
        self,
        user_id: str,
        interval: float | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        """Tick until ``stop_event`` is set. Errors are logged and the loop continues."""
        interval = interval if interval is not None else ENGINE_CONFIG["insight_scan_interval_seconds"]
        stop_event = stop_event or asyncio.Event()
        while not stop_event.is_set():
            try:
                await self.tick(user_id)
            except Exception:
                logger.exception("Periodic tick failed for %s", user_id)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
