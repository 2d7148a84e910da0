"""SQLite storage for contacts, messages, reminders, schedules and memory entries.

Every table carries a ``user_id`` partition key. Timestamps are stored as
ISO-8601 text and normalised back to UTC datetimes on read; list fields are
stored as JSON.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from pingchain.config import DB_PATH
from pingchain.core.timestamps import normalize
from pingchain.models import (
    CommunicationContract,
    Contact,
    MemoryEntry,
    Message,
    Reminder,
    ScheduledFollowup,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS contacts (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    name        TEXT NOT NULL,
    platform    TEXT,
    category    TEXT
);

CREATE INDEX IF NOT EXISTS idx_contacts_user ON contacts(user_id);

CREATE TABLE IF NOT EXISTS messages (
    id           TEXT PRIMARY KEY,
    user_id      TEXT NOT NULL,
    contact_id   TEXT NOT NULL,
    content      TEXT NOT NULL,
    direction    TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    ai_generated INTEGER DEFAULT 0,
    platform     TEXT,
    status       TEXT DEFAULT 'stored',
    FOREIGN KEY (contact_id) REFERENCES contacts(id)
);

CREATE INDEX IF NOT EXISTS idx_messages_user_contact ON messages(user_id, contact_id);

CREATE TABLE IF NOT EXISTS reminders (
    id            TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL,
    contact_id    TEXT NOT NULL,
    contact_name  TEXT,
    type          TEXT NOT NULL,
    priority      TEXT NOT NULL,
    message       TEXT,
    created_at    TEXT NOT NULL,
    scheduled_for TEXT,
    sent_at       TEXT,
    status        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_reminders_user_status ON reminders(user_id, status);

CREATE TABLE IF NOT EXISTS scheduled_followups (
    id            TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL,
    contact_id    TEXT NOT NULL,
    contact_name  TEXT,
    scheduled_for TEXT NOT NULL,
    message       TEXT,
    status        TEXT NOT NULL,
    created_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS communication_contracts (
    id            TEXT PRIMARY KEY,
    user_id       TEXT NOT NULL,
    contact_id    TEXT NOT NULL,
    contact_name  TEXT,
    frequency     TEXT NOT NULL,
    time_of_day   TEXT NOT NULL,
    days_of_week  TEXT NOT NULL,
    last_checkin  TEXT NOT NULL,
    next_checkin  TEXT NOT NULL,
    status        TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS memory_entries (
    id                  TEXT PRIMARY KEY,
    user_id             TEXT NOT NULL,
    contact_id          TEXT NOT NULL,
    content             TEXT NOT NULL,
    timestamp           TEXT NOT NULL,
    context             TEXT,
    emotional_context   TEXT,
    communication_style TEXT,
    sentiment           TEXT,
    topics              TEXT,
    urgency             TEXT,
    category            TEXT,
    action_items        TEXT,
    response_quality    REAL
);

CREATE INDEX IF NOT EXISTS idx_memory_key ON memory_entries(user_id, contact_id, timestamp);
"""


class StoreWriteError(RuntimeError):
    """A write to the store failed; the caller's record was not persisted."""


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt(value: str | None) -> datetime | None:
    return normalize(value) if value else None


class SQLiteStore:
    """Async SQLite store for engine records."""

    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path or DB_PATH
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "SQLiteStore not initialized; call initialize() first"
        return self._db

    async def _write(self, sql: str, params: tuple) -> int:
        try:
            cur = await self.db.execute(sql, params)
            await self.db.commit()
        except aiosqlite.Error as exc:
            raise StoreWriteError(f"Write failed: {exc}") from exc
        return cur.rowcount

    async def _fetch_all(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        async with self.db.execute(sql, params) as cur:
            return [dict(row) async for row in cur]

    async def _fetch_one(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        async with self.db.execute(sql, params) as cur:
            row = await cur.fetchone()
            return dict(row) if row else None

    # ── Contacts ──

    async def save_contact(self, contact: Contact) -> None:
        await self._write(
            "INSERT OR REPLACE INTO contacts (id, user_id, name, platform, category) "
            "VALUES (?, ?, ?, ?, ?)",
            (contact.id, contact.user_id, contact.name, contact.platform, contact.category),
        )

    async def get_contact(self, contact_id: str) -> Contact | None:
        row = await self._fetch_one("SELECT * FROM contacts WHERE id = ?", (contact_id,))
        return Contact(**row) if row else None

    async def list_contacts(self, user_id: str) -> list[Contact]:
        rows = await self._fetch_all(
            "SELECT * FROM contacts WHERE user_id = ? ORDER BY name", (user_id,)
        )
        return [Contact(**row) for row in rows]

    # ── Messages ──

    async def save_message(self, msg: Message) -> None:
        await self._write(
            """INSERT INTO messages
            (id, user_id, contact_id, content, direction, created_at, ai_generated, platform, status)
            VALUES (?,?,?,?,?,?,?,?,?)""",
            (
                msg.id, msg.user_id, msg.contact_id, msg.content, msg.direction,
                _iso(normalize(msg.created_at)), int(msg.ai_generated), msg.platform, msg.status,
            ),
        )

    async def list_messages(
        self, user_id: str, contact_id: str | None = None,
    ) -> list[Message]:
        if contact_id:
            sql = "SELECT * FROM messages WHERE user_id = ? AND contact_id = ? ORDER BY created_at"
            params: tuple = (user_id, contact_id)
        else:
            sql = "SELECT * FROM messages WHERE user_id = ? ORDER BY created_at"
            params = (user_id,)
        return [_row_to_message(row) for row in await self._fetch_all(sql, params)]

    async def count_messages(self, user_id: str) -> int:
        row = await self._fetch_one(
            "SELECT COUNT(*) as cnt FROM messages WHERE user_id = ?", (user_id,)
        )
        return row["cnt"] if row else 0

    # ── Reminders ──

    async def save_reminder(self, rem: Reminder) -> None:
        await self._write(
            """INSERT OR REPLACE INTO reminders
            (id, user_id, contact_id, contact_name, type, priority, message,
             created_at, scheduled_for, sent_at, status)
            VALUES (?,?,?,?,?,?,?,?,?,?,?)""",
            (
                rem.id, rem.user_id, rem.contact_id, rem.contact_name, rem.type,
                rem.priority, rem.message, _iso(rem.created_at),
                _iso(rem.scheduled_for), _iso(rem.sent_at), rem.status,
            ),
        )

    async def get_reminder(self, reminder_id: str) -> Reminder | None:
        row = await self._fetch_one("SELECT * FROM reminders WHERE id = ?", (reminder_id,))
        return _row_to_reminder(row) if row else None

    async def list_reminders(
        self, user_id: str, status: str | None = None,
    ) -> list[Reminder]:
        if status:
            sql = "SELECT * FROM reminders WHERE user_id = ? AND status = ? ORDER BY created_at DESC"
            params: tuple = (user_id, status)
        else:
            sql = "SELECT * FROM reminders WHERE user_id = ? ORDER BY created_at DESC"
            params = (user_id,)
        return [_row_to_reminder(row) for row in await self._fetch_all(sql, params)]

    async def find_pending_reminder(
        self, user_id: str, contact_id: str, reminder_type: str,
    ) -> Reminder | None:
        row = await self._fetch_one(
            "SELECT * FROM reminders WHERE user_id = ? AND contact_id = ? AND type = ? "
            "AND status = 'pending' ORDER BY created_at DESC LIMIT 1",
            (user_id, contact_id, reminder_type),
        )
        return _row_to_reminder(row) if row else None

    async def update_reminder_status(
        self, reminder_id: str, status: str, sent_at: datetime | None = None,
    ) -> None:
        await self._write(
            "UPDATE reminders SET status = ?, sent_at = COALESCE(?, sent_at) WHERE id = ?",
            (status, _iso(sent_at), reminder_id),
        )

    async def delete_reminder(self, reminder_id: str) -> bool:
        return await self._write("DELETE FROM reminders WHERE id = ?", (reminder_id,)) > 0

    async def clear_reminders(self, user_id: str) -> int:
        return await self._write("DELETE FROM reminders WHERE user_id = ?", (user_id,))

    # ── Scheduled follow-ups ──

    async def save_followup(self, fu: ScheduledFollowup) -> None:
        await self._write(
            """INSERT OR REPLACE INTO scheduled_followups
            (id, user_id, contact_id, contact_name, scheduled_for, message, status, created_at)
            VALUES (?,?,?,?,?,?,?,?)""",
            (
                fu.id, fu.user_id, fu.contact_id, fu.contact_name,
                _iso(fu.scheduled_for), fu.message, fu.status, _iso(fu.created_at),
            ),
        )

    async def get_followup(self, followup_id: str) -> ScheduledFollowup | None:
        row = await self._fetch_one(
            "SELECT * FROM scheduled_followups WHERE id = ?", (followup_id,)
        )
        return _row_to_followup(row) if row else None

    async def list_followups(
        self, user_id: str, status: str | None = None,
    ) -> list[ScheduledFollowup]:
        if status:
            sql = ("SELECT * FROM scheduled_followups WHERE user_id = ? AND status = ? "
                   "ORDER BY scheduled_for")
            params: tuple = (user_id, status)
        else:
            sql = "SELECT * FROM scheduled_followups WHERE user_id = ? ORDER BY scheduled_for"
            params = (user_id,)
        return [_row_to_followup(row) for row in await self._fetch_all(sql, params)]

    async def update_followup_status(self, followup_id: str, status: str) -> None:
        await self._write(
            "UPDATE scheduled_followups SET status = ? WHERE id = ?", (status, followup_id)
        )

    # ── Communication contracts ──

    async def save_contract(self, c: CommunicationContract) -> None:
        await self._write(
            """INSERT OR REPLACE INTO communication_contracts
            (id, user_id, contact_id, contact_name, frequency, time_of_day, days_of_week,
             last_checkin, next_checkin, status)
            VALUES (?,?,?,?,?,?,?,?,?,?)""",
            (
                c.id, c.user_id, c.contact_id, c.contact_name, c.frequency, c.time_of_day,
                json.dumps(c.days_of_week), _iso(c.last_checkin), _iso(c.next_checkin), c.status,
            ),
        )

    async def get_contract(self, contract_id: str) -> CommunicationContract | None:
        row = await self._fetch_one(
            "SELECT * FROM communication_contracts WHERE id = ?", (contract_id,)
        )
        return _row_to_contract(row) if row else None

    async def list_contracts(
        self, user_id: str, status: str | None = None,
    ) -> list[CommunicationContract]:
        if status:
            sql = ("SELECT * FROM communication_contracts WHERE user_id = ? AND status = ? "
                   "ORDER BY next_checkin")
            params: tuple = (user_id, status)
        else:
            sql = "SELECT * FROM communication_contracts WHERE user_id = ? ORDER BY next_checkin"
            params = (user_id,)
        return [_row_to_contract(row) for row in await self._fetch_all(sql, params)]

    async def delete_contract(self, contract_id: str) -> bool:
        return await self._write(
            "DELETE FROM communication_contracts WHERE id = ?", (contract_id,)
        ) > 0

    # ── Memory entries ──

    async def save_memory_entry(self, e: MemoryEntry) -> None:
        await self._write(
            """INSERT INTO memory_entries
            (id, user_id, contact_id, content, timestamp, context, emotional_context,
             communication_style, sentiment, topics, urgency, category, action_items,
             response_quality)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)""",
            (
                e.id, e.user_id, e.contact_id, e.content, _iso(e.timestamp), e.context,
                e.emotional_context, e.communication_style, e.sentiment,
                json.dumps(e.topics), e.urgency, e.category, json.dumps(e.action_items),
                e.response_quality,
            ),
        )

    async def list_memory_entries(
        self, user_id: str, contact_id: str, limit: int = 100,
    ) -> list[MemoryEntry]:
        """Return the newest ``limit`` entries for a conversation, newest first."""
        rows = await self._fetch_all(
            "SELECT * FROM memory_entries WHERE user_id = ? AND contact_id = ? "
            "ORDER BY timestamp DESC LIMIT ?",
            (user_id, contact_id, limit),
        )
        return [_row_to_memory_entry(row) for row in rows]


def _row_to_message(row: dict) -> Message:
    return Message(
        id=row["id"],
        user_id=row["user_id"],
        contact_id=row["contact_id"],
        content=row["content"],
        direction=row["direction"],
        created_at=normalize(row["created_at"]),
        ai_generated=bool(row.get("ai_generated", 0)),
        platform=row.get("platform") or "",
        status=row.get("status") or "stored",
    )


def _row_to_reminder(row: dict) -> Reminder:
    return Reminder(
        id=row["id"],
        user_id=row["user_id"],
        contact_id=row["contact_id"],
        contact_name=row.get("contact_name") or "",
        type=row["type"],
        priority=row["priority"],
        message=row.get("message") or "",
        created_at=normalize(row["created_at"]),
        scheduled_for=_dt(row.get("scheduled_for")),
        sent_at=_dt(row.get("sent_at")),
        status=row["status"],
    )


def _row_to_followup(row: dict) -> ScheduledFollowup:
    return ScheduledFollowup(
        id=row["id"],
        user_id=row["user_id"],
        contact_id=row["contact_id"],
        contact_name=row.get("contact_name") or "",
        scheduled_for=normalize(row["scheduled_for"]),
        message=row.get("message") or "",
        status=row["status"],
        created_at=normalize(row["created_at"]),
    )


def _row_to_contract(row: dict) -> CommunicationContract:
    return CommunicationContract(
        id=row["id"],
        user_id=row["user_id"],
        contact_id=row["contact_id"],
        contact_name=row.get("contact_name") or "",
        frequency=row["frequency"],
        time_of_day=row["time_of_day"],
        days_of_week=json.loads(row["days_of_week"]),
        last_checkin=normalize(row["last_checkin"]),
        next_checkin=normalize(row["next_checkin"]),
        status=row["status"],
    )


def _row_to_memory_entry(row: dict) -> MemoryEntry:
    return MemoryEntry(
        id=row["id"],
        user_id=row["user_id"],
        contact_id=row["contact_id"],
        content=row["content"],
        timestamp=normalize(row["timestamp"]),
        context=row.get("context") or "",
        emotional_context=row.get("emotional_context"),
        communication_style=row.get("communication_style"),
        sentiment=row.get("sentiment") or "neutral",
        topics=json.loads(row.get("topics") or "[]"),
        urgency=row.get("urgency") or "low",
        category=row.get("category") or "personal",
        action_items=json.loads(row.get("action_items") or "[]"),
        response_quality=row.get("response_quality"),
    )
