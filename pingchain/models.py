"""Data models for the PingChain conversation engine."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple

from pingchain.config import ENGINE_CONFIG

URGENCY_LEVELS = ("low", "medium", "high", "critical")
REMINDER_TYPES = ("overdue", "question", "scheduled", "urgent", "checkin")
PRIORITIES = ("high", "medium", "low")
FREQUENCIES = ("daily", "weekly", "biweekly", "monthly", "quarterly", "yearly")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


@dataclass
class Contact:
    id: str = field(default_factory=_uuid)
    user_id: str = ""
    name: str = ""
    platform: str = "email"
    category: str = "other"


@dataclass
class Message:
    id: str = field(default_factory=_uuid)
    user_id: str = ""
    contact_id: str = ""
    content: str = ""
    direction: str = "inbound"  # inbound | outbound
    created_at: datetime = field(default_factory=_now)
    ai_generated: bool = False
    platform: str = ""
    status: str = "stored"  # stored | failed


@dataclass
class OpenLoop:
    """The user sent the last message and is waiting on the contact."""
    contact: Contact
    message: Message
    age: timedelta

    @property
    def days_since_last_message(self) -> int:
        return self.age.days


@dataclass
class PendingReply:
    """The contact sent the last message and the user owes a reply."""
    contact: Contact
    message: Message
    hours_since_received: float
    urgency: str = "low"  # low | medium | high | critical


@dataclass
class Classification:
    open_loops: list[OpenLoop] = field(default_factory=list)
    pending_replies: list[PendingReply] = field(default_factory=list)


@dataclass
class DashboardStats:
    open_loops: int = 0
    pending_replies: int = 0
    check_ins_sent: int = 0
    current_streak: int = 0


@dataclass
class ConversationHealth:
    contact_id: str = ""
    health: str = "excellent"  # excellent | good | needs_attention | at_risk
    engagement_score: float = 100.0
    avg_response_hours: float = 0.0
    open_questions: int = 0
    last_interaction: datetime | None = None


@dataclass
class Reminder:
    id: str = field(default_factory=_uuid)
    user_id: str = ""
    contact_id: str = ""
    contact_name: str = ""
    type: str = "overdue"  # overdue | question | scheduled | urgent | checkin
    priority: str = "medium"  # high | medium | low
    message: str = ""
    created_at: datetime = field(default_factory=_now)
    scheduled_for: datetime | None = None
    sent_at: datetime | None = None
    status: str = "pending"  # pending | sent | dismissed | failed


@dataclass
class ScheduledFollowup:
    id: str = field(default_factory=_uuid)
    user_id: str = ""
    contact_id: str = ""
    contact_name: str = ""
    scheduled_for: datetime = field(default_factory=_now)
    message: str = ""
    status: str = "pending"  # pending | sent | cancelled
    created_at: datetime = field(default_factory=_now)


@dataclass
class CommunicationContract:
    id: str = field(default_factory=_uuid)
    user_id: str = ""
    contact_id: str = ""
    contact_name: str = ""
    frequency: str = "weekly"  # daily | weekly | biweekly | monthly | quarterly | yearly
    time_of_day: str = "09:00"
    # 0 = Sunday ... 6 = Saturday. Stored, not enforced.
    days_of_week: list[int] = field(default_factory=lambda: [1, 2, 3, 4, 5])
    last_checkin: datetime = field(default_factory=_now)
    next_checkin: datetime = field(default_factory=_now)
    status: str = "active"  # active | paused | completed


class MemoryKey(NamedTuple):
    user_id: str
    contact_id: str


@dataclass
class MemoryEntry:
    id: str = field(default_factory=_uuid)
    user_id: str = ""
    contact_id: str = ""
    content: str = ""
    timestamp: datetime = field(default_factory=_now)
    context: str = ""
    emotional_context: str | None = None
    communication_style: str | None = None
    sentiment: str = "neutral"  # positive | negative | neutral
    topics: list[str] = field(default_factory=list)
    urgency: str = "low"  # low | medium | high
    category: str = "personal"  # personal | professional | social
    action_items: list[str] = field(default_factory=list)
    response_quality: float | None = None


@dataclass
class ContextSummary:
    key_topics: list[str] = field(default_factory=list)
    emotional_patterns: list[str] = field(default_factory=list)
    communication_style: str = "neutral"
    relationship_strength: float = 50.0
    last_interaction: datetime | None = None
    pending_items: list[str] = field(default_factory=list)


@dataclass
class ConversationMemory:
    user_id: str = ""
    contact_id: str = ""
    # Newest first
    entries: list[MemoryEntry] = field(default_factory=list)
    last_updated: datetime = field(default_factory=_now)
    context_summary: ContextSummary = field(default_factory=ContextSummary)


@dataclass
class MemoryAnalysis:
    total_interactions: int = 0
    average_gap_hours: float = 0.0
    top_topics: list[tuple[str, int]] = field(default_factory=list)
    emotional_trends: list[tuple[str, str]] = field(default_factory=list)
    communication_evolution: list[tuple[str, str]] = field(default_factory=list)
    milestones: list[tuple[datetime, str]] = field(default_factory=list)


@dataclass
class EffectivenessStats:
    response_rate: float = 0.0
    avg_response_time: float = 0.0
    total_reminders: int = 0


@dataclass
class DeliveryRecord:
    """One channel delivery attempt for a reminder."""
    reminder_id: str = ""
    user_id: str = ""
    contact_id: str = ""
    channel: str = ""
    success: bool = False
    attempted_at: str = field(default_factory=lambda: _now().isoformat())


@dataclass
class NotificationSettings:
    browser: bool = ENGINE_CONFIG["notify_browser"]
    email: bool = ENGINE_CONFIG["notify_email"]
    email_provider: str = ENGINE_CONFIG["email_provider"]
    user_email: str = ""
    overdue_threshold: float = ENGINE_CONFIG["overdue_threshold_hours"]
    question_threshold: float = ENGINE_CONFIG["question_threshold_hours"]
    scheduled_reminders: bool = ENGINE_CONFIG["scheduled_reminders"]
    high_priority_only: bool = ENGINE_CONFIG["high_priority_only"]

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> NotificationSettings:
        """Build settings from a user-supplied mapping.

        Accepts both snake_case and the camelCase keys the settings form
        stores. Missing keys fall back to defaults; explicit falsy values
        are kept.
        """
        raw = raw or {}
        aliases = {
            "emailProvider": "email_provider",
            "userEmail": "user_email",
            "overdueThreshold": "overdue_threshold",
            "questionThreshold": "question_threshold",
            "scheduledReminders": "scheduled_reminders",
            "highPriorityOnly": "high_priority_only",
        }
        known = set(cls.__dataclass_fields__)
        values: dict[str, Any] = {}
        for key, value in raw.items():
            name = aliases.get(key, key)
            if name in known and value is not None:
                values[name] = value
        return cls(**values)

    def channel_enabled(self, channel: str) -> bool:
        if channel == "push":
            return self.browser
        if channel == "email":
            return self.email
        return False


@dataclass
class Dashboard:
    classification: Classification = field(default_factory=Classification)
    stats: DashboardStats = field(default_factory=DashboardStats)
    health: dict[str, ConversationHealth] = field(default_factory=dict)
    new_reminders: list[str] = field(default_factory=list)
    pending_reminders: list[Reminder] = field(default_factory=list)
