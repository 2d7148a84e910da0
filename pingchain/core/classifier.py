"""Conversation state classification.

For each contact the most recent message decides the state of the
conversation: if the user sent it, the contact owes a reply (an open loop);
if the contact sent it, the user owes a reply (a pending reply). Pending
replies carry an urgency tier derived from the hours elapsed since the
message arrived.

The same hour scale is reused by the reminder driver's overdue threshold, so
the tier boundaries live in ``ENGINE_CONFIG`` rather than in this module.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta

from pingchain.config import ENGINE_CONFIG
from pingchain.core.question_detector import is_question_or_request
from pingchain.core.timestamps import hours_between, normalize, utcnow
from pingchain.models import (
    URGENCY_LEVELS,
    Classification,
    Contact,
    ConversationHealth,
    DashboardStats,
    Message,
    OpenLoop,
    PendingReply,
)

logger = logging.getLogger(__name__)


def validate_tiers(tiers: Mapping[str, float]) -> dict[str, float]:
    """Check that tier lower bounds exist and never decrease.

    Non-decreasing bounds are what keep urgency monotonic in elapsed hours.
    """
    try:
        bounds = {level: float(tiers[level]) for level in URGENCY_LEVELS[1:]}
    except KeyError as exc:
        raise ValueError(f"Urgency tiers missing level {exc.args[0]!r}") from None
    ordered = [bounds[level] for level in URGENCY_LEVELS[1:]]
    if any(lo > hi for lo, hi in zip(ordered, ordered[1:])) or ordered[0] < 0:
        raise ValueError(f"Urgency tier bounds must be non-negative and non-decreasing: {bounds}")
    return bounds


def urgency_for_hours(hours: float, tiers: Mapping[str, float] | None = None) -> str:
    """Map hours since an inbound message to low | medium | high | critical."""
    bounds = validate_tiers(tiers or ENGINE_CONFIG["urgency_tiers_hours"])
    if hours >= bounds["critical"]:
        return "critical"
    if hours >= bounds["high"]:
        return "high"
    if hours >= bounds["medium"]:
        return "medium"
    return "low"


def message_time(message: Message) -> datetime:
    return normalize(message.created_at)


def latest_message(messages: Iterable[Message]) -> Message | None:
    """Return the message with the greatest timestamp; ties go to the larger id."""
    return max(messages, key=lambda m: (message_time(m), m.id), default=None)


def group_by_contact(messages: Iterable[Message]) -> dict[str, list[Message]]:
    grouped: dict[str, list[Message]] = defaultdict(list)
    for msg in messages:
        grouped[msg.contact_id].append(msg)
    return grouped


def classify(
    contacts: Iterable[Contact],
    messages: Iterable[Message],
    now: datetime | None = None,
    tiers: Mapping[str, float] | None = None,
) -> Classification:
    """Split contacts into open loops and pending replies.

    Contacts without messages produce neither. A failure while analysing
    one contact is logged and that contact is skipped.
    """
    now = normalize(now) if now is not None else utcnow()
    bounds = validate_tiers(tiers or ENGINE_CONFIG["urgency_tiers_hours"])
    by_contact = group_by_contact(messages)
    result = Classification()

    for contact in contacts:
        try:
            last = latest_message(by_contact.get(contact.id, ()))
            if last is None:
                continue
            sent_at = message_time(last)
            if last.direction == "outbound":
                result.open_loops.append(
                    OpenLoop(contact=contact, message=last, age=now - sent_at)
                )
            elif last.direction == "inbound":
                hours = hours_between(sent_at, now)
                result.pending_replies.append(
                    PendingReply(
                        contact=contact,
                        message=last,
                        hours_since_received=hours,
                        urgency=urgency_for_hours(hours, bounds),
                    )
                )
            else:
                logger.warning(
                    "Message %s for contact %s has unknown direction %r, skipping",
                    last.id, contact.id, last.direction,
                )
        except Exception:
            logger.exception("Classification failed for contact %s", contact.id)

    return result


def compute_stats(
    contacts: Iterable[Contact],
    messages: Iterable[Message],
    now: datetime | None = None,
    classification: Classification | None = None,
) -> DashboardStats:
    """Aggregate dashboard counters.

    Pass ``classification`` when it was already computed for the same data.
    """
    now = normalize(now) if now is not None else utcnow()
    messages = list(messages)
    if classification is None:
        classification = classify(contacts, messages, now=now)
    return DashboardStats(
        open_loops=len(classification.open_loops),
        pending_replies=len(classification.pending_replies),
        check_ins_sent=sum(
            1 for m in messages if m.ai_generated and m.direction == "outbound"
        ),
        current_streak=current_streak(messages, now=now),
    )


def current_streak(messages: Iterable[Message], now: datetime | None = None) -> int:
    """Count consecutive calendar days, back from today, with at least one message.

    Days are taken in the timezone of ``now`` (UTC by default).
    """
    if now is None:
        now = utcnow()
    elif now.tzinfo is None:
        now = normalize(now)
    tz = now.tzinfo
    active_days = {message_time(m).astimezone(tz).date() for m in messages}
    day = now.date()
    streak = 0
    while day in active_days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def unanswered_questions(messages: Iterable[Message]) -> list[Message]:
    """Inbound questions/requests that arrived after the user's last outbound message."""
    ordered = sorted(messages, key=lambda m: (message_time(m), m.id))
    last_outbound = None
    for msg in ordered:
        if msg.direction == "outbound":
            last_outbound = message_time(msg)
    return [
        m for m in ordered
        if m.direction == "inbound"
        and (last_outbound is None or message_time(m) > last_outbound)
        and is_question_or_request(m.content)
    ]


def average_response_hours(messages: Iterable[Message]) -> float:
    """Mean gap in hours between consecutive messages that switch direction."""
    ordered = sorted(messages, key=lambda m: (message_time(m), m.id))
    gaps = [
        hours_between(message_time(a), message_time(b))
        for a, b in zip(ordered, ordered[1:])
        if a.direction != b.direction
    ]
    return sum(gaps) / len(gaps) if gaps else 0.0


def assess_conversation(
    messages: Iterable[Message],
    now: datetime | None = None,
    contact_id: str = "",
) -> ConversationHealth:
    """Score the health of a single conversation."""
    now = normalize(now) if now is not None else utcnow()
    messages = list(messages)
    last = latest_message(messages)
    if last is None:
        return ConversationHealth(contact_id=contact_id)

    open_count = len(unanswered_questions(messages))
    last_at = message_time(last)
    age_hours = hours_between(last_at, now)
    age_days = age_hours / 24

    if open_count == 0 and age_days < 1:
        health = "excellent"
    elif open_count <= 1 and age_days < 3:
        health = "good"
    elif open_count <= 2 and age_days < 7:
        health = "needs_attention"
    else:
        health = "at_risk"

    score = 100.0 - open_count * 10
    if age_days > 7:
        score -= 30
    elif age_days > 3:
        score -= 15
    if age_hours < 1:
        score += 10
    elif age_hours < 24:
        score += 5

    return ConversationHealth(
        contact_id=contact_id,
        health=health,
        engagement_score=max(0.0, min(100.0, score)),
        avg_response_hours=average_response_hours(messages),
        open_questions=open_count,
        last_interaction=last_at,
    )
