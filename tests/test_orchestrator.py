"""Tests for the reminder orchestrator."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import RecordingChannel
from pingchain.core.orchestrator import NotificationOrchestrator, ReminderStateError
from pingchain.core.scheduler import DueQueue
from pingchain.models import NotificationSettings
from pingchain.storage.delivery_log import DeliveryLog
from pingchain.storage.sqlite_store import StoreWriteError

UTC = timezone.utc
NOW = datetime(2024, 6, 10, 12, 0, tzinfo=UTC)


def _orchestrator(store, tmp_path, channels=None, **settings):
    channels = channels if channels is not None else {"push": RecordingChannel("push")}
    return NotificationOrchestrator(
        store=store,
        channels=channels,
        settings=NotificationSettings(**settings),
        delivery_log=DeliveryLog(tmp_path / "deliveries"),
    )


async def _create(orch, **kwargs):
    defaults = dict(user_id="u1", contact_id="c1", contact_name="Ana",
                    message="Reply to Ana", type="overdue", priority="medium", now=NOW)
    defaults.update(kwargs)
    return await orch.create_reminder(**defaults)


@pytest.mark.asyncio
async def test_immediate_reminder_is_sent(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    rid = await _create(orch)

    reminder = await store.get_reminder(rid)
    assert reminder.status == "sent"
    assert reminder.sent_at == NOW
    assert [r.id for r in orch.channels["push"].sent] == [rid]
    assert orch.effectiveness("c1").total_reminders == 1
    records = orch.delivery_log.for_reminder("u1", rid)
    assert [(r.channel, r.success) for r in records] == [("push", True)]


@pytest.mark.asyncio
async def test_future_reminder_waits_in_queue(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    rid = await _create(orch, type="scheduled", scheduled_for=NOW + timedelta(hours=2))

    assert (await store.get_reminder(rid)).status == "pending"
    assert rid in orch.queue
    assert await orch.run_due(NOW + timedelta(hours=1)) == []
    assert await orch.run_due(NOW + timedelta(hours=2)) == [rid]
    assert (await store.get_reminder(rid)).status == "sent"


@pytest.mark.asyncio
async def test_pending_reminder_is_reused(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    first = await _create(orch, scheduled_for=NOW + timedelta(hours=1))
    second = await _create(orch, scheduled_for=NOW + timedelta(hours=3))
    assert first == second
    assert len(await orch.list_reminders("u1")) == 1

    other_type = await _create(orch, type="question", scheduled_for=NOW + timedelta(hours=1))
    assert other_type != first


@pytest.mark.asyncio
async def test_channel_failures_do_not_block_delivery(store, tmp_path):
    channels = {
        "push": RecordingChannel("push", fail_with=RuntimeError("down")),
        "email": RecordingChannel("email", ok=True),
    }
    orch = _orchestrator(store, tmp_path, channels=channels, email=True)
    rid = await _create(orch)

    assert (await store.get_reminder(rid)).status == "sent"
    assert len(channels["email"].sent) == 1
    outcomes = {r.channel: r.success for r in orch.delivery_log.for_reminder("u1", rid)}
    assert outcomes == {"push": False, "email": True}


@pytest.mark.asyncio
async def test_disabled_channels_are_skipped(store, tmp_path):
    channels = {"push": RecordingChannel("push"), "email": RecordingChannel("email")}
    orch = _orchestrator(store, tmp_path, channels=channels, email=False)
    await _create(orch)
    assert len(channels["push"].sent) == 1
    assert channels["email"].sent == []


@pytest.mark.asyncio
async def test_high_priority_only_keeps_others_pending(store, tmp_path):
    orch = _orchestrator(store, tmp_path, high_priority_only=True)
    low = await _create(orch, priority="low")
    high = await _create(orch, type="urgent", priority="high")

    assert (await store.get_reminder(low)).status == "pending"
    assert (await store.get_reminder(high)).status == "sent"
    assert [r.id for r in await orch.pending_reminders("u1")] == [low]


@pytest.mark.asyncio
async def test_dismissed_reminder_is_never_sent(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    rid = await _create(orch, scheduled_for=NOW + timedelta(hours=1))
    assert await orch.dismiss(rid) is True
    assert await orch.run_due(NOW + timedelta(days=1)) == []
    assert orch.channels["push"].sent == []
    assert (await store.get_reminder(rid)).status == "dismissed"


@pytest.mark.asyncio
async def test_status_rechecked_at_fire_time(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    rid = await _create(orch, scheduled_for=NOW + timedelta(hours=1))
    # changed behind the orchestrator's back, e.g. by another process
    await store.update_reminder_status(rid, "dismissed")
    assert await orch.run_due(NOW + timedelta(hours=1)) == []
    assert orch.channels["push"].sent == []


@pytest.mark.asyncio
async def test_illegal_transitions(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    rid = await _create(orch)
    with pytest.raises(ReminderStateError):
        await orch.dismiss(rid)
    assert await orch.deliver(rid, now=NOW) is False
    assert await orch.dismiss("missing") is False


@pytest.mark.asyncio
async def test_delete_and_clear(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    queued = await _create(orch, scheduled_for=NOW + timedelta(hours=1))
    await _create(orch, contact_id="c2")

    assert await orch.delete(queued) is True
    assert queued not in orch.queue
    assert await orch.delete(queued) is False
    assert await orch.clear_all("u1") == 1
    assert await orch.list_reminders("u1") == []


@pytest.mark.asyncio
async def test_invalid_type_or_priority(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    with pytest.raises(ValueError):
        await _create(orch, type="nag")
    with pytest.raises(ValueError):
        await _create(orch, priority="extreme")


@pytest.mark.asyncio
async def test_persistence_failure_propagates(store, tmp_path, monkeypatch):
    orch = _orchestrator(store, tmp_path)

    async def _broken(reminder):
        raise StoreWriteError("disk full")

    monkeypatch.setattr(store, "save_reminder", _broken)
    with pytest.raises(StoreWriteError):
        await _create(orch)
    assert orch.channels["push"].sent == []


@pytest.mark.asyncio
async def test_restore_requeues_future_and_sends_overdue(store, tmp_path):
    first = _orchestrator(store, tmp_path)
    future = await _create(first, scheduled_for=NOW + timedelta(hours=5))
    past = await _create(first, type="scheduled", scheduled_for=NOW + timedelta(hours=1))

    restarted = _orchestrator(store, tmp_path)
    assert await restarted.restore("u1", now=NOW + timedelta(hours=2)) == 1
    assert future in restarted.queue
    assert (await store.get_reminder(past)).status == "sent"


@pytest.mark.asyncio
async def test_record_reply_credits_once(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    await _create(orch)

    latencies = orch.record_reply("c1", at=NOW + timedelta(minutes=90))
    assert latencies == [timedelta(minutes=90)]
    assert orch.record_reply("c1", at=NOW + timedelta(hours=3)) == []

    stats = orch.effectiveness("c1")
    assert stats.response_rate == 1.0
    assert stats.avg_response_time == pytest.approx(5400.0)
    assert orch.record_reply("unknown") == []


def test_detect_unanswered_questions():
    texts = ["hi", "Did you get my note?", "thanks"]
    assert NotificationOrchestrator.detect_unanswered_questions(texts) == ["Did you get my note?"]


@pytest.mark.asyncio
async def test_immediate_request_pulls_queued_reminder_forward(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    queued = await _create(orch, type="question", scheduled_for=NOW + timedelta(days=2))
    assert orch.channels["push"].sent == []

    rid = await _create(orch, type="question", priority="high")
    assert rid == queued
    assert (await store.get_reminder(rid)).status == "sent"
    assert [r.id for r in orch.channels["push"].sent] == [rid]
    assert rid not in orch.queue
    assert await orch.run_due(NOW + timedelta(days=3)) == []


@pytest.mark.asyncio
async def test_empty_injected_queue_is_kept(store, tmp_path):
    queue = DueQueue()
    orch = NotificationOrchestrator(
        store=store,
        channels={"push": RecordingChannel("push")},
        settings=NotificationSettings(),
        queue=queue,
    )
    assert orch.queue is queue
    rid = await _create(orch, scheduled_for=NOW + timedelta(hours=1))
    assert rid in queue


@pytest.mark.asyncio
async def test_one_reply_credits_every_sent_reminder(store, tmp_path):
    orch = _orchestrator(store, tmp_path)
    for reminder_type in ("overdue", "question", "urgent"):
        await _create(orch, type=reminder_type, priority="high")

    latencies = orch.record_reply("c1", at=NOW + timedelta(hours=1))
    assert latencies == [timedelta(hours=1)] * 3

    stats = orch.effectiveness("c1")
    assert stats.total_reminders == 3
    assert stats.response_rate == 1.0
    assert stats.avg_response_time == pytest.approx(3600.0)


@pytest.mark.asyncio
async def test_failed_sent_transition_marks_reminder_failed(store, tmp_path, monkeypatch):
    orch = _orchestrator(store, tmp_path)

    async def _broken(reminder_id, status, sent_at=None):
        raise StoreWriteError("disk full")

    monkeypatch.setattr(store, "update_reminder_status", _broken)
    with pytest.raises(StoreWriteError):
        await _create(orch)

    attempted = orch.channels["push"].sent
    assert len(attempted) == 1
    assert attempted[0].status == "failed"
    assert orch.effectiveness("c1").total_reminders == 0


@pytest.mark.asyncio
async def test_delivery_outcome_per_channel(store, tmp_path):
    channels = {"push": RecordingChannel("push"), "email": RecordingChannel("email", ok=False)}
    orch = _orchestrator(store, tmp_path, channels=channels, email=True)
    rid = await _create(orch)

    assert orch.delivery_outcome("u1", rid) == {"push": True, "email": False}
    assert orch.delivery_outcome("u1", "missing") == {}
