from datetime import timedelta

import pytest

from app.scripts import scan_due_reminders as scan_script
from app.services.dispatch import ReminderDispatcher
from app.services.scheduler import ReminderScheduler
from app.types.notifications import Channel, TickReport
from app.workers import reminder as reminder_worker
from db.db import AcknowledgmentMethod, ReminderStatus
from tests.fakes import T0, FakeAdapter, FakeLock, seed_event, seed_group, seed_reminder


class FakeScheduler:
    def __init__(self):
        self.ticks = 0

    async def tick(self):
        self.ticks += 1
        return TickReport(started_at=T0, overdue=1, sent=1)


def test_dispatch_due_runs_one_tick_under_lock(monkeypatch):
    lock = FakeLock()
    scheduler = FakeScheduler()
    monkeypatch.setattr(reminder_worker, "tick_lock", lambda: lock)
    monkeypatch.setattr(reminder_worker, "build_default_scheduler", lambda settings: scheduler)

    result = reminder_worker.dispatch_due.apply(args=()).get()

    assert scheduler.ticks == 1
    assert lock.released
    assert result["sent"] == 1


def test_dispatch_due_skips_when_another_worker_holds_lock(monkeypatch):
    scheduler = FakeScheduler()
    monkeypatch.setattr(reminder_worker, "tick_lock", lambda: FakeLock(free=False))
    monkeypatch.setattr(reminder_worker, "build_default_scheduler", lambda settings: scheduler)

    result = reminder_worker.dispatch_due.apply(args=()).get()

    assert result == {"skipped": True}
    assert scheduler.ticks == 0


@pytest.mark.asyncio
async def test_cron_script_ticks_under_the_worker_lock(monkeypatch):
    captured = {}
    scheduler = FakeScheduler()

    def build(settings, **kwargs):
        captured.update(kwargs)
        return scheduler

    monkeypatch.setattr(scan_script, "build_default_scheduler", build)

    await scan_script.main()

    assert captured["tick_lock"] is reminder_worker.tick_lock
    assert scheduler.ticks == 1


# ---------------------------------------------------------------------------
# Scheduler against the real store
# ---------------------------------------------------------------------------

def _scheduler(now, email="ok"):
    dispatcher = ReminderDispatcher({
        Channel.EMAIL: FakeAdapter(Channel.EMAIL, email),
        Channel.SMS: FakeAdapter(Channel.SMS, "SMS service not configured"),
    })
    return ReminderScheduler(dispatcher, clock=lambda: now)


@pytest.mark.asyncio
async def test_tick_against_store_sends_and_records_ack(store):
    start = T0 + timedelta(minutes=15)
    event_id = await seed_event(start_time=start)
    group_id = await seed_group([{"name": "Ann", "email": "ann@example.org"}])
    reminder = await store.create_reminder(event_id, group_id, advance_minutes=15)
    assert reminder.reminder_time == T0

    now = T0 - timedelta(seconds=5)
    report = await _scheduler(now).tick()

    assert report.imminent == 1 and report.sent == 1
    stored = await store.get_reminder(reminder.id)
    assert stored.status == ReminderStatus.SENT
    assert stored.sent_at == now
    acks = await store.list_acknowledgments(reminder.id)
    assert [a.method for a in acks] == [AcknowledgmentMethod.EMAIL]
    assert acks[0].member_id == stored.group.members[0].id
    assert "ann@example.org" in acks[0].notes


@pytest.mark.asyncio
async def test_tick_against_store_marks_failed_without_acks(store):
    event_id = await seed_event()
    group_id = await seed_group([{"name": "Ann", "email": "ann@example.org"}])
    rid = await seed_reminder(event_id, group_id, T0)

    report = await _scheduler(T0, email="Email service not configured").tick()

    assert report.failed == 1
    assert (await store.get_reminder(rid)).status == ReminderStatus.FAILED
    assert await store.list_acknowledgments(rid) == []


@pytest.mark.asyncio
async def test_stale_pending_reminder_is_reclaimed_once(store):
    event_id = await seed_event()
    group_id = await seed_group([{"name": "Bob", "email": "bob@example.org", "phone": "+15550001111"}])
    rid = await seed_reminder(event_id, group_id, T0 - timedelta(days=3))
    scheduler = _scheduler(T0)

    first = await scheduler.tick()
    second = await scheduler.tick()

    assert (first.overdue, first.sent) == (1, 1)
    assert (second.overdue, second.sent) == (0, 0)
    acks = await store.list_acknowledgments(rid)
    # email went out, SMS was unconfigured: exactly one row
    assert [a.method for a in acks] == [AcknowledgmentMethod.EMAIL]
