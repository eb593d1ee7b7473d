from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from uuid import uuid4

from db.db import (
    CalendarEvent, Group, GroupMember, Reminder, ReminderStatus, get_session
)
from app.types.notifications import Channel, DeliveryResult

T0 = datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Seeding helpers for the SQLite-backed store
# ---------------------------------------------------------------------------

async def seed_group(members):
    """members: list of dicts with name/email/phone/whatsapp."""
    async for s in get_session():
        group = Group(name="Choir")
        s.add(group)
        await s.flush()
        for i, m in enumerate(members):
            s.add(GroupMember(
                group_id=group.id,
                created_at=T0 + timedelta(seconds=i),
                **m,
            ))
        await s.commit()
        return group.id


async def seed_event(start_time=T0 + timedelta(hours=1), title="Rehearsal", **kw):
    async for s in get_session():
        event = CalendarEvent(title=title, start_time=start_time, **kw)
        s.add(event)
        await s.commit()
        return event.id


async def seed_reminder(event_id, group_id, reminder_time, status=ReminderStatus.PENDING, advance_minutes=15):
    async for s in get_session():
        reminder = Reminder(
            event_id=event_id,
            group_id=group_id,
            reminder_time=reminder_time,
            advance_minutes=advance_minutes,
            message="Don't forget",
            status=status,
        )
        s.add(reminder)
        await s.commit()
        return reminder.id


# ---------------------------------------------------------------------------
# In-memory doubles for dispatcher / scheduler tests
# ---------------------------------------------------------------------------

def make_member(name="Ann", email=None, phone=None, whatsapp=None):
    return SimpleNamespace(id=str(uuid4()), name=name, email=email, phone=phone, whatsapp=whatsapp)


def make_reminder(members, reminder_time=T0, status=ReminderStatus.PENDING, advance_minutes=15, rid=None):
    event = SimpleNamespace(
        title="Rehearsal",
        description="Bring the sheet music",
        start_time=reminder_time + timedelta(minutes=advance_minutes),
        location="Hall B",
    )
    return SimpleNamespace(
        id=rid or str(uuid4()),
        event=event,
        group=SimpleNamespace(name="Choir", members=list(members)),
        reminder_time=reminder_time,
        advance_minutes=advance_minutes,
        message="Don't forget",
        status=status,
        sent_at=None,
    )


class FakeAdapter:
    """Succeeds, fails or raises depending on ``behaviour``."""

    def __init__(self, method: Channel, behaviour="ok"):
        self.method = method
        self.behaviour = behaviour
        self.calls = []

    async def send(self, address, subject, body, reminder_id):
        self.calls.append((address, subject, body, reminder_id))
        behaviour = self.behaviour(address) if callable(self.behaviour) else self.behaviour
        if behaviour == "ok":
            return DeliveryResult.ok(self.method, f"{self.method.value.lower()}-{len(self.calls)}")
        if behaviour == "raise":
            raise RuntimeError("boom")
        return DeliveryResult.failed(self.method, behaviour)


class AckLog:
    def __init__(self):
        self.rows = []

    async def __call__(self, reminder_id, method, member_id=None, notes=None):
        self.rows.append(SimpleNamespace(reminder_id=reminder_id, method=method, member_id=member_id, notes=notes))
        return self.rows[-1]


class FakeStore:
    def __init__(self, reminders=()):
        self.reminders = {r.id: r for r in reminders}
        self.transitions = []
        self.fail_reads = False
        self.fail_writes = False

    async def fetch_imminent_reminders(self, now, window_seconds=60):
        if self.fail_reads:
            raise ConnectionError("db down")
        horizon = now + timedelta(seconds=window_seconds)
        due = [r for r in self.reminders.values()
               if r.status == ReminderStatus.PENDING and now <= r.reminder_time <= horizon]
        return sorted(due, key=lambda r: r.reminder_time)

    async def fetch_overdue_reminders(self, now, limit=10):
        if self.fail_reads:
            raise ConnectionError("db down")
        due = [r for r in self.reminders.values()
               if r.status == ReminderStatus.PENDING and r.reminder_time < now]
        return sorted(due, key=lambda r: r.reminder_time)[:limit]

    async def transition_reminder(self, rid, status, sent_at):
        if self.fail_writes:
            raise ConnectionError("db down")
        reminder = self.reminders[rid]
        if reminder.status != ReminderStatus.PENDING:
            return False
        reminder.status = status
        reminder.sent_at = sent_at
        self.transitions.append((rid, status, sent_at))
        return True




class FakeLock:
    """Stands in for a non-blocking ``redis.lock.Lock``."""

    def __init__(self, free=True):
        self.free = free
        self.acquired = False
        self.released = False

    def acquire(self):
        self.acquired = self.free
        return self.free

    def release(self):
        self.released = True
