"""
Async DB helpers for group event reminders.
Uses SQLAlchemy 2.0 + asyncpg driver – no raw SQL strings in app code.

The scheduler only talks to this module through the scan helpers
(`fetch_due_reminders` and friends), the guarded status write
(`transition_reminder`) and `insert_acknowledgment`.
"""

from __future__ import annotations

import enum
import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Sequence
from uuid import uuid4

from sqlalchemy import (
    DateTime, Enum, ForeignKey, Integer, String, Text, TypeDecorator, select, update
)
from sqlalchemy.orm import (
    DeclarativeBase, Mapped, mapped_column, relationship, selectinload
)
from sqlalchemy.ext.asyncio import (
    create_async_engine, async_sessionmaker, AsyncSession
)

# ──────────────────────────────────────────────────────────────────────
# 1. Declarative metadata
# ──────────────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


class ReminderStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class AcknowledgmentMethod(str, enum.Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    WHATSAPP = "WHATSAPP"
    WEB_APP = "WEB_APP"
    MANUAL = "MANUAL"


class UTCDateTime(TypeDecorator):
    """Timestamp column that only accepts and returns aware UTC datetimes."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("timezone-aware datetime required")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            # SQLite hands back naive values; they were stored as UTC
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())

# ──────────────────────────────────────────────────────────────────────
# 2. Lazy engine / session factory
# ──────────────────────────────────────────────────────────────────────
_engine = None
_session_maker: async_sessionmaker[AsyncSession] | None = None

def _build_url() -> str:
    url = os.getenv("DATABASE_URL") or os.getenv("DATABASE_PUBLIC_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set")
    if url.startswith(("postgres://", "postgresql://")) and "+asyncpg" not in url:
        url = url.replace("postgres://", "postgresql+asyncpg://", 1).replace(
            "postgresql://", "postgresql+asyncpg://", 1
        )
    return url

def get_engine():
    global _engine
    if _engine is None:
        url = _build_url()
        if url.startswith("sqlite"):
            _engine = create_async_engine(url)
        else:
            _engine = create_async_engine(url, pool_size=5, max_overflow=5)
    return _engine

def configure_engine(url: str):
    """Point the module at an explicit database (tests, one-off scripts)."""
    global _engine, _session_maker
    _engine = create_async_engine(url)
    _session_maker = None
    return _engine

def get_session() -> AsyncGenerator[AsyncSession, None]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    async def _session_scope():
        async with _session_maker() as session:
            yield session
    return _session_scope()

# ──────────────────────────────────────────────────────────────────────
# 3. ORM models
# ──────────────────────────────────────────────────────────────────────

class Group(Base):
    __tablename__ = "groups"

    id:          Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name:        Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    created_at:  Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at:  Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    members: Mapped[list["GroupMember"]] = relationship(
        back_populates="group",
        order_by=lambda: [GroupMember.created_at, GroupMember.id],
        cascade="all, delete-orphan",
    )


class GroupMember(Base):
    __tablename__ = "group_members"

    id:         Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    group_id:   Mapped[str] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), index=True)
    name:       Mapped[str] = mapped_column(String(255))
    email:      Mapped[str | None] = mapped_column(String(320))
    phone:      Mapped[str | None] = mapped_column(String(32))
    whatsapp:   Mapped[str | None] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    group: Mapped[Group] = relationship(back_populates="members")


class CalendarEvent(Base):
    __tablename__ = "calendar_events"

    id:          Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title:       Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    start_time:  Mapped[datetime] = mapped_column(UTCDateTime)
    end_time:    Mapped[datetime | None] = mapped_column(UTCDateTime)
    location:    Mapped[str | None] = mapped_column(String(255))
    created_at:  Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at:  Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)


class Reminder(Base):
    __tablename__ = "reminders"

    id:              Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    event_id:        Mapped[str] = mapped_column(ForeignKey("calendar_events.id", ondelete="CASCADE"), index=True)
    group_id:        Mapped[str] = mapped_column(ForeignKey("groups.id", ondelete="CASCADE"), index=True)
    reminder_time:   Mapped[datetime] = mapped_column(UTCDateTime, index=True)
    advance_minutes: Mapped[int] = mapped_column(Integer)
    message:         Mapped[str] = mapped_column(Text)
    status:          Mapped[ReminderStatus] = mapped_column(
        Enum(ReminderStatus, name="reminder_status"), default=ReminderStatus.PENDING, index=True
    )
    sent_at:         Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at:      Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at:      Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    event: Mapped[CalendarEvent] = relationship()
    group: Mapped[Group] = relationship()


class Acknowledgment(Base):
    __tablename__ = "acknowledgments"

    id:              Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    reminder_id:     Mapped[str] = mapped_column(ForeignKey("reminders.id", ondelete="CASCADE"), index=True)
    member_id:       Mapped[str | None] = mapped_column(ForeignKey("group_members.id", ondelete="SET NULL"))
    method:          Mapped[AcknowledgmentMethod] = mapped_column(
        Enum(AcknowledgmentMethod, name="acknowledgment_method")
    )
    acknowledged_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    notes:           Mapped[str | None] = mapped_column(Text)


# ──────────────────────────────────────────────────────────────────────
# 4. DDL helper (run once at startup or from Alembic)
# ──────────────────────────────────────────────────────────────────────
async def create_all():
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ──────────────────────────────────────────────────────────────────────
# 5. Reminder creation / admin edits
# ──────────────────────────────────────────────────────────────────────

def compute_reminder_time(start_time: datetime, advance_minutes: int) -> datetime:
    return start_time - timedelta(minutes=advance_minutes)


def default_message(title: str, advance_minutes: int) -> str:
    return f"Reminder: {title} is happening in {advance_minutes} minutes!"


async def create_reminder(
    event_id: str,
    group_id: str,
    advance_minutes: int,
    message: str | None = None,
) -> Reminder:
    """Create a PENDING reminder.

    ``reminder_time`` is derived from the event's start time here and never
    recomputed afterwards, even if the event is moved later on.
    """
    if advance_minutes < 0:
        raise ValueError("advance_minutes must be non-negative")
    async for s in get_session():
        event = await s.get(CalendarEvent, event_id)
        if event is None:
            raise LookupError(f"event {event_id} not found")
        group = await s.get(Group, group_id)
        if group is None:
            raise LookupError(f"group {group_id} not found")
        reminder = Reminder(
            event_id=event_id,
            group_id=group_id,
            advance_minutes=advance_minutes,
            message=message or default_message(event.title, advance_minutes),
            reminder_time=compute_reminder_time(event.start_time, advance_minutes),
            status=ReminderStatus.PENDING,
        )
        s.add(reminder)
        await s.commit()
        return reminder


async def update_reminder(
    reminder_id: str,
    message: str | None = None,
    advance_minutes: int | None = None,
) -> Reminder:
    """Admin edit of a PENDING reminder. ``reminder_time`` is left untouched."""
    from app.services.reminder_state import is_terminal

    async for s in get_session():
        reminder = await s.get(Reminder, reminder_id)
        if reminder is None:
            raise LookupError(f"reminder {reminder_id} not found")
        if is_terminal(reminder.status):
            raise ValueError(f"reminder {reminder_id} is {reminder.status.value}, not PENDING")
        if message is not None:
            reminder.message = message
        if advance_minutes is not None:
            if advance_minutes < 0:
                raise ValueError("advance_minutes must be non-negative")
            reminder.advance_minutes = advance_minutes
        await s.commit()
        return reminder


async def get_reminder(reminder_id: str) -> Reminder | None:
    async for s in get_session():
        stmt = (
            select(Reminder)
            .where(Reminder.id == reminder_id)
            .options(*_delivery_options())
        )
        res = await s.execute(stmt)
        return res.scalar_one_or_none()


# ──────────────────────────────────────────────────────────────────────
# 6. Due-reminder scan
# ──────────────────────────────────────────────────────────────────────

def _delivery_options():
    return (
        selectinload(Reminder.event),
        selectinload(Reminder.group).selectinload(Group.members),
    )


async def fetch_imminent_reminders(now: datetime, window_seconds: int = 60) -> list[Reminder]:
    """PENDING reminders with ``now <= reminder_time <= now + window``."""
    async for s in get_session():
        stmt = (
            select(Reminder)
            .where(
                Reminder.status == ReminderStatus.PENDING,
                Reminder.reminder_time >= now,
                Reminder.reminder_time <= now + timedelta(seconds=window_seconds),
            )
            .options(*_delivery_options())
            .order_by(Reminder.reminder_time, Reminder.id)
        )
        res = await s.execute(stmt)
        return list(res.scalars().all())


async def fetch_overdue_reminders(now: datetime, limit: int = 10) -> list[Reminder]:
    """PENDING reminders whose time already passed, oldest first, capped at ``limit``."""
    async for s in get_session():
        stmt = (
            select(Reminder)
            .where(
                Reminder.status == ReminderStatus.PENDING,
                Reminder.reminder_time < now,
            )
            .options(*_delivery_options())
            .order_by(Reminder.reminder_time, Reminder.id)
            .limit(limit)
        )
        res = await s.execute(stmt)
        return list(res.scalars().all())


async def fetch_due_reminders(
    now: datetime | None = None,
    window_seconds: int = 60,
    overdue_limit: int = 10,
) -> list[Reminder]:
    now = now or utcnow()
    imminent = await fetch_imminent_reminders(now, window_seconds)
    overdue = await fetch_overdue_reminders(now, overdue_limit)
    return imminent + overdue


# ──────────────────────────────────────────────────────────────────────
# 7. Status transitions (guarded by status = PENDING)
# ──────────────────────────────────────────────────────────────────────

async def transition_reminder(rid: str, status: ReminderStatus, sent_at: datetime) -> bool:
    """Move a PENDING reminder to a terminal status.

    Returns False when the reminder was no longer PENDING, i.e. another
    attempt already claimed it.
    """
    from app.services.reminder_state import can_transition

    if not can_transition(ReminderStatus.PENDING, status):
        raise ValueError(f"cannot transition a PENDING reminder to {ReminderStatus(status).value}")
    async for s in get_session():
        res = await s.execute(
            update(Reminder)
            .where(Reminder.id == rid, Reminder.status == ReminderStatus.PENDING)
            .values(status=status, sent_at=sent_at, updated_at=utcnow())
        )
        await s.commit()
        return res.rowcount == 1


async def mark_reminder_sent(rid: str, sent_at: datetime | None = None) -> bool:
    return await transition_reminder(rid, ReminderStatus.SENT, sent_at or utcnow())


async def mark_reminder_failed(rid: str, sent_at: datetime | None = None) -> bool:
    return await transition_reminder(rid, ReminderStatus.FAILED, sent_at or utcnow())


# ──────────────────────────────────────────────────────────────────────
# 8. Acknowledgments (append-only)
# ──────────────────────────────────────────────────────────────────────

async def insert_acknowledgment(
    reminder_id: str,
    method: AcknowledgmentMethod,
    member_id: str | None = None,
    notes: str | None = None,
) -> Acknowledgment:
    ack = Acknowledgment(
        id=_new_id(),
        reminder_id=reminder_id,
        member_id=member_id,
        method=AcknowledgmentMethod(method),
        notes=notes,
        acknowledged_at=utcnow(),
    )
    async for s in get_session():
        s.add(ack)
        await s.commit()
    return ack


async def list_acknowledgments(reminder_id: str | None = None) -> Sequence[Acknowledgment]:
    async for s in get_session():
        stmt = select(Acknowledgment)
        if reminder_id:
            stmt = stmt.where(Acknowledgment.reminder_id == reminder_id)
        stmt = stmt.order_by(Acknowledgment.acknowledged_at.desc(), Acknowledgment.id)
        res = await s.execute(stmt)
        return list(res.scalars().all())


async def dispose_engine():
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None
