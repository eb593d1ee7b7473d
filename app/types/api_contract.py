"""Request/response bodies for the HTTP surface in ``main.py``."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from db.db import AcknowledgmentMethod, ReminderStatus


class ReminderCreate(BaseModel):
    event_id: str
    group_id: str
    advance_minutes: int = Field(ge=0)
    message: Optional[str] = None


class ReminderUpdate(BaseModel):
    """Admin edit while PENDING. ``reminder_time`` is not recomputed."""

    message: Optional[str] = None
    advance_minutes: Optional[int] = Field(default=None, ge=0)


class ReminderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_id: str
    group_id: str
    reminder_time: datetime
    advance_minutes: int
    message: str
    status: ReminderStatus
    sent_at: Optional[datetime] = None


class AcknowledgmentCreate(BaseModel):
    reminder_id: str
    member_id: Optional[str] = None
    method: AcknowledgmentMethod
    notes: Optional[str] = None


class AcknowledgmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    reminder_id: str
    member_id: Optional[str] = None
    method: AcknowledgmentMethod
    acknowledged_at: datetime
    notes: Optional[str] = None
