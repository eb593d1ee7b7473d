import datetime
import logging
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Query, status
from fastapi.responses import PlainTextResponse

import db
from app.types.api_contract import (
    AcknowledgmentCreate,
    AcknowledgmentOut,
    ReminderCreate,
    ReminderOut,
    ReminderUpdate,
)
from db.db import AcknowledgmentMethod

_LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Group Reminders")

# DB connections are managed lazily; tables via Alembic migrations

@app.on_event("shutdown")
async def shutdown_event():
    await db.dispose_engine()


@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.datetime.now(tz=datetime.timezone.utc).isoformat()}

# --------------------------------------------
# Reminders
# --------------------------------------------

@app.post("/v1/reminders", response_model=ReminderOut, status_code=status.HTTP_201_CREATED)
async def create_reminder(body: ReminderCreate):
    try:
        reminder = await db.create_reminder(
            body.event_id, body.group_id, body.advance_minutes, body.message
        )
    except LookupError as e:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(e))
    _LOGGER.info("Reminder %s stored for %s", reminder.id, reminder.reminder_time.isoformat())
    return reminder


async def _require_reminder(reminder_id: str):
    reminder = await db.get_reminder(reminder_id)
    if reminder is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Reminder not found")
    return reminder


@app.get("/v1/reminders/{reminder_id}", response_model=ReminderOut)
async def get_reminder(reminder_id: str):
    return await _require_reminder(reminder_id)


@app.put("/v1/reminders/{reminder_id}", response_model=ReminderOut)
async def update_reminder(reminder_id: str, body: ReminderUpdate):
    try:
        reminder = await db.update_reminder(
            reminder_id, message=body.message, advance_minutes=body.advance_minutes
        )
    except LookupError as e:
        raise HTTPException(status.HTTP_404_NOT_FOUND, str(e))
    except ValueError as e:
        # only PENDING reminders are editable
        raise HTTPException(status.HTTP_409_CONFLICT, str(e))
    _LOGGER.info("Reminder %s updated", reminder.id)
    return reminder

# --------------------------------------------
# Acknowledgments
# --------------------------------------------


@app.get("/acknowledge/{reminder_id}", response_class=PlainTextResponse)
async def acknowledge_link(reminder_id: str, method: AcknowledgmentMethod = AcknowledgmentMethod.WEB_APP):
    """Target of the link embedded in every notification."""
    await _require_reminder(reminder_id)
    await db.insert_acknowledgment(
        reminder_id,
        AcknowledgmentMethod.WEB_APP,
        notes=f"Acknowledged from {method.value} link",
    )
    return PlainTextResponse("Thanks, your acknowledgment was recorded.")


@app.post("/v1/acknowledgments", response_model=AcknowledgmentOut, status_code=status.HTTP_201_CREATED)
async def create_acknowledgment(body: AcknowledgmentCreate):
    # Independent of reminder status: a SENT reminder can still be acknowledged
    await _require_reminder(body.reminder_id)
    return await db.insert_acknowledgment(
        body.reminder_id, body.method, member_id=body.member_id, notes=body.notes
    )


@app.get("/v1/acknowledgments", response_model=List[AcknowledgmentOut])
async def list_acknowledgments(reminder_id: Optional[str] = Query(default=None)):
    return await db.list_acknowledgments(reminder_id)
