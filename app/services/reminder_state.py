"""Reminder lifecycle: PENDING -> SENT | FAILED.

PENDING is the only state with outgoing transitions. The store enforces
this with a conditional update, these helpers let callers reason about it
before touching the database.
"""

from __future__ import annotations

from db.db import ReminderStatus
from app.types.notifications import DispatchOutcome

TERMINAL_STATES = frozenset({ReminderStatus.SENT, ReminderStatus.FAILED})


def is_terminal(status: ReminderStatus) -> bool:
    return ReminderStatus(status) in TERMINAL_STATES


def can_transition(src: ReminderStatus, dst: ReminderStatus) -> bool:
    return ReminderStatus(src) == ReminderStatus.PENDING and ReminderStatus(dst) in TERMINAL_STATES


def status_for(outcome: DispatchOutcome | None) -> ReminderStatus:
    """Terminal status for a finished dispatch; ``None`` means the attempt itself blew up."""
    if outcome is not None and outcome.reached:
        return ReminderStatus.SENT
    return ReminderStatus.FAILED
