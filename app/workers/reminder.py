"""Celery beat task that runs one scheduler tick."""

from __future__ import annotations

import asyncio
import logging

import redis

from app.celery_app import celery_app
from app.services.scheduler import build_default_scheduler
from config import settings
import db

_LOGGER = logging.getLogger(__name__)

TICK_LOCK_NAME = "group-reminders:dispatch-due"


async def _run_tick():
    scheduler = build_default_scheduler(settings)
    try:
        return await scheduler.tick()
    finally:
        # each task gets a fresh event loop; pooled connections can't outlive it
        await db.dispose_engine()


def tick_lock():
    client = redis.Redis.from_url(settings.REDIS_URL)
    return client.lock(TICK_LOCK_NAME, timeout=settings.SCHEDULER_LOCK_TIMEOUT, blocking=False)


# ---------------------------------------------------------------------------
# Celery Tasks
# ---------------------------------------------------------------------------

@celery_app.task(name="app.workers.reminder.dispatch_due", bind=True)
def dispatch_due(self):  # noqa: D401
    """Scan for due reminders and dispatch them, one tick at a time cluster-wide."""
    lock = tick_lock()
    if not lock.acquire():
        _LOGGER.warning("[Scheduler] another worker holds the tick lock, skipping")
        return {"skipped": True}
    try:
        report = asyncio.run(_run_tick())
    finally:
        try:
            lock.release()
        except redis.exceptions.LockError:
            _LOGGER.warning("[Scheduler] tick lock expired before release")
    return report.model_dump(mode="json")
