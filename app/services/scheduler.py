"""Tick driver for reminder dispatch.

One tick = scan the store for due reminders, dispatch each of them, write the
terminal status back. Ticks never overlap inside a process (``asyncio.Lock``);
across processes the guarded status update in the store is what prevents a
reminder from being finalized twice. An optional ``tick_lock`` factory
(a Redis lock in production) keeps separate processes from ticking at once.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional

import db
from app.services.dispatch import ReminderDispatcher
from app.services.reminder_state import status_for
from app.types.notifications import TickReport
from db.db import ReminderStatus, utcnow

_LOGGER = logging.getLogger(__name__)


def _release(lock) -> None:
    try:
        lock.release()
    except Exception as exc:  # noqa: BLE001
        _LOGGER.warning("[Scheduler] tick lock release failed: %s", exc)


class ReminderScheduler:
    def __init__(
        self,
        dispatcher: ReminderDispatcher,
        store=db,
        clock: Callable[[], datetime] = utcnow,
        due_window_seconds: int = 60,
        overdue_limit: int = 10,
        max_concurrent_reminders: int = 5,
        tick_lock: Optional[Callable[[], Any]] = None,
    ):
        self.dispatcher = dispatcher
        self.store = store
        self.clock = clock
        self.due_window_seconds = due_window_seconds
        self.overdue_limit = overdue_limit
        self.max_concurrent_reminders = max(1, max_concurrent_reminders)
        self.tick_lock = tick_lock
        self._lock = asyncio.Lock()
        self._stopping: Optional[asyncio.Event] = None

    @classmethod
    def from_settings(cls, settings, dispatcher: ReminderDispatcher, **kwargs) -> "ReminderScheduler":
        return cls(
            dispatcher,
            due_window_seconds=settings.SCHEDULER_DUE_WINDOW_SECONDS,
            overdue_limit=settings.SCHEDULER_OVERDUE_LIMIT,
            max_concurrent_reminders=settings.SCHEDULER_MAX_CONCURRENT_REMINDERS,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Single tick
    # ------------------------------------------------------------------

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        if self._lock.locked():
            _LOGGER.warning("[Scheduler] previous tick still running, skipping")
            return TickReport(started_at=now or self.clock(), skipped=True)

        async with self._lock:
            lock = self.tick_lock() if self.tick_lock is not None else None
            if lock is not None and not await asyncio.to_thread(lock.acquire):
                _LOGGER.warning("[Scheduler] another process holds the tick lock, skipping")
                return TickReport(started_at=now or self.clock(), skipped=True)
            try:
                report = await self._scan_and_dispatch(now or self.clock())
            finally:
                if lock is not None:
                    await asyncio.to_thread(_release, lock)

        if not report.aborted:
            _LOGGER.info(
                "[Scheduler] tick %s: imminent=%d overdue=%d sent=%d failed=%d unchanged=%d",
                report.started_at.isoformat(), report.imminent, report.overdue,
                report.sent, report.failed, report.unchanged,
            )
        return report

    async def _scan_and_dispatch(self, now: datetime) -> TickReport:
        report = TickReport(started_at=now)
        try:
            imminent = await self.store.fetch_imminent_reminders(now, self.due_window_seconds)
            overdue = await self.store.fetch_overdue_reminders(now, self.overdue_limit)
        except Exception:  # noqa: BLE001
            _LOGGER.exception("[Scheduler] scan failed, aborting tick")
            report.aborted = True
            return report

        report.imminent = len(imminent)
        report.overdue = len(overdue)

        due = {}
        for reminder in list(imminent) + list(overdue):
            due.setdefault(reminder.id, reminder)

        semaphore = asyncio.Semaphore(self.max_concurrent_reminders)
        statuses = await asyncio.gather(
            *(self._process(reminder, semaphore) for reminder in due.values())
        )
        for status in statuses:
            if status == ReminderStatus.SENT:
                report.sent += 1
            elif status == ReminderStatus.FAILED:
                report.failed += 1
            else:
                report.unchanged += 1
        return report

    async def _process(self, reminder, semaphore: asyncio.Semaphore) -> Optional[ReminderStatus]:
        """Dispatch one reminder and finalize it. Returns None if its status was left alone."""
        async with semaphore:
            try:
                _LOGGER.info("[Scheduler] sending reminder %s for event %r", reminder.id, reminder.event.title)
                outcome = await self.dispatcher.dispatch(reminder)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("[Scheduler] dispatch of reminder %s crashed", reminder.id)
                outcome = None
            status = status_for(outcome)

            try:
                claimed = await self.store.transition_reminder(reminder.id, status, self.clock())
            except Exception:  # noqa: BLE001
                # leave it PENDING; the overdue scan picks it up again
                _LOGGER.exception(
                    "[Scheduler] could not mark reminder %s %s, leaving it PENDING",
                    reminder.id, status.value,
                )
                return None

            if not claimed:
                _LOGGER.warning("[Scheduler] reminder %s was already finalized elsewhere", reminder.id)
                return None
            _LOGGER.info("[Scheduler] reminder %s -> %s", reminder.id, status.value)
            return status

    # ------------------------------------------------------------------
    # In-process driver
    # ------------------------------------------------------------------

    async def run_forever(self, interval_seconds: float = 60.0) -> None:
        """Tick now, then every ``interval_seconds`` until ``stop()`` is called."""
        self._stopping = asyncio.Event()
        _LOGGER.info("[Scheduler] started, interval=%ss", interval_seconds)
        while not self._stopping.is_set():
            started = asyncio.get_running_loop().time()
            try:
                await self.tick()
            except Exception:  # noqa: BLE001
                _LOGGER.exception("[Scheduler] tick crashed")
            elapsed = asyncio.get_running_loop().time() - started
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=max(0.0, interval_seconds - elapsed))
            except asyncio.TimeoutError:
                pass
        _LOGGER.info("[Scheduler] stopped")

    def stop(self) -> None:
        if self._stopping is not None:
            self._stopping.set()


def build_default_scheduler(settings=None, **kwargs) -> ReminderScheduler:
    from app.services.dispatch import build_default_dispatcher

    if settings is None:
        from config import settings

    return ReminderScheduler.from_settings(settings, build_default_dispatcher(settings), **kwargs)
