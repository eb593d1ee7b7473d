"""Run scheduler ticks outside Celery.

Once, from a platform cron every minute:
    python -m app.scripts.scan_due_reminders
Or as a long-running process that ticks on its own:
    python -m app.scripts.scan_due_reminders --loop

Every tick takes the same Redis tick lock as the Celery beat task, so two
processes never dispatch the same reminders concurrently.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from app.services.scheduler import build_default_scheduler
from app.workers.reminder import tick_lock
from config import settings
import db

_LOGGER = logging.getLogger("app.scripts.scan_due_reminders")


async def main(loop: bool = False) -> None:
    scheduler = build_default_scheduler(settings, tick_lock=tick_lock)
    try:
        if loop:
            await scheduler.run_forever(settings.SCHEDULER_INTERVAL_SECONDS)
        else:
            report = await scheduler.tick()
            if report.aborted:
                raise RuntimeError("scan failed")
    finally:
        await db.dispose_engine()


if __name__ == "__main__":  # pragma: no cover
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--loop", action="store_true", help="keep ticking every SCHEDULER_INTERVAL_SECONDS")
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _LOGGER.info("[CRON] scan_due_reminders: job started")
    try:
        asyncio.run(main(loop=args.loop))
        _LOGGER.info("[CRON] scan_due_reminders: job completed successfully")
    except KeyboardInterrupt:
        _LOGGER.info("[CRON] scan_due_reminders: interrupted")
    except Exception as e:
        _LOGGER.exception("[CRON] scan_due_reminders: job failed: %s", e)
        raise SystemExit(1)
