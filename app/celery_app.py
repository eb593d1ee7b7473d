"""Celery application instance shared across the backend.

Start a worker and the beat scheduler with:
    celery -A app.celery_app worker -Q reminder -l info --concurrency=2
    celery -A app.celery_app beat -l info
"""

from celery import Celery

from config import settings

BROKER_URL = settings.REDIS_URL

celery_app = Celery("group_reminders", broker=BROKER_URL, backend=BROKER_URL)

# Global task settings
celery_app.conf.task_acks_late = True
celery_app.conf.task_reject_on_worker_lost = True

celery_app.conf.task_routes = {
    "app.workers.reminder.dispatch_due": {"queue": "reminder"},
}

# Beat schedule: scan and dispatch due reminders every tick interval
celery_app.conf.beat_schedule = {
    "dispatch-due-reminders": {
        "task": "app.workers.reminder.dispatch_due",
        "schedule": settings.SCHEDULER_INTERVAL_SECONDS,
        # a tick older than one interval is stale; the next one rescans anyway
        "options": {"expires": settings.SCHEDULER_INTERVAL_SECONDS},
    }
}

# --- Ensure tasks are registered ---
import app.workers.reminder  # noqa: E402,F401
