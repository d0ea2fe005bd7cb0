"""
Celery application for delayed reminder delivery and pending-review cleanup.

Run a worker (with the periodic cleanup) with:
    cd backend && celery -A celery_app worker --beat --loglevel=info
"""
import os

from celery import Celery
from celery.schedules import crontab

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Longest countdown a reminder job is given. Reminders further out are
# re-enqueued by the task when it fires early, so no message waits longer
# than this in the broker.
REMINDER_MAX_COUNTDOWN_SECONDS = int(
    os.getenv("REMINDER_MAX_COUNTDOWN_SECONDS", str(7 * 24 * 60 * 60))
)

# The Redis transport redelivers an unacknowledged ETA task once this timeout
# passes, so it has to outlast the longest countdown.
REMINDER_VISIBILITY_TIMEOUT_SECONDS = REMINDER_MAX_COUNTDOWN_SECONDS + 24 * 60 * 60

celery_app = Celery(
    "subtrack_tasks",
    broker=REDIS_URL,
    backend=REDIS_URL,
    include=["tasks.reminder_tasks", "tasks.pending_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # A worker crash mid-delivery puts the job back instead of losing it
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=120,
    task_soft_time_limit=90,
    result_expires=7 * 24 * 60 * 60,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    broker_transport_options={"visibility_timeout": REMINDER_VISIBILITY_TIMEOUT_SECONDS},
    beat_schedule={
        "pending-subscriptions-cleanup": {
            "task": "tasks.pending_tasks.cleanup_expired_pending",
            "schedule": crontab(minute=30, hour=3),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
