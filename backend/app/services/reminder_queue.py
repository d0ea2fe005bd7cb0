"""
Work-queue adapter for delayed reminder jobs, backed by Celery.
"""
import logging

from celery.result import AsyncResult

from celery_app import REMINDER_MAX_COUNTDOWN_SECONDS, celery_app

logger = logging.getLogger(__name__)

SEND_REMINDER_TASK = "tasks.reminder_tasks.send_reminder"


class CeleryReminderQueue:
    """
    enqueue / remove / fetch on top of Celery's countdown scheduling.

    Countdowns are capped at max_countdown_seconds. A job that fires before its
    reminder is due is re-enqueued by the delivery task for the remainder.
    """

    def __init__(self, app=None, max_countdown_seconds: int = REMINDER_MAX_COUNTDOWN_SECONDS):
        self.app = app or celery_app
        self.max_countdown_seconds = max_countdown_seconds

    def countdown_for(self, delay_ms: int) -> float:
        return min(max(0, delay_ms) / 1000.0, float(self.max_countdown_seconds))

    def enqueue(self, job_id: str, payload: dict, delay_ms: int) -> str:
        countdown = self.countdown_for(delay_ms)
        result = self.app.send_task(
            SEND_REMINDER_TASK,
            kwargs=payload,
            task_id=job_id,
            countdown=countdown,
        )
        logger.debug(f"[REMINDERS] Enqueued job {job_id} with countdown {countdown:.0f}s (due in {delay_ms}ms)")
        return result.id

    def remove(self, job_id: str) -> None:
        self.app.control.revoke(job_id)
        logger.debug(f"[REMINDERS] Revoked job {job_id}")

    def fetch(self, job_id: str) -> str:
        """
        Celery state of a job. Delayed jobs that have not run yet report PENDING,
        the same as ids Celery has never seen.
        """
        return AsyncResult(job_id, app=self.app).state
