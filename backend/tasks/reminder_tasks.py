"""
Celery tasks for delivering scheduled reminders.
A reminder moves pending -> processing -> sent, or -> failed once retries run out.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from celery_app import celery_app
from app.database import SessionLocal
from app.schemas import NotificationPreferences
from app.services.event_publisher import EventPublisher
from app.services.reminder_queue import CeleryReminderQueue
from app.services.reminder_store import ReminderStore, get_notification_preferences

logger = logging.getLogger(__name__)

MAX_DELIVERY_RETRIES = 4

# Jobs firing this close to the due time are delivered rather than deferred
EARLY_TOLERANCE_MS = 5000


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def deliver_reminder(
    store: Any,
    publisher: Any,
    reminder_id: str,
    preferences_provider: Callable[[str], NotificationPreferences],
    now: Optional[datetime] = None,
    queue: Any = None,
) -> dict:
    """
    Deliver one reminder.

    A job that fires before the reminder is due (its countdown was capped by
    the queue) is re-enqueued for the remaining time when a queue is given.
    Only the worker that wins the pending -> processing claim publishes.

    Returns a summary dict. Raises LookupError when the reminder does not exist
    and re-raises publish failures after putting the reminder back to pending.
    """
    now = now or datetime.now(timezone.utc)
    reminder = store.get(reminder_id)
    if reminder is None:
        raise LookupError(f"Reminder {reminder_id} not found")

    if reminder.status != "pending":
        logger.info(f"[REMINDERS] Reminder {reminder_id} already {reminder.status}, skipping")
        return {"reminder_id": reminder_id, "skipped": True, "status": reminder.status}

    remaining_ms = int((_as_utc(reminder.scheduled_for) - now).total_seconds() * 1000)
    if queue is not None and remaining_ms > EARLY_TOLERANCE_MS:
        job_id = queue.enqueue(
            f"reminder-{reminder.reminder_type}-{reminder.id}-{int(now.timestamp())}",
            {"reminder_id": str(reminder.id)},
            remaining_ms,
        )
        store.set_job_id(reminder, job_id)
        logger.info(f"[REMINDERS] Reminder {reminder_id} not due for {remaining_ms}ms, re-enqueued as {job_id}")
        return {"reminder_id": reminder_id, "skipped": True, "status": "deferred"}

    if not store.claim(reminder):
        logger.info(f"[REMINDERS] Reminder {reminder_id} claimed by another worker, skipping")
        return {"reminder_id": reminder_id, "skipped": True, "status": reminder.status}

    subscription = reminder.subscription
    event_at = (
        subscription.trial_ends_at
        if reminder.reminder_type == "trial_ending"
        else subscription.next_billing_date
    )

    try:
        channels = preferences_provider(subscription.user_id).channels.model_dump()
        publisher.publish_reminder_due(
            user_id=subscription.user_id,
            reminder_id=str(reminder.id),
            subscription_id=str(subscription.id),
            service_name=subscription.service_name,
            reminder_type=reminder.reminder_type,
            event_at=event_at,
            channels=channels,
        )
    except Exception:
        # Back to pending so the retry is not skipped as already processing
        store.set_status(reminder, "pending")
        raise

    reminder.channels_used = [name for name, enabled in channels.items() if enabled]
    store.set_status(reminder, "sent", sent_at=now)
    logger.info(f"[REMINDERS] Reminder {reminder_id} sent")
    return {"reminder_id": reminder_id, "skipped": False, "status": "sent"}


@celery_app.task(bind=True, max_retries=MAX_DELIVERY_RETRIES, name="tasks.reminder_tasks.send_reminder")
def send_reminder(self, reminder_id: str) -> dict:
    """Deliver a reminder when its countdown expires."""
    db = SessionLocal()
    store = ReminderStore(db)
    try:
        return deliver_reminder(
            store,
            EventPublisher(),
            reminder_id,
            lambda user_id: get_notification_preferences(db, user_id),
            queue=CeleryReminderQueue(),
        )
    except LookupError:
        # Deleted after the job was queued (subscription removed or rescheduled)
        logger.warning(f"[REMINDERS] Reminder {reminder_id} no longer exists, dropping job")
        return {"reminder_id": reminder_id, "skipped": True, "status": "missing"}
    except Exception as e:
        if self.request.retries < self.max_retries:
            logger.warning(f"[REMINDERS] Delivery of {reminder_id} failed, retrying: {e}")
            raise self.retry(exc=e, countdown=2 * (2 ** self.request.retries))

        logger.error(f"[REMINDERS] Delivery of {reminder_id} failed permanently: {e}")
        db.rollback()
        reminder = store.get(reminder_id)
        if reminder is not None:
            store.set_status(reminder, "failed")
        raise
    finally:
        db.close()
