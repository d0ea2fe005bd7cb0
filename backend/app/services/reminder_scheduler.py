"""
Reminder scheduling for trial endings and upcoming bills.

Both event families run through one state machine, parameterized by the
subscription field that anchors the event, the reminder type, and the key of
the user's default offsets.

Usage:
    scheduler = ReminderScheduler(ReminderStore(db), CeleryReminderQueue())
    scheduler.schedule(subscription, preferences)
    scheduler.cancel(subscription.id)
"""
import re
import logging
from typing import Any, Callable, List, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.errors import ReminderSchedulingError
from app.schemas import (
    DEFAULT_NOTIFICATION_PREFERENCES,
    NotificationPreferences,
    ReminderSettings,
)

logger = logging.getLogger(__name__)


_OFFSET_RE = re.compile(r"^\s*(\d+)\s*([mhdw])\s*$", re.IGNORECASE)
_OFFSET_UNITS = {
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def parse_offset(timing: str) -> timedelta:
    """Parse a timing such as "24h" or "7d" into a timedelta."""
    match = _OFFSET_RE.match(timing or "")
    if not match:
        raise ValueError(f"Invalid reminder timing: {timing!r}")
    return int(match.group(1)) * _OFFSET_UNITS[match.group(2).lower()]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReminderEvent:
    timestamp_field: str
    reminder_type: str
    preference_key: str


TRIAL_ENDING = ReminderEvent("trial_ends_at", "trial_ending", "trial")
BILLING_UPCOMING = ReminderEvent("next_billing_date", "billing_upcoming", "billing")


def build_job_id(reminder_type: str, subscription_id: Any, scheduled_for: datetime, reminder_id: Any) -> str:
    """
    Queue job id derived from the reminder's identity.

    The reminder id suffix keeps a rescheduled reminder from reusing the id of
    a job that was revoked when the previous one was cancelled.
    """
    epoch = int(scheduled_for.timestamp())
    return f"reminder-{reminder_type}-{subscription_id}-{epoch}-{str(reminder_id)[:8]}"


class ReminderScheduler:
    """
    Creates pending Reminder records and their delayed queue jobs.

    Idempotency is a check-before-create against pending reminders with the
    same (subscription, type, scheduled time). Concurrent callers for the same
    subscription can still race past the check; that window is accepted.
    """

    def __init__(
        self,
        store: Any,
        queue: Any,
        preferences_provider: Optional[Callable[[str], NotificationPreferences]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.queue = queue
        self.preferences_provider = preferences_provider
        self.clock = clock

    def _resolve_preferences(
        self,
        subscription: Any,
        preferences: Optional[NotificationPreferences],
    ) -> NotificationPreferences:
        if preferences is not None:
            return preferences
        if self.preferences_provider is not None:
            return self.preferences_provider(subscription.user_id)
        return DEFAULT_NOTIFICATION_PREFERENCES

    @staticmethod
    def _reminder_settings(subscription: Any) -> Optional[ReminderSettings]:
        raw = getattr(subscription, "reminder_settings", None)
        if raw is None:
            return None
        if isinstance(raw, ReminderSettings):
            return raw
        return ReminderSettings.model_validate(raw)

    def _timings_for(
        self,
        event: ReminderEvent,
        settings: Optional[ReminderSettings],
        preferences: NotificationPreferences,
    ) -> List[str]:
        if settings is not None and settings.timings:
            return list(settings.timings)
        return list(getattr(preferences.defaults, event.preference_key))

    def schedule(self, subscription: Any, preferences: Optional[NotificationPreferences] = None) -> List[Any]:
        """Schedule trial-ending and billing-upcoming reminders. Returns the reminders created."""
        preferences = self._resolve_preferences(subscription, preferences)
        created = self._schedule_event(subscription, TRIAL_ENDING, preferences)
        created.extend(self._schedule_event(subscription, BILLING_UPCOMING, preferences))
        return created

    def schedule_trial(self, subscription: Any, preferences: Optional[NotificationPreferences] = None) -> List[Any]:
        return self._schedule_event(subscription, TRIAL_ENDING, self._resolve_preferences(subscription, preferences))

    def schedule_billing(self, subscription: Any, preferences: Optional[NotificationPreferences] = None) -> List[Any]:
        return self._schedule_event(subscription, BILLING_UPCOMING, self._resolve_preferences(subscription, preferences))

    def _schedule_event(
        self,
        subscription: Any,
        event: ReminderEvent,
        preferences: NotificationPreferences,
    ) -> List[Any]:
        event_at = getattr(subscription, event.timestamp_field, None)
        if event_at is None:
            return []

        if getattr(subscription, "status", None) == "cancelled":
            logger.info(f"[REMINDERS] Subscription {subscription.id} is cancelled, no {event.reminder_type} reminders")
            return []

        settings = self._reminder_settings(subscription)
        if settings is not None and settings.enabled is False:
            logger.info(f"[REMINDERS] Reminders disabled for subscription {subscription.id}")
            return []

        event_at = _as_utc(event_at)
        now = self.clock()
        created = []

        for timing in self._timings_for(event, settings, preferences):
            try:
                offset = parse_offset(timing)
            except ValueError:
                logger.warning(f"[REMINDERS] Ignoring invalid timing {timing!r} for subscription {subscription.id}")
                continue

            scheduled_for = event_at - offset
            if scheduled_for <= now:
                logger.debug(f"[REMINDERS] Skipping past {event.reminder_type} reminder ({timing} before)")
                continue

            existing = self.store.find_pending(subscription.id, event.reminder_type, scheduled_for)
            if existing is not None:
                logger.debug(f"[REMINDERS] Reminder already pending: {existing.id}")
                continue

            created.append(self._create_and_enqueue(subscription, event, scheduled_for, now))

        return created

    def _create_and_enqueue(self, subscription: Any, event: ReminderEvent, scheduled_for: datetime, now: datetime) -> Any:
        reminder = self.store.create(subscription.id, event.reminder_type, scheduled_for)
        job_id = build_job_id(event.reminder_type, subscription.id, scheduled_for, reminder.id)
        delay_ms = int((scheduled_for - now).total_seconds() * 1000)

        try:
            job_id = self.queue.enqueue(job_id, {"reminder_id": str(reminder.id)}, delay_ms)
        except Exception as e:
            logger.error(f"[REMINDERS] Enqueue failed for reminder {reminder.id}, removing record: {e}")
            # A cleanup failure propagates with the enqueue error as its context
            self.store.delete(reminder)
            raise ReminderSchedulingError(
                f"Failed to enqueue {event.reminder_type} reminder for subscription {subscription.id}",
                subscription_id=str(subscription.id),
            ) from e

        try:
            self.store.set_job_id(reminder, job_id)
        except Exception as e:
            logger.error(f"[REMINDERS] Could not store job id for reminder {reminder.id}, removing job {job_id}: {e}")
            self.queue.remove(job_id)
            self.store.delete(reminder)
            raise ReminderSchedulingError(
                f"Failed to record job for {event.reminder_type} reminder of subscription {subscription.id}",
                subscription_id=str(subscription.id),
            ) from e

        logger.info(f"[REMINDERS] Scheduled {event.reminder_type} reminder {reminder.id} for {scheduled_for.isoformat()}")
        return reminder

    def cancel(self, subscription_id: Any) -> int:
        """Remove every pending reminder of a subscription and its queue job. Returns the count."""
        reminders = self.store.list_pending_for_subscription(subscription_id)
        for reminder in reminders:
            if reminder.job_id:
                self.queue.remove(reminder.job_id)
            self.store.delete(reminder)

        if reminders:
            logger.info(f"[REMINDERS] Cancelled {len(reminders)} pending reminders for subscription {subscription_id}")
        return len(reminders)

    def reschedule(self, subscription: Any, preferences: Optional[NotificationPreferences] = None) -> List[Any]:
        """Cancel pending reminders and schedule from the subscription's current dates."""
        self.cancel(subscription.id)
        return self.schedule(subscription, preferences)


def schedule_best_effort(scheduler: ReminderScheduler, subscription: Any) -> Tuple[List[Any], Optional[str]]:
    """
    Schedule reminders for a subscription that is already committed.

    Returns (reminders, warning). A scheduling failure never undoes the
    subscription; it comes back as a user-facing warning instead.
    """
    try:
        return scheduler.schedule(subscription), None
    except Exception:
        logger.exception(f"[REMINDERS] Scheduling failed for subscription {subscription.id}")
        return [], f"Reminders could not be scheduled for {subscription.service_name}"
