"""
Persistence helpers for reminders and notification preferences.
Each write commits on its own so scheduling never rides on a caller's transaction.
"""
import logging
from datetime import datetime
from typing import List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from app.models import Reminder, User
from app.schemas import DEFAULT_NOTIFICATION_PREFERENCES, NotificationPreferences

logger = logging.getLogger(__name__)


class ReminderStore:
    """CRUD on Reminder rows, keyed by id and by (subscription, type, time, status)."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, reminder_id: Union[str, UUID]) -> Optional[Reminder]:
        return self.db.query(Reminder).filter(Reminder.id == UUID(str(reminder_id))).first()

    def find_pending(
        self,
        subscription_id: UUID,
        reminder_type: str,
        scheduled_for: datetime,
    ) -> Optional[Reminder]:
        return self.db.query(Reminder).filter(
            Reminder.subscription_id == subscription_id,
            Reminder.reminder_type == reminder_type,
            Reminder.scheduled_for == scheduled_for,
            Reminder.status == "pending",
        ).first()

    def list_pending_for_subscription(self, subscription_id: UUID) -> List[Reminder]:
        return self.db.query(Reminder).filter(
            Reminder.subscription_id == subscription_id,
            Reminder.status == "pending",
        ).order_by(Reminder.scheduled_for).all()

    def create(self, subscription_id: UUID, reminder_type: str, scheduled_for: datetime) -> Reminder:
        reminder = Reminder(
            subscription_id=subscription_id,
            reminder_type=reminder_type,
            scheduled_for=scheduled_for,
            status="pending",
        )
        self.db.add(reminder)
        self.db.commit()
        self.db.refresh(reminder)
        return reminder

    def set_job_id(self, reminder: Reminder, job_id: str) -> None:
        reminder.job_id = job_id
        self.db.commit()

    def claim(self, reminder: Reminder) -> bool:
        """
        Move a reminder from pending to processing in a single conditional
        UPDATE. Only one worker can win; the others see rowcount 0.
        """
        updated = self.db.query(Reminder).filter(
            Reminder.id == reminder.id,
            Reminder.status == "pending",
        ).update({Reminder.status: "processing"}, synchronize_session=False)
        self.db.commit()
        # Reload so the caller sees the status the winner left behind
        self.db.refresh(reminder)
        return updated == 1

    def set_status(self, reminder: Reminder, status: str, sent_at: Optional[datetime] = None) -> None:
        reminder.status = status
        if sent_at is not None:
            reminder.sent_at = sent_at
        self.db.commit()

    def delete(self, reminder: Reminder) -> None:
        self.db.delete(reminder)
        self.db.commit()


def get_notification_preferences(db: Session, user_id: str) -> NotificationPreferences:
    """Stored preferences for a user, or the defaults when unset or unreadable."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.notification_preferences:
        return DEFAULT_NOTIFICATION_PREFERENCES
    try:
        return NotificationPreferences.model_validate(user.notification_preferences)
    except ValueError as e:
        logger.warning(f"Invalid notification preferences for user {user_id}, using defaults: {e}")
        return DEFAULT_NOTIFICATION_PREFERENCES
