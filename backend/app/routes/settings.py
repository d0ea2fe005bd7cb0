from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
import logging

from app.database import get_db
from app.auth import get_user_id
from app.models import User
from app.schemas import NotificationPreferences
from app.services.reminder_scheduler import parse_offset
from app.services.reminder_store import get_notification_preferences

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/notifications", response_model=NotificationPreferences)
def get_notification_settings(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Notification preferences of the current user, defaults when none are stored."""
    user_id = get_user_id(user_id)
    return get_notification_preferences(db, user_id)


@router.put("/notifications", response_model=NotificationPreferences)
def update_notification_settings(
    preferences: NotificationPreferences,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """
    Replace the user's notification preferences.
    Already scheduled reminders keep their times; new dates use the new offsets.
    """
    user_id = get_user_id(user_id)

    for timing in preferences.defaults.trial + preferences.defaults.billing:
        try:
            parse_offset(timing)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Invalid reminder timing: {timing}")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    user.notification_preferences = preferences.model_dump()
    db.commit()
    logger.info(f"[REMINDERS] Updated notification preferences for user {user_id}")
    return preferences
