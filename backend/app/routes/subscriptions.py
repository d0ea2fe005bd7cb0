from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from app.database import get_db
from app.auth import get_user_id
from app.dependencies import get_reminder_scheduler
from app.errors import ReminderSchedulingError
from app.models import Reminder, Subscription
from app.schemas import (
    ReminderResponse,
    SubscriptionCreate,
    SubscriptionCreateResponse,
    SubscriptionDatesUpdate,
    SubscriptionRescheduleResponse,
    SubscriptionResponse,
)
from app.services.reminder_scheduler import ReminderScheduler, schedule_best_effort

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_owned_subscription(db: Session, subscription_id: UUID, user_id: str) -> Subscription:
    subscription = db.query(Subscription).filter(
        Subscription.id == subscription_id,
        Subscription.user_id == user_id
    ).first()
    if not subscription:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return subscription


@router.get("", response_model=List[SubscriptionResponse])
def list_subscriptions(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """List the user's subscriptions, newest first."""
    user_id = get_user_id(user_id)
    return db.query(Subscription).filter(
        Subscription.user_id == user_id
    ).order_by(Subscription.created_at.desc()).all()


@router.post("", response_model=SubscriptionCreateResponse, status_code=201)
def create_subscription(
    subscription: SubscriptionCreate,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """
    Create a subscription by hand and schedule its reminders.
    A scheduling failure is returned as a warning; the subscription stays.
    """
    user_id = get_user_id(user_id)
    data = subscription.model_dump()
    data["amount"] = data["amount"] or 0
    db_subscription = Subscription(**data, user_id=user_id, detected_from="manual")
    db.add(db_subscription)
    db.commit()
    db.refresh(db_subscription)

    reminders, warning = schedule_best_effort(scheduler, db_subscription)
    logger.info(f"Created subscription {db_subscription.id} for user {user_id}")
    return SubscriptionCreateResponse(
        subscription=SubscriptionResponse.model_validate(db_subscription),
        reminders_scheduled=len(reminders),
        warnings=[warning] if warning else [],
    )


@router.get("/{subscription_id}/reminders", response_model=List[ReminderResponse])
def list_reminders(
    subscription_id: UUID,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """List reminders of a subscription, soonest first."""
    user_id = get_user_id(user_id)
    _get_owned_subscription(db, subscription_id, user_id)
    return db.query(Reminder).filter(
        Reminder.subscription_id == subscription_id
    ).order_by(Reminder.scheduled_for).all()


@router.patch("/{subscription_id}/dates", response_model=SubscriptionRescheduleResponse)
def update_subscription_dates(
    subscription_id: UUID,
    updates: SubscriptionDatesUpdate,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """
    Change the trial end or next billing date and rebuild pending reminders
    from the new dates.
    """
    user_id = get_user_id(user_id)
    subscription = _get_owned_subscription(db, subscription_id, user_id)

    for field, value in updates.model_dump(exclude_unset=True).items():
        setattr(subscription, field, value)
    db.commit()
    db.refresh(subscription)

    try:
        cancelled = scheduler.cancel(subscription.id)
        reminders = scheduler.schedule(subscription)
    except ReminderSchedulingError as e:
        logger.error(f"[REMINDERS] Rescheduling failed for subscription {subscription_id}: {e}")
        raise HTTPException(status_code=503, detail="Reminders could not be scheduled. Please try again.")

    return SubscriptionRescheduleResponse(
        subscription_id=subscription.id,
        cancelled=cancelled,
        reminders=reminders,
    )


@router.delete("/{subscription_id}", status_code=204)
def delete_subscription(
    subscription_id: UUID,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """Delete a subscription after cancelling its pending reminders."""
    user_id = get_user_id(user_id)
    subscription = _get_owned_subscription(db, subscription_id, user_id)

    scheduler.cancel(subscription.id)
    db.delete(subscription)
    db.commit()
    logger.info(f"Deleted subscription {subscription_id} for user {user_id}")
    return None
