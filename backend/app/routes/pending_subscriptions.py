"""
API endpoints for reviewing medium-confidence detections.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from app.database import get_db
from app.auth import get_user_id
from app.dependencies import get_reminder_scheduler
from app.models import PendingSubscription
from app.schemas import (
    PendingApproveResponse,
    PendingSubscriptionAction,
    PendingSubscriptionResponse,
)
from app.services.pending_review import subscription_from_detection
from app.services.reminder_scheduler import ReminderScheduler, schedule_best_effort

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_reviewable(db: Session, pending_id: UUID, user_id: str) -> PendingSubscription:
    pending = db.query(PendingSubscription).filter(
        PendingSubscription.id == pending_id,
        PendingSubscription.user_id == user_id
    ).first()
    if not pending:
        raise HTTPException(status_code=404, detail="Pending subscription not found")
    if pending.status != "pending":
        raise HTTPException(status_code=400, detail="Already processed")
    return pending


@router.get("", response_model=List[PendingSubscriptionResponse])
def list_pending_subscriptions(
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Detections waiting for review, newest first."""
    user_id = get_user_id(user_id)
    return db.query(PendingSubscription).filter(
        PendingSubscription.user_id == user_id,
        PendingSubscription.status == "pending"
    ).order_by(PendingSubscription.created_at.desc()).all()


@router.post("/approve", response_model=PendingApproveResponse)
def approve_pending_subscription(
    action: PendingSubscriptionAction,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """
    Turn a pending detection into a subscription.

    The subscription and the approved status are committed together, so a
    retried approve cannot create a second subscription. Reminders are then
    scheduled best-effort.
    """
    user_id = get_user_id(user_id)
    pending = _get_reviewable(db, action.pending_id, user_id)

    subscription = subscription_from_detection(user_id, pending)
    db.add(subscription)
    pending.status = "approved"
    db.commit()
    db.refresh(subscription)

    _, warning = schedule_best_effort(scheduler, subscription)
    logger.info(f"[PENDING] Approved {pending.id} as subscription {subscription.id}")
    return PendingApproveResponse(
        success=True,
        subscription_id=subscription.id,
        warnings=[warning] if warning else [],
    )


@router.post("/dismiss")
def dismiss_pending_subscription(
    action: PendingSubscriptionAction,
    user_id: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """Dismiss a pending detection. Nothing is created."""
    user_id = get_user_id(user_id)
    pending = _get_reviewable(db, action.pending_id, user_id)

    pending.status = "dismissed"
    db.commit()
    logger.info(f"[PENDING] Dismissed {pending.id}")
    return {"success": True}
