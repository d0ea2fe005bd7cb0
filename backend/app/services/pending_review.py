"""
Confidence routing for inferred subscriptions.

A detection from email scanning (or any other inference source) is either
created outright, held as a PendingSubscription for the user to review, or
dropped, depending on its confidence:

    confidence >= 0.8          auto-create, reminders scheduled
    0.4 <= confidence < 0.8    pending review, expires after 30 days
    confidence < 0.4           discarded
"""
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.models import PendingSubscription, Subscription
from app.schemas import DetectedSubscription
from app.services.reminder_scheduler import schedule_best_effort

logger = logging.getLogger(__name__)

AUTO_CREATE = "auto_create"
PENDING_REVIEW = "pending_review"
DISCARD = "discard"

AUTO_CREATE_THRESHOLD = float(os.getenv("AUTO_CREATE_CONFIDENCE", "0.8"))
PENDING_REVIEW_THRESHOLD = float(os.getenv("PENDING_REVIEW_CONFIDENCE", "0.4"))
PENDING_EXPIRY_DAYS = int(os.getenv("PENDING_EXPIRY_DAYS", "30"))


def route_detection(confidence: float) -> str:
    if confidence >= AUTO_CREATE_THRESHOLD:
        return AUTO_CREATE
    if confidence >= PENDING_REVIEW_THRESHOLD:
        return PENDING_REVIEW
    return DISCARD


def subscription_from_detection(user_id: str, detection: Any) -> Subscription:
    """Build a Subscription from a DetectedSubscription or an approved PendingSubscription."""
    amount = detection.amount
    billing_cycle = detection.billing_cycle
    return Subscription(
        user_id=user_id,
        service_name=detection.service_name,
        status="trial" if detection.is_trial else "active",
        amount=abs(amount) if amount is not None else 0,
        currency=detection.currency or "USD",
        billing_cycle=billing_cycle if billing_cycle in ("weekly", "monthly", "yearly") else "monthly",
        trial_ends_at=detection.trial_ends_at,
        next_billing_date=detection.next_billing_date,
        detected_from=detection.source,
    )


def record_detection(
    db: Session,
    scheduler: Any,
    user_id: str,
    detection: DetectedSubscription,
    now: Optional[datetime] = None,
) -> str:
    """
    Route one detection and persist the outcome. Returns the route taken.

    A pending row is not duplicated when the same source_ref is already
    waiting for review.
    """
    route = route_detection(detection.confidence)
    now = now or datetime.now(timezone.utc)

    if route == AUTO_CREATE:
        subscription = subscription_from_detection(user_id, detection)
        db.add(subscription)
        db.commit()
        db.refresh(subscription)
        _, warning = schedule_best_effort(scheduler, subscription)
        if warning:
            logger.warning(f"[PENDING] {warning}")
        logger.info(f"[PENDING] Auto-created {detection.service_name} ({detection.confidence:.2f}) for user {user_id}")
        return route

    if route == DISCARD:
        logger.debug(f"[PENDING] Discarded {detection.service_name} ({detection.confidence:.2f})")
        return route

    if detection.source_ref:
        existing = db.query(PendingSubscription).filter(
            PendingSubscription.user_id == user_id,
            PendingSubscription.source_ref == detection.source_ref,
            PendingSubscription.status == "pending",
        ).first()
        if existing is not None:
            logger.debug(f"[PENDING] {detection.source_ref} already awaiting review")
            return route

    db.add(PendingSubscription(
        user_id=user_id,
        service_name=detection.service_name,
        confidence=detection.confidence,
        amount=detection.amount,
        currency=detection.currency,
        billing_cycle=detection.billing_cycle,
        is_trial=detection.is_trial,
        trial_ends_at=detection.trial_ends_at,
        next_billing_date=detection.next_billing_date,
        source=detection.source,
        source_ref=detection.source_ref,
        raw_data=detection.raw_data,
        status="pending",
        expires_at=now + timedelta(days=PENDING_EXPIRY_DAYS),
    ))
    db.commit()
    logger.info(f"[PENDING] Held {detection.service_name} ({detection.confidence:.2f}) for review")
    return route


def delete_expired_pending(db: Session, now: Optional[datetime] = None) -> int:
    """Delete unreviewed rows past their expiry. Approved and dismissed rows are kept."""
    now = now or datetime.now(timezone.utc)
    deleted = db.query(PendingSubscription).filter(
        PendingSubscription.status == "pending",
        PendingSubscription.expires_at < now,
    ).delete(synchronize_session=False)
    db.commit()
    logger.info(f"[PENDING] Cleaned up {deleted} expired pending subscriptions")
    return deleted
