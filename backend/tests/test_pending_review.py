"""
Tests for confidence routing of inferred subscriptions.
"""
import os
import sys
from datetime import timedelta

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.models import PendingSubscription, Subscription
from app.schemas import DetectedSubscription
from app.services.pending_review import (
    AUTO_CREATE,
    DISCARD,
    PENDING_REVIEW,
    delete_expired_pending,
    record_detection,
    route_detection,
)
from tests.fakes import FIXED_NOW, FakeSession


class RecordingScheduler:
    def __init__(self, error=None):
        self.error = error
        self.scheduled = []

    def schedule(self, subscription, preferences=None):
        if self.error is not None:
            raise self.error
        self.scheduled.append(subscription)
        return []


def _detection(confidence, **overrides):
    fields = dict(
        service_name="Audible",
        confidence=confidence,
        amount=-14.95,
        billing_cycle="monthly",
        next_billing_date=FIXED_NOW + timedelta(days=20),
        source_ref="email-123",
    )
    fields.update(overrides)
    return DetectedSubscription(**fields)


@pytest.mark.parametrize("confidence, route", [
    (1.0, AUTO_CREATE),
    (0.8, AUTO_CREATE),
    (0.79, PENDING_REVIEW),
    (0.4, PENDING_REVIEW),
    (0.39, DISCARD),
    (0.0, DISCARD),
])
def test_route_detection_thresholds(confidence, route):
    assert route_detection(confidence) == route


def test_high_confidence_is_created_and_scheduled():
    db = FakeSession()
    scheduler = RecordingScheduler()

    route = record_detection(db, scheduler, "user-1", _detection(0.9), now=FIXED_NOW)

    assert route == AUTO_CREATE
    [subscription] = db.added
    assert isinstance(subscription, Subscription)
    assert subscription.amount == pytest.approx(14.95)
    assert subscription.detected_from == "email"
    assert subscription.status == "active"
    assert scheduler.scheduled == [subscription]
    print("✓ High-confidence detection auto-created")


def test_auto_create_survives_scheduling_failure():
    db = FakeSession()

    route = record_detection(db, RecordingScheduler(error=ConnectionError("redis down")), "user-1", _detection(0.95))

    assert route == AUTO_CREATE
    assert db.commits == 1


def test_medium_confidence_is_held_for_review():
    db = FakeSession()
    scheduler = RecordingScheduler()

    route = record_detection(db, scheduler, "user-1", _detection(0.6, is_trial=True), now=FIXED_NOW)

    assert route == PENDING_REVIEW
    [pending] = db.added
    assert isinstance(pending, PendingSubscription)
    assert pending.status == "pending"
    assert pending.is_trial is True
    assert pending.expires_at == FIXED_NOW + timedelta(days=30)
    assert scheduler.scheduled == []
    print("✓ Medium-confidence detection held for review")


def test_same_source_ref_is_not_held_twice():
    db = FakeSession(rows={PendingSubscription: [PendingSubscription(source_ref="email-123", status="pending")]})

    route = record_detection(db, RecordingScheduler(), "user-1", _detection(0.5), now=FIXED_NOW)

    assert route == PENDING_REVIEW
    assert db.added == []
    assert db.commits == 0


def test_low_confidence_is_discarded():
    db = FakeSession()

    route = record_detection(db, RecordingScheduler(), "user-1", _detection(0.2))

    assert route == DISCARD
    assert db.added == []
    assert db.commits == 0


def test_delete_expired_pending_reports_count():
    expired = [PendingSubscription(status="pending"), PendingSubscription(status="pending")]
    db = FakeSession(rows={PendingSubscription: expired})

    assert delete_expired_pending(db, now=FIXED_NOW) == 2
    assert db.commits == 1


if __name__ == "__main__":
    test_high_confidence_is_created_and_scheduled()
    test_medium_confidence_is_held_for_review()
    print("All pending review tests passed.")
