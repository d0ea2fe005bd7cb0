"""
Tests for reminder delivery status transitions.
"""
import os
import sys
from datetime import timedelta
from types import SimpleNamespace

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.schemas import NotificationChannels, NotificationPreferences
from app.services.reminder_queue import CeleryReminderQueue
from tasks.reminder_tasks import deliver_reminder
from tests.fakes import FIXED_NOW, FakeQueue, FakeReminderStore, make_subscription


class FakePublisher:
    def __init__(self, error=None):
        self.error = error
        self.events = []

    def publish_reminder_due(self, **event):
        if self.error is not None:
            raise self.error
        self.events.append(event)
        return 1


def _pending_reminder(store, reminder_type="trial_ending"):
    subscription = make_subscription(
        trial_ends_at=FIXED_NOW + timedelta(days=1),
        next_billing_date=FIXED_NOW + timedelta(days=7),
    )
    store.subscriptions[subscription.id] = subscription
    return store.create(subscription.id, reminder_type, FIXED_NOW), subscription


def _preferences(user_id):
    return NotificationPreferences(channels=NotificationChannels(email=True, push=True))


def test_deliver_marks_sent_and_publishes_event():
    store = FakeReminderStore()
    publisher = FakePublisher()
    reminder, subscription = _pending_reminder(store)

    summary = deliver_reminder(store, publisher, str(reminder.id), _preferences, now=FIXED_NOW)

    assert summary == {"reminder_id": str(reminder.id), "skipped": False, "status": "sent"}
    assert reminder.status == "sent"
    assert reminder.sent_at == FIXED_NOW
    assert reminder.channels_used == ["email", "push"]
    event = publisher.events[0]
    assert event["user_id"] == "user-1"
    assert event["service_name"] == "Netflix"
    assert event["event_at"] == subscription.trial_ends_at
    print("✓ Pending reminder delivered and marked sent")


def test_billing_reminder_points_at_next_billing_date():
    store = FakeReminderStore()
    publisher = FakePublisher()
    reminder, subscription = _pending_reminder(store, "billing_upcoming")

    deliver_reminder(store, publisher, str(reminder.id), _preferences, now=FIXED_NOW)
    assert publisher.events[0]["event_at"] == subscription.next_billing_date


@pytest.mark.parametrize("status", ["sent", "processing", "failed"])
def test_non_pending_reminder_is_skipped(status):
    store = FakeReminderStore()
    publisher = FakePublisher()
    reminder, _ = _pending_reminder(store)
    reminder.status = status

    summary = deliver_reminder(store, publisher, str(reminder.id), _preferences)

    assert summary["skipped"] is True
    assert reminder.status == status
    assert publisher.events == []


def test_publish_failure_returns_reminder_to_pending():
    store = FakeReminderStore()
    reminder, _ = _pending_reminder(store)

    with pytest.raises(ConnectionError):
        deliver_reminder(store, FakePublisher(error=ConnectionError("redis down")), str(reminder.id), _preferences)

    assert reminder.status == "pending"
    assert reminder.sent_at is None


def test_preference_lookup_failure_returns_reminder_to_pending():
    store = FakeReminderStore()
    reminder, _ = _pending_reminder(store)

    def broken_preferences(user_id):
        raise RuntimeError("database unavailable")

    with pytest.raises(RuntimeError):
        deliver_reminder(store, FakePublisher(), str(reminder.id), broken_preferences)
    assert reminder.status == "pending"


def test_second_delivery_of_same_reminder_is_skipped():
    store = FakeReminderStore()
    publisher = FakePublisher()
    reminder, _ = _pending_reminder(store)

    deliver_reminder(store, publisher, str(reminder.id), _preferences, now=FIXED_NOW)
    summary = deliver_reminder(store, publisher, str(reminder.id), _preferences, now=FIXED_NOW)

    assert summary == {"reminder_id": str(reminder.id), "skipped": True, "status": "sent"}
    assert len(publisher.events) == 1


def test_worker_losing_the_claim_does_not_publish():
    class ContendedStore(FakeReminderStore):
        """Another worker claims the reminder between our read and our update."""

        def claim(self, reminder):
            reminder.status = "processing"
            return False

    store = ContendedStore()
    publisher = FakePublisher()
    reminder, _ = _pending_reminder(store)

    summary = deliver_reminder(store, publisher, str(reminder.id), _preferences, now=FIXED_NOW)

    assert summary["skipped"] is True
    assert summary["status"] == "processing"
    assert publisher.events == []
    print("✓ Only the worker that wins the claim publishes")


def test_early_job_is_reenqueued_for_the_remaining_time():
    store = FakeReminderStore()
    queue = FakeQueue()
    publisher = FakePublisher()
    reminder, _ = _pending_reminder(store)
    early = FIXED_NOW - timedelta(days=200)

    summary = deliver_reminder(store, publisher, str(reminder.id), _preferences, now=early, queue=queue)

    assert summary["status"] == "deferred"
    assert reminder.status == "pending"
    assert publisher.events == []
    [(job_id, job)] = queue.jobs.items()
    assert reminder.job_id == job_id
    assert job["payload"] == {"reminder_id": str(reminder.id)}
    assert job["delay_ms"] == 200 * 24 * 60 * 60 * 1000


def test_job_firing_on_time_is_delivered_with_queue():
    store = FakeReminderStore()
    queue = FakeQueue()
    publisher = FakePublisher()
    reminder, _ = _pending_reminder(store)

    deliver_reminder(store, publisher, str(reminder.id), _preferences, now=FIXED_NOW, queue=queue)

    assert reminder.status == "sent"
    assert queue.jobs == {}


def test_celery_queue_caps_countdown():
    sent = []

    def send_task(name, kwargs, task_id, countdown):
        sent.append(countdown)
        return SimpleNamespace(id=task_id)

    queue = CeleryReminderQueue(app=SimpleNamespace(send_task=send_task), max_countdown_seconds=3600)

    queue.enqueue("job-far", {"reminder_id": "r1"}, 358 * 24 * 60 * 60 * 1000)
    queue.enqueue("job-near", {"reminder_id": "r2"}, 60 * 1000)
    queue.enqueue("job-past", {"reminder_id": "r3"}, -5000)

    assert sent == [3600.0, 60.0, 0.0]


def test_missing_reminder_raises_lookup_error():
    with pytest.raises(LookupError):
        deliver_reminder(FakeReminderStore(), FakePublisher(), "00000000-0000-0000-0000-000000000000", _preferences)


if __name__ == "__main__":
    test_deliver_marks_sent_and_publishes_event()
    test_publish_failure_returns_reminder_to_pending()
    print("All reminder delivery tests passed.")
