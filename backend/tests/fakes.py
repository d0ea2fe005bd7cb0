"""
In-memory collaborators for unit tests: alias store, classifier, extractor,
reminder store, work queue, database session and a settable clock.
"""
import uuid
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from app.services.merchant_resolver import AliasRule


class FakeAliasStore:
    def __init__(self, aliases=None, error: Optional[Exception] = None):
        self.aliases = list(aliases or [])
        self.error = error
        self.calls = 0

    def list_aliases(self) -> List[AliasRule]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [AliasRule.build(pattern, service_name) for pattern, service_name in self.aliases]


class FakeClassifier:
    def __init__(self, reply: Any = None, error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[str] = []

    def classify(self, description: str):
        self.calls.append(description)
        if self.error is not None:
            raise self.error
        if callable(self.reply):
            return self.reply(description)
        return self.reply


class FakeExtractor:
    def __init__(self, rows=None, error: Optional[Exception] = None):
        self.rows = rows or []
        self.error = error
        self.calls = 0

    def extract(self, content: str):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.rows)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeReminderStore:
    def __init__(self, fail_set_job_id: bool = False, fail_delete: bool = False):
        self.reminders: Dict[str, SimpleNamespace] = {}
        self.subscriptions: Dict[Any, Any] = {}
        self.fail_set_job_id = fail_set_job_id
        self.fail_delete = fail_delete
        self.deleted: List[str] = []

    def get(self, reminder_id):
        return self.reminders.get(str(reminder_id))

    def find_pending(self, subscription_id, reminder_type, scheduled_for):
        for reminder in self.reminders.values():
            if (
                reminder.subscription_id == subscription_id
                and reminder.reminder_type == reminder_type
                and reminder.scheduled_for == scheduled_for
                and reminder.status == "pending"
            ):
                return reminder
        return None

    def list_pending_for_subscription(self, subscription_id):
        return [
            reminder for reminder in self.reminders.values()
            if reminder.subscription_id == subscription_id and reminder.status == "pending"
        ]

    def pending(self) -> List[SimpleNamespace]:
        return [reminder for reminder in self.reminders.values() if reminder.status == "pending"]

    def create(self, subscription_id, reminder_type, scheduled_for):
        reminder = SimpleNamespace(
            id=uuid.uuid4(),
            subscription_id=subscription_id,
            subscription=self.subscriptions.get(subscription_id),
            reminder_type=reminder_type,
            scheduled_for=scheduled_for,
            status="pending",
            job_id=None,
            sent_at=None,
            channels_used=None,
        )
        self.reminders[str(reminder.id)] = reminder
        return reminder

    def set_job_id(self, reminder, job_id):
        if self.fail_set_job_id:
            raise RuntimeError("database unavailable")
        reminder.job_id = job_id

    def claim(self, reminder):
        if reminder.status != "pending":
            return False
        reminder.status = "processing"
        return True

    def set_status(self, reminder, status, sent_at=None):
        reminder.status = status
        if sent_at is not None:
            reminder.sent_at = sent_at

    def delete(self, reminder):
        if self.fail_delete:
            raise RuntimeError("database unavailable")
        self.reminders.pop(str(reminder.id), None)
        self.deleted.append(str(reminder.id))


class FakeQueue:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.jobs: Dict[str, dict] = {}
        self.removed: List[str] = []

    def enqueue(self, job_id, payload, delay_ms):
        if self.error is not None:
            raise self.error
        self.jobs[job_id] = {"payload": payload, "delay_ms": delay_ms}
        return job_id

    def remove(self, job_id):
        self.jobs.pop(job_id, None)
        self.removed.append(job_id)

    def fetch(self, job_id):
        return "PENDING" if job_id in self.jobs else None


class FakeQuery:
    def __init__(self, rows):
        self.rows = rows

    def filter(self, *args):
        return self

    def order_by(self, *args):
        return self

    def first(self):
        return self.rows[0] if self.rows else None

    def all(self):
        return list(self.rows)

    def delete(self, synchronize_session=None):
        count = len(self.rows)
        del self.rows[:]
        return count


class FakeSession:
    """Just enough of a SQLAlchemy session for the routes under test."""

    def __init__(self, rows=None, fail_commit=False):
        self.rows = rows or {}
        self.added = []
        self.deleted = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_commit = fail_commit

    def query(self, model):
        return FakeQuery(self.rows.setdefault(model, []))

    def add(self, obj):
        self.added.append(obj)

    def add_all(self, objs):
        self.added.extend(objs)

    def delete(self, obj):
        self.deleted.append(obj)

    def refresh(self, obj):
        pass

    def commit(self):
        if self.fail_commit:
            raise RuntimeError("database unavailable")
        for obj in self.added:
            if getattr(obj, "id", None) is None:
                obj.id = uuid.uuid4()
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


def make_subscription(**overrides) -> SimpleNamespace:
    fields = {
        "id": uuid.uuid4(),
        "user_id": "user-1",
        "service_name": "Netflix",
        "status": "active",
        "trial_ends_at": None,
        "next_billing_date": None,
        "reminder_settings": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
