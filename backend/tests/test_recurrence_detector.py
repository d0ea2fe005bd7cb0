"""
Tests for recurring charge detection and its scoring policy.
"""
import os
import sys
import uuid
from datetime import date, timedelta

import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.schemas import NormalizedTransaction
from app.services.recurrence_detector import DetectionPolicy, RecurrenceDetector, days_between


def txn(on: date, description: str, amount: float, service: str = None) -> NormalizedTransaction:
    return NormalizedTransaction(
        id=str(uuid.uuid4()),
        date=on.isoformat(),
        description=description,
        amount=amount,
        normalized_date=on,
        merchant_name=description,
        resolved_service_name=service,
        match_confidence=0.95 if service else 0.0,
        match_source="alias_db" if service else "none",
    )


def series(start: date, every_days: int, count: int, description: str, amounts, service: str = None):
    if not isinstance(amounts, (list, tuple)):
        amounts = [amounts] * count
    return [
        txn(start + timedelta(days=every_days * i), description, amounts[i], service)
        for i in range(count)
    ]


@pytest.fixture
def detector():
    return RecurrenceDetector(DetectionPolicy())


def test_single_transaction_is_never_recurring(detector):
    groups = detector.detect([txn(date(2026, 1, 15), "NETFLIX.COM", -15.99, "Netflix")])
    assert groups == []
    print("✓ One observation is not a pattern")


@pytest.mark.parametrize("interval, cycle", [
    (7, "weekly"),
    (30, "monthly"),
    (365, "yearly"),
    (45, "unknown"),
])
def test_cycle_classification_boundaries(detector, interval, cycle):
    assert detector.classify_cycle([interval, interval])[0] == cycle


@pytest.mark.parametrize("interval, cycle", [
    (5, "weekly"), (9, "weekly"), (10, "unknown"),
    (26, "monthly"), (35, "monthly"), (36, "unknown"),
    (350, "yearly"), (380, "yearly"), (381, "unknown"),
])
def test_cycle_ranges_are_inclusive(detector, interval, cycle):
    assert detector.classify_cycle([interval])[0] == cycle


def test_classify_cycle_without_intervals_is_unknown(detector):
    assert detector.classify_cycle([]) == ("unknown", None)


def test_days_between_rounds_up_and_ignores_order():
    assert days_between(date(2026, 1, 1), date(2026, 1, 31)) == 30
    assert days_between(date(2026, 1, 31), date(2026, 1, 1)) == 30


def test_confident_group_is_listed_before_weak_group(detector):
    group_a = series(date(2025, 11, 15), 30, 3, "NETFLIX.COM", -15.99, "Netflix")
    group_b = [
        txn(date(2025, 11, 3), "CORNER STORE", -5.00),
        txn(date(2025, 12, 18), "CORNER STORE", -42.00),
    ]

    groups = detector.detect(group_b + group_a)

    assert groups[0].resolved_service_name == "Netflix"
    assert groups[0].confidence == 1.0
    # Inconsistent amounts with no cycle stay below the recurring threshold
    assert all(g.merchant_name != "CORNER STORE" for g in groups)
    print("✓ Strong groups sort ahead of weak ones")


def test_groups_sorted_by_descending_confidence(detector):
    strong = series(date(2025, 10, 1), 30, 3, "SPOTIFY USA", -9.99, "Spotify")
    # Monthly but amounts vary: 0.5 + 0.2 cycle = 0.7
    weaker = [
        txn(date(2025, 11, 1), "GYM CLUB", -20.00),
        txn(date(2025, 12, 1), "GYM CLUB", -35.00),
    ]

    groups = detector.detect(weaker + strong)

    assert [g.merchant_name for g in groups] == ["SPOTIFY USA", "GYM CLUB"]
    assert groups[0].confidence > groups[1].confidence
    assert groups[1].confidence == 0.7


def test_credits_are_ignored(detector):
    salary = series(date(2025, 10, 28), 30, 3, "ACME PAYROLL", 2500.00)
    assert detector.detect(salary) == []


def test_groups_key_on_resolved_service_name(detector):
    txns = [
        txn(date(2025, 11, 15), "NETFLIX.COM 800-123", -15.99, "Netflix"),
        txn(date(2025, 12, 15), "NETFLIX.COM 800-456", -15.99, "Netflix"),
    ]
    groups = detector.detect(txns)
    assert len(groups) == 1
    assert len(groups[0].transactions) == 2


def test_group_reports_dates_and_typical_amount(detector):
    groups = detector.detect(series(date(2025, 11, 15), 30, 3, "NETFLIX.COM", [-15.99, -15.99, -16.49], "Netflix"))

    group = groups[0]
    assert group.billing_cycle == "monthly"
    assert group.typical_amount == pytest.approx((15.99 + 15.99 + 16.49) / 3)
    assert group.last_charged_on == date(2026, 1, 14)
    assert group.next_expected_on == date(2026, 2, 13)
    assert [t.normalized_date for t in group.transactions] == sorted(t.normalized_date for t in group.transactions)


def test_amount_tolerance_is_ten_percent_of_average(detector):
    consistent = detector.analyze_pattern(series(date(2025, 1, 1), 30, 2, "A", [-10.0, -10.9]))
    inconsistent = detector.analyze_pattern(series(date(2025, 1, 1), 30, 2, "B", [-10.0, -11.2]))
    assert consistent.amount_consistent is True
    assert inconsistent.amount_consistent is False


def test_policy_threshold_controls_recurrence():
    strict = RecurrenceDetector(DetectionPolicy(recurring_threshold=0.95))
    txns = series(date(2025, 11, 1), 30, 2, "GYM CLUB", [-20.0, -20.0])

    # 0.5 + 0.2 + 0.2 = 0.9, below the strict threshold
    assert strict.detect(txns) == []
    assert RecurrenceDetector(DetectionPolicy()).detect(txns)[0].confidence == 0.9


def test_unknown_cycle_has_no_next_expected_date(detector):
    txns = series(date(2025, 1, 1), 60, 3, "QUARTERLY-ISH", -50.0)
    groups = detector.detect(txns)
    assert groups[0].billing_cycle == "unknown"
    assert groups[0].next_expected_on is None


def test_two_consistent_charges_without_cycle_still_recur(detector):
    # 0.5 base + 0.2 consistent amounts, no cycle and no third-charge bonus
    txns = [
        txn(date(2025, 1, 1), "ODD CADENCE CO", -10.00),
        txn(date(2025, 3, 2), "ODD CADENCE CO", -10.00),
    ]

    groups = detector.detect(txns)

    assert len(groups) == 1
    assert groups[0].billing_cycle == "unknown"
    assert groups[0].confidence == pytest.approx(0.7)
    assert groups[0].next_expected_on is None


if __name__ == "__main__":
    d = RecurrenceDetector(DetectionPolicy())
    test_single_transaction_is_never_recurring(d)
    test_confident_group_is_listed_before_weak_group(d)
    print("All recurrence detector tests passed.")
