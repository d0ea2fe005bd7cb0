"""
Recurring charge detection over a batch of normalized transactions.

Core approach: group debits by resolved service (falling back to the raw
merchant text), then score each group on amount consistency, cadence and
volume. The score is an additive heuristic, not a probability.

Usage:
    detector = RecurrenceDetector()
    groups = detector.detect(normalized_transactions)
"""
import os
import math
import logging
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass
from datetime import date, timedelta

from app.schemas import NormalizedTransaction, RecurringGroup

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionPolicy:
    """
    Tunable scoring table.

    Maximum score is baseline + all bonuses (1.0 with the defaults). A group is
    recurring when its score reaches `recurring_threshold`.
    """
    baseline: float = 0.5
    amount_consistency_bonus: float = 0.2
    cycle_known_bonus: float = 0.2
    volume_bonus: float = 0.1
    recurring_threshold: float = 0.6
    amount_tolerance: float = 0.10
    volume_min_transactions: int = 3
    min_transactions: int = 2

    @classmethod
    def from_env(cls) -> "DetectionPolicy":
        return cls(
            baseline=float(os.getenv("RECURRING_BASELINE", "0.5")),
            amount_consistency_bonus=float(os.getenv("RECURRING_AMOUNT_BONUS", "0.2")),
            cycle_known_bonus=float(os.getenv("RECURRING_CYCLE_BONUS", "0.2")),
            volume_bonus=float(os.getenv("RECURRING_VOLUME_BONUS", "0.1")),
            recurring_threshold=float(os.getenv("RECURRING_THRESHOLD", "0.6")),
            amount_tolerance=float(os.getenv("RECURRING_AMOUNT_TOLERANCE", "0.10")),
            volume_min_transactions=int(os.getenv("RECURRING_VOLUME_MIN_TRANSACTIONS", "3")),
        )


@dataclass
class PatternAnalysis:
    """Result of analyzing one candidate group."""
    is_recurring: bool
    typical_amount: float
    cycle: str
    confidence: float
    amount_consistent: bool = False
    interval_days: Optional[float] = None
    transactions: Optional[List[NormalizedTransaction]] = None


def days_between(first: date, second: date) -> int:
    """Whole days between two dates, rounded up."""
    return math.ceil(abs((second - first).total_seconds()) / 86400)


class RecurrenceDetector:
    """
    Detects recurring charges in an import batch.

    Algorithm:
    1. Keep debits only (amount < 0)
    2. Group by resolved service name, else by raw merchant text
    3. Drop groups with fewer than two observations
    4. Analyze each group: amount spread, average interval -> cycle, score
    5. Emit recurring groups sorted by confidence, highest first
    """

    # Average-interval ranges (inclusive) for each billing cycle
    CYCLE_RANGES = {
        'weekly': (5, 9),
        'monthly': (26, 35),
        'yearly': (350, 380),
    }

    def __init__(self, policy: Optional[DetectionPolicy] = None):
        self.policy = policy or DetectionPolicy.from_env()

    def classify_cycle(self, intervals: List[int]) -> Tuple[str, Optional[float]]:
        """Return (cycle, average interval) for a list of day gaps."""
        if not intervals:
            return "unknown", None

        avg_interval = sum(intervals) / len(intervals)
        for cycle, (min_days, max_days) in self.CYCLE_RANGES.items():
            if min_days <= avg_interval <= max_days:
                return cycle, avg_interval
        return "unknown", avg_interval

    def analyze_pattern(self, transactions: List[NormalizedTransaction]) -> PatternAnalysis:
        """
        Score one group of transactions.

        Groups with fewer than two members are never recurring.
        """
        policy = self.policy
        if len(transactions) < policy.min_transactions:
            return PatternAnalysis(is_recurring=False, typical_amount=0.0, cycle="unknown", confidence=0.0)

        sorted_txns = sorted(transactions, key=lambda t: t.normalized_date)

        amounts = [abs(t.amount) for t in sorted_txns]
        avg_amount = sum(amounts) / len(amounts)
        amount_spread = max(amounts) - min(amounts)
        amount_consistent = amount_spread < avg_amount * policy.amount_tolerance

        intervals = [
            days_between(sorted_txns[i - 1].normalized_date, sorted_txns[i].normalized_date)
            for i in range(1, len(sorted_txns))
        ]
        cycle, avg_interval = self.classify_cycle(intervals)

        confidence = policy.baseline
        if amount_consistent:
            confidence += policy.amount_consistency_bonus
        if cycle != "unknown":
            confidence += policy.cycle_known_bonus
        if len(sorted_txns) >= policy.volume_min_transactions:
            confidence += policy.volume_bonus
        # Rounded so the additive constants compare exactly against the threshold
        confidence = round(confidence, 6)

        return PatternAnalysis(
            is_recurring=confidence >= policy.recurring_threshold,
            typical_amount=avg_amount,
            cycle=cycle,
            confidence=confidence,
            amount_consistent=amount_consistent,
            interval_days=avg_interval,
            transactions=sorted_txns,
        )

    @staticmethod
    def group_by_merchant(transactions: List[NormalizedTransaction]) -> Dict[str, List[NormalizedTransaction]]:
        groups: Dict[str, List[NormalizedTransaction]] = {}
        for txn in transactions:
            key = txn.resolved_service_name or txn.merchant_name
            groups.setdefault(key, []).append(txn)
        return groups

    def detect(self, transactions: List[NormalizedTransaction]) -> List[RecurringGroup]:
        debits = [t for t in transactions if t.amount < 0]
        groups = self.group_by_merchant(debits)

        recurring: List[RecurringGroup] = []
        for key, txns in groups.items():
            if len(txns) < self.policy.min_transactions:
                continue

            analysis = self.analyze_pattern(txns)
            if not analysis.is_recurring:
                logger.debug(f"Group '{key}' not recurring (confidence {analysis.confidence})")
                continue

            sorted_txns = analysis.transactions
            last_charged_on = sorted_txns[-1].normalized_date
            next_expected_on = None
            if analysis.cycle != "unknown" and analysis.interval_days:
                next_expected_on = last_charged_on + timedelta(days=round(analysis.interval_days))

            first = txns[0]
            recurring.append(RecurringGroup(
                merchant_name=first.merchant_name,
                resolved_service_name=first.resolved_service_name,
                transactions=sorted_txns,
                typical_amount=analysis.typical_amount,
                billing_cycle=analysis.cycle,
                confidence=analysis.confidence,
                last_charged_on=last_charged_on,
                next_expected_on=next_expected_on,
            ))

        recurring.sort(key=lambda g: g.confidence, reverse=True)
        logger.info(
            f"[BANK_IMPORT] Detected {len(recurring)} recurring groups "
            f"from {len(debits)} debits in {len(groups)} merchant groups"
        )
        return recurring
