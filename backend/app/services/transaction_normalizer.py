"""
Turns extracted statement rows into normalized transactions with merchant
resolution metadata. Output order always equals input order.
"""
import logging
import uuid
from datetime import date, datetime
from typing import List

from app.errors import NoTransactionsError, ai_parse_failed
from app.schemas import RawTransaction, NormalizedTransaction
from app.services.merchant_resolver import MerchantResolver

logger = logging.getLogger(__name__)


# Tried in order after ISO 8601. Month-first wins over day-first for ambiguous dates.
DATE_FORMATS = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%d.%m.%Y",
    "%d-%m-%Y",
    "%d %b %Y",
    "%b %d, %Y",
)


def parse_transaction_date(value: str) -> date:
    """Parse a statement date. Raises ValueError if no known format matches."""
    text = (value or "").strip()
    if not text:
        raise ValueError("empty date")

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    raise ValueError(f"unrecognized date format: {value!r}")


class TransactionNormalizer:
    """Assigns ids, parses dates and resolves merchants for a batch of rows."""

    def __init__(self, resolver: MerchantResolver):
        self.resolver = resolver

    def normalize(self, raw: List[RawTransaction]) -> List[NormalizedTransaction]:
        if not raw:
            raise NoTransactionsError("Cannot normalize an empty transaction batch")

        parsed_dates = []
        for index, txn in enumerate(raw):
            try:
                parsed_dates.append(parse_transaction_date(txn.date))
            except ValueError as e:
                raise ai_parse_failed(f"Row {index} has an invalid date: {e}") from e

        matches = self.resolver.resolve_many([txn.description for txn in raw])

        normalized = []
        for txn, normalized_date, match in zip(raw, parsed_dates, matches):
            normalized.append(NormalizedTransaction(
                id=str(uuid.uuid4()),
                date=txn.date,
                description=txn.description,
                amount=txn.amount,
                balance=txn.balance,
                normalized_date=normalized_date,
                merchant_name=txn.description,
                resolved_service_name=match.service_name,
                match_confidence=match.confidence,
                match_source=match.source,
            ))

        resolved = sum(1 for txn in normalized if txn.match_source != "none")
        logger.info(f"[BANK_IMPORT] Normalized {len(normalized)} transactions ({resolved} resolved to a service)")
        return normalized
