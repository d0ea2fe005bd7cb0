"""
FastAPI dependencies that wire services to their collaborators.
"""
import os

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.merchant_resolver import MerchantAliasStore, MerchantResolver, OpenAIMerchantClassifier
from app.services.recurrence_detector import RecurrenceDetector
from app.services.reminder_queue import CeleryReminderQueue
from app.services.reminder_scheduler import ReminderScheduler
from app.services.reminder_store import ReminderStore, get_notification_preferences
from app.services.statement_extractor import OpenAIStatementExtractor
from app.services.statement_processor import StatementProcessor
from app.services.transaction_normalizer import TransactionNormalizer
from app.services.ttl_cache import TTLCache

MERCHANT_ALIAS_CACHE_TTL_SECONDS = float(os.getenv("MERCHANT_ALIAS_CACHE_TTL_SECONDS", "300"))


def build_alias_cache() -> TTLCache:
    """One per process; stored on app.state by app.main."""
    return TTLCache(ttl_seconds=MERCHANT_ALIAS_CACHE_TTL_SECONDS)


def get_statement_processor(request: Request, db: Session = Depends(get_db)) -> StatementProcessor:
    resolver = MerchantResolver(
        MerchantAliasStore(db),
        OpenAIMerchantClassifier(),
        cache=request.app.state.alias_cache,
    )
    return StatementProcessor(
        extractor=OpenAIStatementExtractor(),
        normalizer=TransactionNormalizer(resolver),
        detector=RecurrenceDetector(),
    )


def get_reminder_scheduler(db: Session = Depends(get_db)) -> ReminderScheduler:
    return ReminderScheduler(
        ReminderStore(db),
        CeleryReminderQueue(),
        preferences_provider=lambda user_id: get_notification_preferences(db, user_id),
    )
