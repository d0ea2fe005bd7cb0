"""
API endpoints for bank statement import: upload for review, then confirm the
user's selection into subscriptions.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.auth import get_user_id
from app.dependencies import get_reminder_scheduler, get_statement_processor
from app.errors import BankImportError
from app.models import BankImport, Subscription
from app.schemas import (
    BankImportConfirmRequest,
    BankImportConfirmResponse,
    ProcessingResult,
    RecurringGroup,
)
from app.services.reminder_scheduler import ReminderScheduler, schedule_best_effort
from app.services.statement_processor import StatementProcessor

logger = logging.getLogger(__name__)

router = APIRouter()


def _error_response(error: BankImportError, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error.code,
            "message": error.user_message,
            "recoverable": error.recoverable,
        },
    )


def _internal_error_response(message: str = "Something went wrong. Please try again.") -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"error": "INTERNAL_ERROR", "message": message, "recoverable": True},
    )


@router.post("", response_model=ProcessingResult)
def upload_statement(
    file: Optional[UploadFile] = File(None),
    processor: StatementProcessor = Depends(get_statement_processor),
):
    """
    Process an uploaded bank statement and return transactions plus detected
    recurring groups for review. Nothing is persisted.
    """
    get_user_id()

    if file is None:
        return JSONResponse(
            status_code=400,
            content={"error": "NO_FILE", "message": "Please select a file to upload", "recoverable": True},
        )

    try:
        if file.size is not None:
            processor.validate_file(file.filename, file.content_type, file.size)
        # Read at most one byte past the limit so oversized uploads still fail validation
        data = file.file.read(processor.max_file_bytes + 1)
        return processor.process(file.filename, file.content_type, data)
    except BankImportError as e:
        logger.info(f"[BANK_IMPORT] Rejected '{file.filename}': {e.code}")
        return _error_response(e)
    except Exception:
        logger.exception(f"[BANK_IMPORT] Unexpected error processing '{file.filename}'")
        return _internal_error_response()


def next_billing_from_group(group: RecurringGroup, today: date) -> Optional[datetime]:
    """First expected charge after today, following the group's observed cadence."""
    if group.next_expected_on is None or group.last_charged_on is None:
        return None

    step = (group.next_expected_on - group.last_charged_on).days
    if step <= 0:
        return None

    expected = group.next_expected_on
    while expected <= today:
        expected += timedelta(days=step)
    return datetime.combine(expected, time.min, tzinfo=timezone.utc)


@router.post("/confirm", response_model=BankImportConfirmResponse)
def confirm_import(
    request: BankImportConfirmRequest,
    db: Session = Depends(get_db),
    scheduler: ReminderScheduler = Depends(get_reminder_scheduler),
):
    """
    Create subscriptions from the selected groups and transactions.

    Subscriptions are committed in one transaction. Reminders are scheduled
    afterwards; failures there are reported as warnings and never undo the
    created subscriptions.
    """
    user_id = get_user_id()
    today = datetime.now(timezone.utc).date()

    to_create: List[dict] = []
    seen_names = set()

    for group in request.selected_groups:
        service_name = group.resolved_service_name or group.merchant_name
        seen_names.add(service_name)
        to_create.append({
            "service_name": service_name,
            "amount": round(group.typical_amount, 2),
            "billing_cycle": "monthly" if group.billing_cycle == "unknown" else group.billing_cycle,
            "next_billing_date": next_billing_from_group(group, today),
            "bank_transaction_data": {
                "merchant_name": group.merchant_name,
                "transactions": [txn.model_dump(mode="json") for txn in group.transactions],
                "confidence": group.confidence,
                "detected_at": datetime.now(timezone.utc).isoformat(),
            },
        })

    for txn in request.selected_transactions:
        service_name = txn.resolved_service_name or txn.merchant_name
        if service_name in seen_names:
            continue
        seen_names.add(service_name)
        to_create.append({
            "service_name": service_name,
            "amount": round(abs(txn.amount), 2),
            "billing_cycle": "monthly",
            "next_billing_date": None,
            "bank_transaction_data": {
                "merchant_name": txn.merchant_name,
                "transaction": txn.model_dump(mode="json"),
                "detected_at": datetime.now(timezone.utc).isoformat(),
            },
        })

    try:
        subscriptions = [
            Subscription(
                user_id=user_id,
                status="active",
                currency=request.currency,
                detected_from="bank_import",
                **fields,
            )
            for fields in to_create
        ]
        db.add_all(subscriptions)
        db.add(BankImport(
            user_id=user_id,
            file_name=request.file_name,
            total_transactions=request.total_transactions,
            recurring_detected=request.recurring_detected,
            subscriptions_created=len(subscriptions),
        ))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(f"[BANK_IMPORT] Failed to create subscriptions for user {user_id}")
        return _internal_error_response("Failed to create subscriptions. Please try again.")

    warnings = []
    for subscription in subscriptions:
        _, warning = schedule_best_effort(scheduler, subscription)
        if warning:
            warnings.append(warning)

    logger.info(f"[BANK_IMPORT] Created {len(subscriptions)} subscriptions for user {user_id}")
    return BankImportConfirmResponse(
        success=True,
        subscriptions_created=len(subscriptions),
        subscription_ids=[subscription.id for subscription in subscriptions],
        warnings=warnings,
    )
