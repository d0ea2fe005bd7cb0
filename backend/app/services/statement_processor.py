"""
Bank statement import pipeline: validate -> extract -> normalize -> detect.

Usage:
    processor = StatementProcessor(extractor, normalizer, detector)
    result = processor.process("statement.csv", "text/csv", data)
"""
import os
import logging
from typing import Any, Optional

from app.errors import (
    BankImportError,
    NoTransactionsError,
    ai_parse_failed,
    empty_file,
    extraction_failed,
    file_too_large,
    internal_error,
    invalid_file_type,
)
from app.schemas import ProcessingResult, ProcessingStats
from app.services.recurrence_detector import RecurrenceDetector
from app.services.statement_extractor import StatementParseError
from app.services.transaction_normalizer import TransactionNormalizer

logger = logging.getLogger(__name__)


MAX_FILE_BYTES = int(os.getenv("BANK_IMPORT_MAX_FILE_BYTES", str(5 * 1024 * 1024)))

CSV_CONTENT_TYPES = {
    "text/csv",
    "application/csv",
    "text/comma-separated-values",
    "text/plain",
    "application/vnd.ms-excel",
    "application/octet-stream",
}


def decode_statement(data: bytes) -> str:
    """Decode statement bytes as UTF-8 (BOM tolerated), falling back to latin-1."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


class StatementProcessor:
    """Entry point for bank statement imports. All failures raise BankImportError."""

    def __init__(
        self,
        extractor: Any,
        normalizer: TransactionNormalizer,
        detector: Optional[RecurrenceDetector] = None,
        max_file_bytes: int = MAX_FILE_BYTES,
    ):
        self.extractor = extractor
        self.normalizer = normalizer
        self.detector = detector or RecurrenceDetector()
        self.max_file_bytes = max_file_bytes

    def validate_file(self, filename: Optional[str], content_type: Optional[str], size: int) -> None:
        """Reject non-CSV and oversized files before anything is read or extracted."""
        if not filename or not filename.lower().endswith(".csv"):
            raise invalid_file_type()

        if content_type:
            base_type = content_type.split(";")[0].strip().lower()
            if base_type not in CSV_CONTENT_TYPES:
                raise invalid_file_type()

        if size > self.max_file_bytes:
            raise file_too_large()

    def process(self, filename: Optional[str], content_type: Optional[str], data: bytes) -> ProcessingResult:
        self.validate_file(filename, content_type, len(data))

        text = decode_statement(data)
        if not text.strip():
            raise empty_file()

        logger.info(f"[BANK_IMPORT] Processing '{filename}' ({len(data)} bytes)")
        return self.process_text(text)

    def process_text(self, text: str) -> ProcessingResult:
        if not text or not text.strip():
            raise empty_file()

        try:
            raw_transactions = self.extractor.extract(text)
        except BankImportError:
            raise
        except StatementParseError as e:
            logger.warning(f"[BANK_IMPORT] Extraction reply could not be parsed: {e}")
            raise ai_parse_failed(str(e)) from e
        except Exception as e:
            logger.exception("[BANK_IMPORT] Extraction service failed")
            raise extraction_failed(f"{type(e).__name__}: {e}") from e

        if not raw_transactions:
            raise NoTransactionsError()

        try:
            transactions = self.normalizer.normalize(raw_transactions)
            recurring_groups = self.detector.detect(transactions)
        except BankImportError:
            raise
        except Exception as e:
            logger.exception(f"[BANK_IMPORT] Unexpected failure after extracting {len(raw_transactions)} rows")
            raise internal_error(f"{type(e).__name__}: {e}") from e

        return ProcessingResult(
            transactions=transactions,
            recurring_groups=recurring_groups,
            stats=ProcessingStats(
                total_transactions=len(transactions),
                recurring_detected=len(recurring_groups),
            ),
        )
