"""
Typed errors for the bank statement import pipeline.

Every error carries a machine code, an internal message, a user-facing message
and a recoverable flag. Routes translate them into client responses with
`to_dict()`.
"""
from typing import Optional


class BankImportError(Exception):
    """Base error for validation, extraction and pipeline failures."""

    def __init__(
        self,
        message: str,
        code: str,
        user_message: str,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.user_message = user_message
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.user_message,
            "recoverable": self.recoverable,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NoTransactionsError(BankImportError):
    """Raised when a statement yields no transactions to work with."""

    def __init__(self, message: str = "No transactions found"):
        super().__init__(
            message,
            "NO_TRANSACTIONS",
            "No transactions found in this file. Please check the file contains transaction data.",
            True,
        )


class ReminderSchedulingError(Exception):
    """Raised when a reminder could not be queued. Compensation already ran."""

    def __init__(self, message: str, subscription_id: Optional[str] = None):
        super().__init__(message)
        self.subscription_id = subscription_id


def invalid_file_type() -> BankImportError:
    return BankImportError(
        "Invalid file type",
        "INVALID_FILE_TYPE",
        "Please upload a CSV file. Other formats (PDF, OFX) are not yet supported.",
    )


def file_too_large() -> BankImportError:
    return BankImportError(
        "File exceeds size limit",
        "FILE_TOO_LARGE",
        "File must be under 5MB. Try exporting a shorter date range.",
    )


def empty_file() -> BankImportError:
    return BankImportError(
        "Empty file",
        "EMPTY_FILE",
        "The uploaded file is empty. Please select a valid bank statement.",
    )


def ai_parse_failed(detail: str = "AI parsing failed") -> BankImportError:
    return BankImportError(
        detail,
        "AI_PARSE_FAILED",
        "We had trouble understanding this format. Please try a different export option from your bank.",
    )


def extraction_failed(detail: str = "Extraction failed") -> BankImportError:
    return BankImportError(
        detail,
        "EXTRACTION_FAILED",
        "We could not read transactions from this file. Please try a different export option from your bank.",
    )


def internal_error(detail: str = "Internal error") -> BankImportError:
    return BankImportError(
        detail,
        "INTERNAL_ERROR",
        "Something went wrong. Please try again.",
    )
