from pydantic import BaseModel, ConfigDict, Field, model_validator
from datetime import date, datetime
from typing import Optional, List, Literal
from uuid import UUID


BillingCycle = Literal["weekly", "monthly", "yearly", "unknown"]
MatchSource = Literal["alias_db", "probabilistic", "none"]


# Bank import schemas
class RawTransaction(BaseModel):
    """One ledger line as extracted from a statement. Negative amount = debit."""
    date: str
    description: str
    amount: float
    balance: Optional[float] = None


class MerchantMatch(BaseModel):
    service_name: Optional[str] = None
    confidence: float = 0.0
    source: MatchSource = "none"


class NormalizedTransaction(RawTransaction):
    id: str
    normalized_date: date
    merchant_name: str
    resolved_service_name: Optional[str] = None
    match_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    match_source: MatchSource = "none"

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_match_invariant(self):
        unmatched = self.resolved_service_name is None and self.match_confidence == 0
        if unmatched != (self.match_source == "none"):
            raise ValueError(
                "match_source must be 'none' exactly when there is no resolved service and zero confidence"
            )
        return self


class RecurringGroup(BaseModel):
    merchant_name: str
    resolved_service_name: Optional[str] = None
    transactions: List[NormalizedTransaction]
    typical_amount: float
    billing_cycle: BillingCycle
    confidence: float
    last_charged_on: Optional[date] = None
    next_expected_on: Optional[date] = None


class ProcessingStats(BaseModel):
    total_transactions: int
    recurring_detected: int


class ProcessingResult(BaseModel):
    transactions: List[NormalizedTransaction]
    recurring_groups: List[RecurringGroup]
    stats: ProcessingStats


class BankImportErrorResponse(BaseModel):
    error: str
    message: str
    recoverable: bool


class BankImportConfirmRequest(BaseModel):
    file_name: str
    selected_groups: List[RecurringGroup] = []
    selected_transactions: List[NormalizedTransaction] = []
    total_transactions: int = 0
    recurring_detected: int = 0
    currency: str = "USD"


class BankImportConfirmResponse(BaseModel):
    success: bool
    subscriptions_created: int
    subscription_ids: List[UUID]
    warnings: List[str] = []


# Notification schemas
class ReminderSettings(BaseModel):
    """Per-subscription override of the user's notification defaults."""
    enabled: bool = True
    timings: Optional[List[str]] = None


class NotificationChannels(BaseModel):
    email: bool = True
    push: bool = False


class NotificationDefaults(BaseModel):
    trial: List[str] = ["24h", "1h"]
    billing: List[str] = ["7d", "1d"]


class NotificationPreferences(BaseModel):
    channels: NotificationChannels = NotificationChannels()
    defaults: NotificationDefaults = NotificationDefaults()


DEFAULT_NOTIFICATION_PREFERENCES = NotificationPreferences()

TRIAL_TIMING_OPTIONS = ["24h", "12h", "1h"]
BILLING_TIMING_OPTIONS = ["14d", "7d", "3d", "1d"]


# Subscription schemas
class SubscriptionDatesUpdate(BaseModel):
    trial_ends_at: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None


class ReminderResponse(BaseModel):
    id: UUID
    subscription_id: UUID
    reminder_type: str
    scheduled_for: datetime
    status: str
    job_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionRescheduleResponse(BaseModel):
    subscription_id: UUID
    cancelled: int
    reminders: List[ReminderResponse]


class SubscriptionCreate(BaseModel):
    """Manual entry."""
    service_name: str = Field(min_length=1, max_length=255)
    status: Literal["trial", "active"] = "active"
    billing_cycle: Literal["weekly", "monthly", "yearly"] = "monthly"
    amount: Optional[float] = Field(default=None, gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    trial_ends_at: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    reminder_settings: Optional[ReminderSettings] = None


class SubscriptionResponse(BaseModel):
    id: UUID
    service_name: str
    status: str
    amount: float
    currency: Optional[str] = None
    billing_cycle: str
    trial_ends_at: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    detected_from: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SubscriptionCreateResponse(BaseModel):
    subscription: SubscriptionResponse
    reminders_scheduled: int
    warnings: List[str] = []


# Pending review schemas
class DetectedSubscription(BaseModel):
    """A subscription inferred from an external source, with its confidence."""
    service_name: str = Field(min_length=1, max_length=255)
    confidence: float = Field(ge=0, le=1)
    amount: Optional[float] = None
    currency: str = "USD"
    billing_cycle: Optional[BillingCycle] = None
    is_trial: bool = False
    trial_ends_at: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    source: Literal["email", "bank_import"] = "email"
    source_ref: Optional[str] = None
    raw_data: Optional[dict] = None


class PendingSubscriptionResponse(BaseModel):
    id: UUID
    service_name: str
    confidence: float
    amount: Optional[float] = None
    currency: Optional[str] = None
    is_trial: bool = False
    trial_ends_at: Optional[datetime] = None
    next_billing_date: Optional[datetime] = None
    source: str
    status: str
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PendingSubscriptionAction(BaseModel):
    pending_id: UUID


class PendingApproveResponse(BaseModel):
    success: bool
    subscription_id: UUID
    warnings: List[str] = []
