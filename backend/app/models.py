"""
SQLAlchemy models for users, subscriptions, reminders and merchant aliases.
"""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    Numeric,
    Text,
    Integer,
    ForeignKey,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import relationship

from app.database import Base


class User(Base):
    """User account. Authentication is owned by the frontend."""
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255))
    email_verified = Column(Boolean, default=False)
    notification_preferences = Column(JSONB, nullable=True)  # {channels: {...}, defaults: {trial: [...], billing: [...]}}
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    subscriptions = relationship("Subscription", back_populates="user")
    bank_imports = relationship("BankImport", back_populates="user")
    pending_subscriptions = relationship("PendingSubscription", back_populates="user")


class Subscription(Base):
    """
    A tracked subscription. Created manually, from email scanning or from a
    confirmed bank import.
    """
    __tablename__ = "subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    service_name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active")  # trial, active, cancelled
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), default="USD")
    billing_cycle = Column(String(20), nullable=False, default="monthly")  # weekly, monthly, yearly
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    next_billing_date = Column(DateTime(timezone=True), nullable=True)
    reminder_settings = Column(JSONB, nullable=True)  # {enabled: bool, timings: [...] | null}
    detected_from = Column(String(20), default="manual")  # manual, email, bank_import
    bank_transaction_data = Column(JSONB, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="subscriptions")
    reminders = relationship("Reminder", back_populates="subscription", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_subscriptions_user", "user_id"),
    )


class Reminder(Base):
    """
    A scheduled notification for a subscription event.
    Status moves pending -> processing -> sent | failed in the delivery worker.
    """
    __tablename__ = "reminders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    subscription_id = Column(UUID(as_uuid=True), ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    reminder_type = Column(String(30), nullable=False)  # trial_ending, billing_upcoming
    scheduled_for = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    job_id = Column(String(255), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    channels_used = Column(JSONB, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    subscription = relationship("Subscription", back_populates="reminders")

    # No unique constraint: duplicates are prevented by a check-before-create.
    __table_args__ = (
        Index("idx_reminders_lookup", "subscription_id", "reminder_type", "scheduled_for", "status"),
    )


class MerchantAlias(Base):
    """Bank description pattern mapped to a canonical service name."""
    __tablename__ = "merchant_aliases"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bank_pattern = Column(String(255), nullable=False, unique=True)  # e.g. "NETFLIX*"
    service_name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class BankImport(Base):
    """Record of a confirmed bank statement import."""
    __tablename__ = "bank_imports"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(Text, nullable=False)
    total_transactions = Column(Integer, nullable=False, default=0)
    recurring_detected = Column(Integer, nullable=False, default=0)
    subscriptions_created = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="bank_imports")


class PendingSubscription(Base):
    """
    A medium-confidence detection held for the user to approve or dismiss.
    Status moves pending -> approved | dismissed. Unreviewed rows expire.
    """
    __tablename__ = "pending_subscriptions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    service_name = Column(String(255), nullable=False)
    confidence = Column(Numeric(3, 2), nullable=False)
    amount = Column(Numeric(15, 2), nullable=True)
    currency = Column(String(3), default="USD")
    billing_cycle = Column(String(20), nullable=True)
    is_trial = Column(Boolean, default=False)
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    next_billing_date = Column(DateTime(timezone=True), nullable=True)
    source = Column(String(20), nullable=False, default="email")  # email, bank_import
    source_ref = Column(String(255), nullable=True)  # e.g. provider email id, used to skip re-detections
    raw_data = Column(JSONB, nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="pending_subscriptions")

    __table_args__ = (
        Index("idx_pending_subscriptions_user_status", "user_id", "status"),
        Index("idx_pending_subscriptions_expiry", "status", "expires_at"),
    )
