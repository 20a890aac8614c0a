"""
Data models for the net worth alerting service.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Any


class AccountCategory(str, Enum):
    """Account grouping used to split assets from liabilities."""

    BANKING = "banking"
    INVESTMENT = "investment"
    REAL_ESTATE = "real_estate"
    VEHICLES_AND_PROPERTY = "vehicles_and_property"
    BUSINESS = "business"
    SECURED_DEBT = "secured_debt"
    UNSECURED_DEBT = "unsecured_debt"
    OTHER_LIABILITIES = "other_liabilities"

    @property
    def is_asset(self) -> bool:
        return self in _ASSET_CATEGORIES

    @property
    def is_liability(self) -> bool:
        return not self.is_asset


_ASSET_CATEGORIES = {
    AccountCategory.BANKING,
    AccountCategory.INVESTMENT,
    AccountCategory.REAL_ESTATE,
    AccountCategory.VEHICLES_AND_PROPERTY,
    AccountCategory.BUSINESS,
}


class EmailQueueStatus(str, Enum):
    """Delivery state of a queued email."""

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            EmailQueueStatus.SENT,
            EmailQueueStatus.FAILED,
            EmailQueueStatus.CANCELLED,
        )


class JobType:
    """Job ledger identifiers."""

    ALERT_PROCESSING = "alert-processing"
    MONTHLY_SNAPSHOT = "monthly-snapshot"
    SNAPSHOT_EMAIL = "snapshot-email"
    EMAIL_QUEUE = "email-queue-processing"

    ALL = [ALERT_PROCESSING, MONTHLY_SNAPSHOT, SNAPSHOT_EMAIL, EMAIL_QUEUE]


@dataclass
class User:
    """Notification recipient."""

    id: Optional[int] = None
    email: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class Account:
    """A tracked asset or liability account."""

    user_id: int
    name: str
    category: AccountCategory
    current_balance: Decimal = Decimal("0")
    is_active: bool = True
    institution: Optional[str] = None
    id: Optional[int] = None

    @property
    def is_asset(self) -> bool:
        return self.category.is_asset

    @property
    def is_liability(self) -> bool:
        return self.category.is_liability


@dataclass
class BalanceRecord:
    """Historical balance of an account."""

    account_id: int
    balance: Decimal
    recorded_at: datetime
    notes: Optional[str] = None
    id: Optional[int] = None


@dataclass
class AlertConfiguration:
    """Per-user alert thresholds and dedup state."""

    user_id: int
    alerts_enabled: bool = True
    net_worth_change_threshold_percent: Decimal = Decimal("5")
    cash_runway_months: int = 3  # 0 disables the runway alert
    monthly_snapshot_enabled: bool = True
    last_net_worth_alert_sent_at: Optional[datetime] = None
    last_cash_runway_alert_sent_at: Optional[datetime] = None
    last_monthly_snapshot_sent_at: Optional[datetime] = None
    # Baseline for the next net worth comparison, not the month start value
    last_alerted_net_worth: Optional[Decimal] = None
    id: Optional[int] = None


@dataclass
class MonthlySnapshot:
    """Financial summary of one user for one calendar month."""

    user_id: int
    month: date
    net_worth: Decimal
    total_assets: Decimal
    total_liabilities: Decimal
    net_worth_delta: Decimal = Decimal("0")
    net_worth_delta_percent: Optional[Decimal] = None
    biggest_contributor_name: Optional[str] = None
    biggest_contributor_delta: Decimal = Decimal("0")
    biggest_contributor_positive: bool = True
    interpretation: str = ""
    email_sent: bool = False
    email_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class EmailQueueEntry:
    """Outbound email with its delivery state."""

    to_email: str
    subject: str
    html_body: str
    status: EmailQueueStatus = EmailQueueStatus.PENDING
    attempt_count: int = 0
    max_attempts: int = 3
    last_attempt_at: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    idempotency_key: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class ProcessedJob:
    """Job ledger entry for a finished background job run."""

    job_type: str
    job_key: str
    processed_at: datetime
    success: bool = True
    error_message: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
