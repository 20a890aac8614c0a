"""
Data model tests.
Tests for dataclass models, enums and their defaults.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from networth_alerts.database.models import (
    Account,
    AccountCategory,
    AlertConfiguration,
    EmailQueueEntry,
    EmailQueueStatus,
    JobType,
    MonthlySnapshot,
    ProcessedJob,
    User,
)


class TestAccountCategory:
    """Test asset and liability classification."""

    @pytest.mark.parametrize(
        "category",
        [
            AccountCategory.BANKING,
            AccountCategory.INVESTMENT,
            AccountCategory.REAL_ESTATE,
            AccountCategory.VEHICLES_AND_PROPERTY,
            AccountCategory.BUSINESS,
        ],
    )
    def test_asset_categories(self, category):
        """Should classify asset categories as assets."""
        assert category.is_asset is True
        assert category.is_liability is False

    @pytest.mark.parametrize(
        "category",
        [
            AccountCategory.SECURED_DEBT,
            AccountCategory.UNSECURED_DEBT,
            AccountCategory.OTHER_LIABILITIES,
        ],
    )
    def test_liability_categories(self, category):
        """Should classify debt categories as liabilities."""
        assert category.is_liability is True
        assert category.is_asset is False

    def test_category_from_string(self):
        """Should parse stored category values."""
        assert AccountCategory("real_estate") is AccountCategory.REAL_ESTATE


class TestAccountModel:
    """Test Account model."""

    def test_create_account_defaults(self):
        """Should default to an active account with zero balance."""
        account = Account(user_id=1, name="Checking", category=AccountCategory.BANKING)
        assert account.current_balance == Decimal("0")
        assert account.is_active is True
        assert account.id is None

    def test_account_classification(self):
        """Should expose the category's asset/liability flag."""
        mortgage = Account(user_id=1, name="Mortgage", category=AccountCategory.SECURED_DEBT)
        assert mortgage.is_liability is True
        assert mortgage.is_asset is False


class TestEmailQueueStatus:
    """Test queue status enum."""

    def test_terminal_states(self):
        """Should treat sent, failed and cancelled as terminal."""
        assert EmailQueueStatus.SENT.is_terminal
        assert EmailQueueStatus.FAILED.is_terminal
        assert EmailQueueStatus.CANCELLED.is_terminal

    def test_non_terminal_states(self):
        """Should treat pending and processing as active."""
        assert not EmailQueueStatus.PENDING.is_terminal
        assert not EmailQueueStatus.PROCESSING.is_terminal


class TestAlertConfigurationModel:
    """Test AlertConfiguration model."""

    def test_defaults(self):
        """Should enable everything with the default thresholds."""
        config = AlertConfiguration(user_id=1)
        assert config.alerts_enabled is True
        assert config.net_worth_change_threshold_percent == Decimal("5")
        assert config.cash_runway_months == 3
        assert config.monthly_snapshot_enabled is True
        assert config.last_alerted_net_worth is None
        assert config.last_cash_runway_alert_sent_at is None


class TestMonthlySnapshotModel:
    """Test MonthlySnapshot model."""

    def test_create_snapshot(self):
        """Should start unsent with no percent change."""
        snapshot = MonthlySnapshot(
            user_id=1,
            month=date(2024, 2, 1),
            net_worth=Decimal("15000"),
            total_assets=Decimal("20000"),
            total_liabilities=Decimal("5000"),
        )
        assert snapshot.email_sent is False
        assert snapshot.email_sent_at is None
        assert snapshot.net_worth_delta_percent is None


class TestEmailQueueEntryModel:
    """Test EmailQueueEntry model."""

    def test_defaults(self):
        """Should start pending with no attempts."""
        entry = EmailQueueEntry(to_email="a@b.com", subject="Hi", html_body="<p>Hi</p>")
        assert entry.status == EmailQueueStatus.PENDING
        assert entry.attempt_count == 0
        assert entry.max_attempts == 3


class TestProcessedJobModel:
    """Test ProcessedJob model."""

    def test_metadata_not_shared(self):
        """Should give each job its own metadata dict."""
        now = datetime.now(timezone.utc)
        first = ProcessedJob(job_type=JobType.EMAIL_QUEUE, job_key="a", processed_at=now)
        second = ProcessedJob(job_type=JobType.EMAIL_QUEUE, job_key="b", processed_at=now)
        first.metadata["processed"] = 3
        assert second.metadata == {}

    def test_job_types(self):
        """Should list every job type."""
        assert set(JobType.ALL) == {
            "alert-processing",
            "monthly-snapshot",
            "snapshot-email",
            "email-queue-processing",
        }


class TestUserModel:
    """Test User model."""

    def test_create_user(self):
        """Should create user with email."""
        user = User(email="test@example.com")
        assert user.email == "test@example.com"
        assert user.id is None
