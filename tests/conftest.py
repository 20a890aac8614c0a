"""
Pytest configuration and shared fixtures.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from networth_alerts.database.connection import Database
from networth_alerts.database.models import Account, AccountCategory, AlertConfiguration, User
from networth_alerts.database.repository import (
    AccountRepository,
    AlertConfigurationRepository,
    EmailQueueRepository,
    MonthlySnapshotRepository,
    ProcessedJobRepository,
    UserRepository,
)
from networth_alerts.notifiers.base import NotificationResult, Transport
from networth_alerts.queue.email_queue import EmailQueueService


class FakeTransport(Transport):
    """In-memory transport recording every send."""

    def __init__(self, configured: bool = True, fail_with: Optional[str] = None):
        self.configured = configured
        self.fail_with = fail_with
        self.sent: list[tuple[str, str, str]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    def send(self, to_email: str, subject: str, html_body: str) -> NotificationResult:
        self.sent.append((to_email, subject, html_body))
        if self.fail_with:
            return NotificationResult(success=False, channel="fake", error=self.fail_with)
        return NotificationResult(success=True, channel="fake")


@pytest.fixture
def now():
    """Fixed point in time for deterministic tests."""
    return datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db():
    """Create in-memory database with schema."""
    db = Database(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def repos(db):
    """Create all repositories."""
    return {
        "user": UserRepository(db),
        "account": AccountRepository(db),
        "config": AlertConfigurationRepository(db),
        "snapshot": MonthlySnapshotRepository(db),
        "email": EmailQueueRepository(db),
        "job": ProcessedJobRepository(db),
    }


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def email_queue(repos, transport):
    return EmailQueueService(repos["email"], transport)


@pytest.fixture
def make_user(repos):
    """Factory creating a user with an alert configuration."""

    def _make_user(email: Optional[str] = "user@example.com", **config_fields) -> User:
        user = repos["user"].create(User(email=email))
        repos["config"].create(AlertConfiguration(user_id=user.id, **config_fields))
        return user

    return _make_user


@pytest.fixture
def make_account(repos):
    """Factory creating an account, recording its balance when given."""

    def _make_account(
        user_id: int,
        name: str,
        category: AccountCategory,
        balance: Optional[str] = None,
        recorded_at: Optional[datetime] = None,
    ) -> Account:
        account = repos["account"].create(
            Account(user_id=user_id, name=name, category=category)
        )
        if balance is not None:
            repos["account"].record_balance(account.id, Decimal(balance), recorded_at)
            account.current_balance = Decimal(balance)
        return account

    return _make_account


@pytest.fixture
def sample_smtp_config():
    """Sample SMTP configuration for testing."""
    return {
        "type": "smtp",
        "host": "smtp.gmail.com",
        "port": 587,
        "user": "test@gmail.com",
        "password": "test-app-password",
        "from_address": "alerts@networth.app",
    }
