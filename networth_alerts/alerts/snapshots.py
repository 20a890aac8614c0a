"""
Monthly snapshot generation and snapshot email dispatch.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Optional

from networth_alerts.alerts.metrics import (
    build_interpretation,
    compute_totals,
    find_biggest_contributor,
)
from networth_alerts.database.models import MonthlySnapshot
from networth_alerts.database.repository import (
    AccountRepository,
    AlertConfigurationRepository,
    MonthlySnapshotRepository,
    UserRepository,
)
from networth_alerts.notifiers.templates import render_snapshot
from networth_alerts.queue.email_queue import EmailQueueService

logger = logging.getLogger(__name__)


def first_of_month(value: date) -> date:
    return date(value.year, value.month, 1)


def previous_month(value: date) -> date:
    """First day of the month before value's month."""
    return first_of_month(first_of_month(value) - timedelta(days=1))


def snapshot_idempotency_key(user_id: int, month: date) -> str:
    return f"monthly-snapshot:{user_id}:{month:%Y-%m}"


class SnapshotEngine:
    """Builds monthly snapshots and hands their emails to the queue."""

    def __init__(
        self,
        account_repo: AccountRepository,
        snapshot_repo: MonthlySnapshotRepository,
        config_repo: AlertConfigurationRepository,
        user_repo: UserRepository,
        email_queue: EmailQueueService,
    ):
        self.account_repo = account_repo
        self.snapshot_repo = snapshot_repo
        self.config_repo = config_repo
        self.user_repo = user_repo
        self.email_queue = email_queue

    def generate_monthly_snapshot(
        self,
        user_id: int,
        month: date,
        now: Optional[datetime] = None,
    ) -> Optional[MonthlySnapshot]:
        """
        Create the snapshot of a user's finances for a month.

        Totals use the accounts' current balances. Calling this again for
        the same month returns the stored snapshot untouched.

        Args:
            user_id: Snapshot owner
            month: Any day of the month, normalized to the 1st
            now: Creation time

        Returns:
            The snapshot, or None when the user has no accounts
        """
        now = now or datetime.now(timezone.utc)
        month_start = first_of_month(month)

        existing = self.snapshot_repo.get_by_user_and_month(user_id, month_start)
        if existing is not None:
            return existing

        accounts = self.account_repo.accounts_for_user(user_id)
        if not accounts:
            return None

        totals = compute_totals(accounts)
        net_worth = totals.net_worth

        previous = self.snapshot_repo.get_by_user_and_month(
            user_id, previous_month(month_start)
        )
        delta = net_worth - previous.net_worth if previous else Decimal("0")
        delta_percent = None
        if previous is not None and previous.net_worth != 0:
            delta_percent = delta * 100 / abs(previous.net_worth)

        history = {a.id: self.account_repo.balance_history(a.id) for a in accounts}
        period_start = datetime.combine(month_start, time.min, tzinfo=timezone.utc)
        contributor = find_biggest_contributor(accounts, history, period_start)

        snapshot = MonthlySnapshot(
            user_id=user_id,
            month=month_start,
            net_worth=net_worth,
            total_assets=totals.total_assets,
            total_liabilities=totals.total_liabilities,
            net_worth_delta=delta,
            net_worth_delta_percent=delta_percent,
            biggest_contributor_name=contributor.name if contributor else None,
            biggest_contributor_delta=contributor.delta if contributor else Decimal("0"),
            biggest_contributor_positive=contributor.positive if contributor else True,
            interpretation=build_interpretation(
                delta, delta_percent, contributor, has_previous=previous is not None
            ),
            email_sent=False,
            created_at=now,
        )
        snapshot = self.snapshot_repo.create(snapshot)
        logger.info(f"Generated monthly snapshot for user {user_id} for {month_start:%Y-%m}")
        return snapshot

    def send_pending_snapshot_emails(self, now: Optional[datetime] = None) -> int:
        """
        Queue emails for snapshots not yet handled.

        Snapshots of users who turned monthly snapshots off, or who have no
        email address, are marked handled without a send time and without a
        queue entry.

        Returns:
            Number of emails queued
        """
        now = now or datetime.now(timezone.utc)
        queued = 0

        for snapshot in self.snapshot_repo.get_unsent():
            try:
                if self._dispatch(snapshot, now):
                    queued += 1
            except Exception as e:
                logger.error(f"Error queueing snapshot email for user {snapshot.user_id}: {e}")

        return queued

    def _dispatch(self, snapshot: MonthlySnapshot, now: datetime) -> bool:
        config = self.config_repo.get_by_user_id(snapshot.user_id)
        if config is None or not config.monthly_snapshot_enabled:
            snapshot.email_sent = True
            snapshot.email_sent_at = None
            self.snapshot_repo.mark_email_handled(snapshot)
            logger.debug(f"Snapshot emails disabled for user {snapshot.user_id}, skipping")
            return False

        user = self.user_repo.get_by_id(snapshot.user_id)
        if user is None or not user.email:
            snapshot.email_sent = True
            snapshot.email_sent_at = None
            self.snapshot_repo.mark_email_handled(snapshot)
            logger.warning(
                f"User {snapshot.user_id} has no email address, "
                f"snapshot for {snapshot.month:%Y-%m} not sent"
            )
            return False

        subject, body = render_snapshot(snapshot)
        self.email_queue.enqueue(
            user.email,
            subject,
            body,
            idempotency_key=snapshot_idempotency_key(snapshot.user_id, snapshot.month),
            now=now,
        )

        snapshot.email_sent = True
        snapshot.email_sent_at = now
        self.snapshot_repo.mark_email_handled(snapshot)

        config.last_monthly_snapshot_sent_at = now
        self.config_repo.update(config)

        logger.info(
            f"Queued monthly snapshot email for user {snapshot.user_id} for {snapshot.month:%Y-%m}"
        )
        return True
