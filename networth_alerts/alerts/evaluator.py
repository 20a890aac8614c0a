"""
Per-user threshold alerts: net worth change and cash runway.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Iterable

from networth_alerts.alerts.metrics import (
    compute_totals,
    estimate_monthly_burn,
    liquid_balance,
    percent_change,
    runway_months,
)
from networth_alerts.database.models import Account, AccountCategory, AlertConfiguration
from networth_alerts.database.repository import (
    AccountRepository,
    AlertConfigurationRepository,
    UserRepository,
)
from networth_alerts.notifiers.templates import (
    render_cash_runway_alert,
    render_net_worth_alert,
)
from networth_alerts.queue.email_queue import EmailQueueService

logger = logging.getLogger(__name__)

MAX_ALERTS_PER_RUN = 5


@dataclass
class _AlertBudget:
    """Alerts allowed and spent in one evaluation run."""

    limit: int
    spent: int = 0

    @property
    def remaining(self) -> int:
        return self.limit - self.spent


class AlertEvaluator:
    """Evaluates every enabled configuration and queues alert emails."""

    def __init__(
        self,
        config_repo: AlertConfigurationRepository,
        account_repo: AccountRepository,
        user_repo: UserRepository,
        email_queue: EmailQueueService,
        max_alerts_per_run: int = MAX_ALERTS_PER_RUN,
        runway_window_days: int = 90,
        liquid_categories: Iterable[AccountCategory] = (AccountCategory.BANKING,),
    ):
        """
        Initialize the evaluator.

        Args:
            config_repo: Alert configuration storage
            account_repo: Account and balance history storage
            user_repo: User storage, for recipient addresses
            email_queue: Queue that receives alert emails
            max_alerts_per_run: Alerts queued per invocation across all users
            runway_window_days: Trailing window used to estimate burn rate
            liquid_categories: Account categories counted as cash
        """
        self.config_repo = config_repo
        self.account_repo = account_repo
        self.user_repo = user_repo
        self.email_queue = email_queue
        self.max_alerts_per_run = max_alerts_per_run
        self.runway_window_days = runway_window_days
        self.liquid_categories = tuple(liquid_categories)

    def evaluate_and_send_alerts(
        self,
        max_alerts: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Evaluate all users with alerts enabled.

        Stops once the alert budget is spent; remaining users are picked up
        on a later run. Alerts are counted as they are queued, so one
        already queued for a user still counts if a later check fails.

        Returns:
            Number of alerts queued
        """
        now = now or datetime.now(timezone.utc)
        budget = _AlertBudget(self.max_alerts_per_run if max_alerts is None else max_alerts)

        for config in self.config_repo.list_enabled():
            if budget.remaining <= 0:
                logger.warning(
                    f"Maximum alerts per run ({budget.limit}) reached, deferring remaining users"
                )
                break

            try:
                self._evaluate_user(config, budget, now)
            except Exception as e:
                logger.error(f"Error processing alerts for user {config.user_id}: {e}")

        return budget.spent

    def _evaluate_user(
        self, config: AlertConfiguration, budget: _AlertBudget, now: datetime
    ) -> None:
        """Run both checks for one user, spending the budget per alert queued."""
        accounts = self.account_repo.accounts_for_user(config.user_id)
        if not accounts:
            return

        user = self.user_repo.get_by_id(config.user_id)
        if user is None or not user.email:
            logger.warning(f"User {config.user_id} has no email address, skipping alerts")
            return

        net_worth = compute_totals(accounts).net_worth

        if config.net_worth_change_threshold_percent > 0:
            self._check_net_worth(config, user.email, net_worth, budget, now)

        if config.cash_runway_months > 0 and budget.remaining > 0:
            self._check_cash_runway(config, user.email, accounts, budget, now)

    def _check_net_worth(
        self,
        config: AlertConfiguration,
        to_email: str,
        net_worth: Decimal,
        budget: _AlertBudget,
        now: datetime,
    ) -> None:
        baseline = config.last_alerted_net_worth
        change = percent_change(net_worth, baseline) if baseline is not None else None

        if change is None:
            # First evaluation or zero baseline: record it without alerting
            if baseline != net_worth:
                config.last_alerted_net_worth = net_worth
                self.config_repo.update(config)
            return

        if change < config.net_worth_change_threshold_percent:
            return

        subject, body = render_net_worth_alert(
            baseline, net_worth, change, config.net_worth_change_threshold_percent
        )
        self.email_queue.enqueue(
            to_email,
            subject,
            body,
            idempotency_key=f"net-worth-alert:{config.user_id}:{now:%Y-%m-%dT%H:%M}",
            now=now,
        )
        budget.spent += 1

        config.last_alerted_net_worth = net_worth
        config.last_net_worth_alert_sent_at = now
        self.config_repo.update(config)
        logger.info(
            f"Net worth change alert queued for user {config.user_id}: {change:.2f}%"
        )

    def _check_cash_runway(
        self,
        config: AlertConfiguration,
        to_email: str,
        accounts: list[Account],
        budget: _AlertBudget,
        now: datetime,
    ) -> None:
        history = {
            a.id: self.account_repo.balance_history(a.id)
            for a in accounts
            if a.category in self.liquid_categories
        }
        burn = estimate_monthly_burn(
            accounts,
            history,
            now,
            window_days=self.runway_window_days,
            liquid_categories=self.liquid_categories,
        )
        cash = liquid_balance(accounts, self.liquid_categories)
        runway = runway_months(cash, burn)

        if runway is None or runway >= config.cash_runway_months:
            # Recovered: re-arm the alert
            if config.last_cash_runway_alert_sent_at is not None:
                config.last_cash_runway_alert_sent_at = None
                self.config_repo.update(config)
            return

        if config.last_cash_runway_alert_sent_at is not None:
            return

        subject, body = render_cash_runway_alert(
            runway, config.cash_runway_months, cash, burn
        )
        self.email_queue.enqueue(
            to_email,
            subject,
            body,
            idempotency_key=f"cash-runway-alert:{config.user_id}:{now:%Y-%m-%d}",
            now=now,
        )
        budget.spent += 1

        config.last_cash_runway_alert_sent_at = now
        self.config_repo.update(config)
        logger.info(
            f"Cash runway alert queued for user {config.user_id}: {runway:.1f} months"
        )
