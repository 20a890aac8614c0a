"""
Application wiring: repositories, services and the scheduler.
"""

import logging
from typing import Optional

from networth_alerts.alerts.evaluator import AlertEvaluator
from networth_alerts.alerts.snapshots import SnapshotEngine
from networth_alerts.config import AppConfig
from networth_alerts.database.connection import Database
from networth_alerts.database.repository import (
    AccountRepository,
    AlertConfigurationRepository,
    EmailQueueRepository,
    MonthlySnapshotRepository,
    ProcessedJobRepository,
    UserRepository,
)
from networth_alerts.healthcheck import HealthReport, check_health
from networth_alerts.notifiers.base import Transport, TransportFactory
from networth_alerts.queue.email_queue import EmailQueueService
from networth_alerts.scheduler import Scheduler

logger = logging.getLogger(__name__)


class NetWorthAlertsApp:
    """Net worth alerting application."""

    def __init__(
        self,
        db: Database,
        config: Optional[AppConfig] = None,
        transport: Optional[Transport] = None,
    ):
        """
        Initialize the app.

        Args:
            db: Initialized database
            config: Application configuration, defaults when omitted
            transport: Email transport, built from config when omitted
        """
        self.db = db
        self.config = config or AppConfig()
        self.transport = transport or TransportFactory.create(
            self.config.transport.as_factory_dict()
        )

        alerts = self.config.alerts
        queue = self.config.email_queue

        # Initialize repositories
        self.user_repo = UserRepository(db)
        self.account_repo = AccountRepository(db)
        self.config_repo = AlertConfigurationRepository(
            db,
            default_threshold_percent=alerts.default_net_worth_threshold_percent,
            default_cash_runway_months=alerts.default_cash_runway_months,
        )
        self.snapshot_repo = MonthlySnapshotRepository(db)
        self.email_queue_repo = EmailQueueRepository(db)
        self.job_repo = ProcessedJobRepository(db)

        # Initialize services
        self.email_queue = EmailQueueService(
            self.email_queue_repo,
            self.transport,
            batch_size=queue.batch_size,
            max_attempts=queue.max_attempts,
            backoff_base_minutes=queue.backoff_base_minutes,
        )
        self.evaluator = AlertEvaluator(
            self.config_repo,
            self.account_repo,
            self.user_repo,
            self.email_queue,
            max_alerts_per_run=alerts.max_alerts_per_run,
            runway_window_days=alerts.runway_window_days,
            liquid_categories=alerts.liquid_account_categories,
        )
        self.snapshot_engine = SnapshotEngine(
            self.account_repo,
            self.snapshot_repo,
            self.config_repo,
            self.user_repo,
            self.email_queue,
        )
        self.scheduler = Scheduler(
            transport=self.transport,
            evaluator=self.evaluator,
            snapshot_engine=self.snapshot_engine,
            email_queue=self.email_queue,
            config_repo=self.config_repo,
            job_repo=self.job_repo,
            interval_seconds=self.config.schedule.interval_seconds,
            snapshot_window_hours=self.config.schedule.snapshot_window_hours,
        )

    def health(self) -> HealthReport:
        """Run the background job health check."""
        return check_health(self.job_repo, self.email_queue, self.config.health)
