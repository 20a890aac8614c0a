"""
Cooperative background loop driving alerts, snapshots and email delivery.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from networth_alerts.alerts.evaluator import AlertEvaluator
from networth_alerts.alerts.snapshots import SnapshotEngine, previous_month
from networth_alerts.database.models import JobType, ProcessedJob
from networth_alerts.database.repository import (
    AlertConfigurationRepository,
    ProcessedJobRepository,
)
from networth_alerts.notifiers.base import Transport
from networth_alerts.queue.email_queue import EmailQueueService

logger = logging.getLogger(__name__)

RUNNING = "running"
STOPPED = "stopped"


@dataclass
class TickResult:
    """Summary of one scheduler tick."""

    skipped: bool = False
    alerts_queued: int = 0
    snapshot_emails_queued: int = 0
    snapshots_generated: int = 0
    emails_processed: int = 0
    errors: list[str] = field(default_factory=list)


class Scheduler:
    """Runs the alerting pipeline on a fixed interval until stopped."""

    def __init__(
        self,
        transport: Transport,
        evaluator: AlertEvaluator,
        snapshot_engine: SnapshotEngine,
        email_queue: EmailQueueService,
        config_repo: AlertConfigurationRepository,
        job_repo: ProcessedJobRepository,
        interval_seconds: float = 3600,
        snapshot_window_hours: int = 2,
    ):
        self.transport = transport
        self.evaluator = evaluator
        self.snapshot_engine = snapshot_engine
        self.email_queue = email_queue
        self.config_repo = config_repo
        self.job_repo = job_repo
        self.interval_seconds = interval_seconds
        self.snapshot_window_hours = snapshot_window_hours
        self._stop_event = threading.Event()
        self._running = False

    @property
    def state(self) -> str:
        return RUNNING if self._running else STOPPED

    def stop(self) -> None:
        """Ask the loop to exit. An in-flight tick is allowed to finish."""
        self._stop_event.set()

    def run_forever(self) -> None:
        """Tick, wait the interval, repeat until stop() is called."""
        self._running = True
        logger.info("Alert scheduler started")
        try:
            while not self._stop_event.is_set():
                try:
                    self.run_tick()
                except Exception:
                    logger.exception("Error in alert scheduler tick")

                if self._stop_event.wait(self.interval_seconds):
                    break
        finally:
            self._running = False
            logger.info("Alert scheduler stopped")

    def run_tick(self, now: Optional[datetime] = None) -> TickResult:
        """
        Run one pass: alerts, snapshot emails, monthly snapshots, queue drain.

        Nothing runs while the transport is not configured.
        """
        now = now or datetime.now(timezone.utc)
        result = TickResult()

        if not self.transport.is_configured:
            logger.debug("Email transport not configured, skipping tick")
            result.skipped = True
            return result

        logger.debug("Processing alerts and snapshots")

        result.alerts_queued = self._run_job(
            JobType.ALERT_PROCESSING,
            f"{now:%Y-%m-%d-%H}",
            lambda: self.evaluator.evaluate_and_send_alerts(now=now),
            "alerts_queued",
            now,
            result,
        )

        result.snapshot_emails_queued = self._run_job(
            JobType.SNAPSHOT_EMAIL,
            f"{now:%Y-%m-%d-%H}",
            lambda: self.snapshot_engine.send_pending_snapshot_emails(now=now),
            "emails_queued",
            now,
            result,
        )

        if self.is_snapshot_window(now):
            result.snapshots_generated = self.generate_monthly_snapshots(now)

        result.emails_processed = self.process_email_queue(now)
        return result

    def is_snapshot_window(self, now: datetime) -> bool:
        return now.day == 1 and now.hour < self.snapshot_window_hours

    def generate_monthly_snapshots(self, now: datetime) -> int:
        """Generate last month's snapshot for every user who wants one."""
        month = previous_month(now.date())
        generated = 0

        for config in self.config_repo.list_enabled():
            if not config.monthly_snapshot_enabled:
                continue

            job_key = f"{config.user_id}:{month:%Y-%m}"
            if self.job_repo.exists(JobType.MONTHLY_SNAPSHOT, job_key, successful_only=True):
                continue

            try:
                snapshot = self.snapshot_engine.generate_monthly_snapshot(
                    config.user_id, month, now=now
                )
            except Exception as e:
                logger.error(f"Error generating monthly snapshot for user {config.user_id}: {e}")
                self._record(JobType.MONTHLY_SNAPSHOT, job_key, now, False, str(e))
                continue

            if snapshot is not None:
                generated += 1
            self._record(
                JobType.MONTHLY_SNAPSHOT,
                job_key,
                now,
                True,
                metadata={"created": snapshot is not None},
            )

        if generated:
            logger.info(f"Generated {generated} monthly snapshots for {month:%Y-%m}")
        return generated

    def process_email_queue(self, now: datetime) -> int:
        """Drain due emails in batches until a batch comes back short."""
        job_key = f"{now:%Y-%m-%d-%H-%M}"
        if self.job_repo.exists(JobType.EMAIL_QUEUE, job_key):
            return 0

        stats = self.email_queue.get_stats()
        if stats.pending == 0:
            return 0

        logger.debug(f"Processing email queue: {stats.pending} pending, {stats.failed} failed")

        batch_size = self.email_queue.batch_size
        processed_count = 0
        error = None
        try:
            while True:
                processed = self.email_queue.drain_due(batch_size, now=now)
                processed_count += processed
                if processed < batch_size:
                    break
        except Exception as e:
            logger.error(f"Error processing email queue batch: {e}")
            error = str(e)

        self._record(
            JobType.EMAIL_QUEUE,
            job_key,
            now,
            error is None,
            error,
            {"processed": processed_count},
        )

        if processed_count > 0:
            logger.info(f"Email queue processed: {processed_count} emails attempted")
        return processed_count

    def _run_job(
        self,
        job_type: str,
        job_key: str,
        job: Callable[[], int],
        metric: str,
        now: datetime,
        result: TickResult,
    ) -> int:
        """Run one tick step, recording its outcome in the job ledger."""
        try:
            count = job()
        except Exception as e:
            logger.error(f"Error running {job_type}: {e}")
            result.errors.append(f"{job_type}: {e}")
            self._record(job_type, job_key, now, False, str(e))
            return 0

        self._record(job_type, job_key, now, True, metadata={metric: count})
        return count

    def _record(
        self,
        job_type: str,
        job_key: str,
        now: datetime,
        success: bool,
        error_message: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self.job_repo.add(
            ProcessedJob(
                job_type=job_type,
                job_key=job_key,
                processed_at=now,
                success=success,
                error_message=error_message,
                metadata=metadata or {},
            )
        )
