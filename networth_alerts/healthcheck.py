"""
Background job health check.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from networth_alerts.config import HealthConfig
from networth_alerts.database.models import JobType
from networth_alerts.database.repository import ProcessedJobRepository
from networth_alerts.queue.email_queue import EmailQueueService

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
DEGRADED = "degraded"
UNHEALTHY = "unhealthy"


@dataclass
class HealthReport:
    """Outcome of a health check."""

    status: str
    issues: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def description(self) -> str:
        if self.issues:
            return "; ".join(self.issues)
        if self.status == HEALTHY:
            return "All background jobs are running normally"
        return "Failed to check background job health"


def check_health(
    job_repo: ProcessedJobRepository,
    email_queue: EmailQueueService,
    settings: Optional[HealthConfig] = None,
    now: Optional[datetime] = None,
) -> HealthReport:
    """Classify background processing as healthy, degraded or unhealthy.

    Args:
        job_repo: Job ledger
        email_queue: Queue service, for pending and failed counts
        settings: Thresholds
        now: Current time
    """
    settings = settings or HealthConfig()
    now = now or datetime.now(timezone.utc)
    issues: list[str] = []
    data: dict[str, Any] = {}

    try:
        last_alert_job = job_repo.get_last_successful(JobType.ALERT_PROCESSING)
        if last_alert_job is not None:
            data["last_alert_processing"] = last_alert_job.processed_at.isoformat()
            age = now - last_alert_job.processed_at
            if age > timedelta(hours=settings.alert_job_max_age_hours):
                issues.append(
                    f"Alert processing job hasn't run successfully in "
                    f"{age.total_seconds() / 3600:.1f} hours"
                )
        else:
            data["last_alert_processing"] = "never"

        for job_type, key in (
            (JobType.SNAPSHOT_EMAIL, "last_snapshot_email"),
            (JobType.MONTHLY_SNAPSHOT, "last_monthly_snapshot"),
            (JobType.EMAIL_QUEUE, "last_email_queue_processing"),
        ):
            last_job = job_repo.get_last_successful(job_type)
            data[key] = last_job.processed_at.isoformat() if last_job else "never"

        stats = email_queue.get_stats()
        data["email_queue_pending"] = stats.pending
        data["email_queue_failed"] = stats.failed
        data["email_queue_total"] = stats.total

        if stats.failed > settings.max_failed_emails:
            issues.append(f"Email queue has {stats.failed} failed emails")
        if stats.pending > settings.max_pending_emails:
            issues.append(f"Email queue has {stats.pending} pending emails")

    except Exception as e:
        logger.exception("Error checking background job health")
        data["error"] = str(e)
        return HealthReport(status=UNHEALTHY, data=data)

    if issues:
        return HealthReport(status=DEGRADED, issues=issues, data=data)
    return HealthReport(status=HEALTHY, data=data)
