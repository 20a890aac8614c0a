"""
Durable outbound email queue with retry backoff and idempotency keys.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from networth_alerts.database.models import EmailQueueEntry, EmailQueueStatus
from networth_alerts.database.repository import EmailQueueRepository
from networth_alerts.notifiers.base import Transport

logger = logging.getLogger(__name__)


@dataclass
class QueueStats:
    """Queue counters for health reporting."""

    pending: int
    failed: int
    total: int
    last_processed_at: Optional[datetime] = None


class EmailQueueService:
    """Enqueues emails and drains due entries through a transport."""

    def __init__(
        self,
        repository: EmailQueueRepository,
        transport: Transport,
        batch_size: int = 10,
        max_attempts: int = 3,
        backoff_base_minutes: float = 1,
    ):
        """
        Initialize the queue service.

        Args:
            repository: Queue storage
            transport: Outbound transport used when draining
            batch_size: Default number of entries per drain
            max_attempts: Attempts before an entry is marked failed
            backoff_base_minutes: Delay after the first failure, doubled per attempt
        """
        self.repository = repository
        self.transport = transport
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.backoff_base_minutes = backoff_base_minutes
        self._last_processed_at: Optional[datetime] = None

    def enqueue(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        idempotency_key: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> EmailQueueEntry:
        """
        Queue an email for delivery.

        If a pending or processing entry already holds the idempotency key,
        that entry is returned and nothing new is stored.
        """
        now = now or datetime.now(timezone.utc)

        if idempotency_key:
            existing = self.repository.get_active_by_idempotency_key(idempotency_key)
            if existing is not None:
                logger.debug(f"Email already queued with idempotency key {idempotency_key}")
                return existing

        entry = EmailQueueEntry(
            to_email=to_email,
            subject=subject,
            html_body=html_body,
            status=EmailQueueStatus.PENDING,
            max_attempts=self.max_attempts,
            next_attempt_at=now,
            idempotency_key=idempotency_key or str(uuid.uuid4()),
            created_at=now,
        )
        entry = self.repository.add(entry)
        logger.info(f"Queued email {entry.id} to {to_email}: {subject}")
        return entry

    def backoff(self, attempt_count: int) -> timedelta:
        """Delay before the next attempt: base, 2x base, 4x base..."""
        return timedelta(minutes=self.backoff_base_minutes * 2 ** (attempt_count - 1))

    def drain_due(self, batch_size: Optional[int] = None, now: Optional[datetime] = None) -> int:
        """
        Attempt delivery of due entries.

        Args:
            batch_size: Maximum entries to process, defaults to the service batch size
            now: Current time

        Returns:
            Number of entries processed
        """
        now = now or datetime.now(timezone.utc)
        entries = self.repository.get_due(batch_size or self.batch_size, now)

        for entry in entries:
            self._deliver(entry, now)

        self._last_processed_at = now
        return len(entries)

    def _deliver(self, entry: EmailQueueEntry, now: datetime) -> None:
        entry.status = EmailQueueStatus.PROCESSING
        entry.attempt_count += 1
        entry.last_attempt_at = now
        self.repository.update(entry)

        try:
            result = self.transport.send(entry.to_email, entry.subject, entry.html_body)
            error = None if result.success else (result.error or "Delivery failed")
        except Exception as e:
            logger.exception(f"Transport raised while sending email {entry.id}")
            error = str(e) or e.__class__.__name__

        if error is None:
            entry.status = EmailQueueStatus.SENT
            entry.sent_at = now
            entry.error_message = None
            self.repository.update(entry)
            logger.info(f"Sent email {entry.id} to {entry.to_email}")
            return

        entry.error_message = error
        if entry.attempt_count >= entry.max_attempts:
            entry.status = EmailQueueStatus.FAILED
            logger.error(
                f"Email {entry.id} permanently failed after {entry.attempt_count} attempts: {error}"
            )
        else:
            entry.status = EmailQueueStatus.PENDING
            entry.next_attempt_at = now + self.backoff(entry.attempt_count)
            logger.warning(
                f"Email {entry.id} attempt {entry.attempt_count}/{entry.max_attempts} "
                f"failed, retrying at {entry.next_attempt_at.isoformat()}: {error}"
            )
        self.repository.update(entry)

    def cancel(self, entry_id: int) -> bool:
        """Cancel a pending entry. Returns False if it is not pending."""
        entry = self.repository.get_by_id(entry_id)
        if entry is None or entry.status != EmailQueueStatus.PENDING:
            return False

        entry.status = EmailQueueStatus.CANCELLED
        self.repository.update(entry)
        logger.info(f"Cancelled email {entry_id}")
        return True

    def get_stats(self) -> QueueStats:
        """Get pending and failed counts."""
        pending = self.repository.pending_count()
        failed = self.repository.failed_count()
        return QueueStats(
            pending=pending,
            failed=failed,
            total=pending + failed,
            last_processed_at=self._last_processed_at,
        )
