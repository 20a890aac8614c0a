"""
Email queue tests.
Tests for enqueue idempotency, retry backoff and the delivery state machine.
"""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from conftest import FakeTransport
from networth_alerts.database.models import EmailQueueStatus
from networth_alerts.queue.email_queue import EmailQueueService


class TestEnqueue:
    """Test adding emails to the queue."""

    def test_enqueue_creates_pending_entry(self, email_queue, repos, now):
        """Should store a pending entry due immediately."""
        entry = email_queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", now=now)

        stored = repos["email"].get_by_id(entry.id)
        assert stored.status == EmailQueueStatus.PENDING
        assert stored.attempt_count == 0
        assert stored.max_attempts == 3
        assert stored.next_attempt_at == now
        assert stored.created_at == now

    def test_enqueue_generates_key(self, email_queue, now):
        """Should assign a unique key when none is given."""
        first = email_queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", now=now)
        second = email_queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", now=now)

        assert first.idempotency_key
        assert first.idempotency_key != second.idempotency_key
        assert first.id != second.id

    def test_enqueue_same_key_returns_existing(self, email_queue, repos, now):
        """Should not duplicate an entry whose key is still active."""
        first = email_queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", "key-1", now=now)
        second = email_queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", "key-1", now=now)

        assert second.id == first.id
        assert len(repos["email"].list_by_idempotency_key("key-1")) == 1

    def test_enqueue_after_delivery_creates_new(self, email_queue, repos, now):
        """Should accept the key again once the earlier entry was sent."""
        first = email_queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", "key-1", now=now)
        email_queue.drain_due(now=now)

        second = email_queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", "key-1", now=now)

        assert second.id != first.id
        assert len(repos["email"].list_by_idempotency_key("key-1")) == 2


class TestDrain:
    """Test draining due entries."""

    def test_successful_delivery(self, email_queue, repos, transport, now):
        """Should mark the entry sent after one attempt."""
        entry = email_queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", now=now)

        processed = email_queue.drain_due(now=now)

        stored = repos["email"].get_by_id(entry.id)
        assert processed == 1
        assert stored.status == EmailQueueStatus.SENT
        assert stored.attempt_count == 1
        assert stored.sent_at == now
        assert stored.last_attempt_at == now
        assert transport.sent == [("user@example.com", "Hello", "<p>Hi</p>")]

    def test_failure_schedules_retry(self, repos, now):
        """Should return the entry to pending with a backoff delay."""
        queue = EmailQueueService(repos["email"], FakeTransport(fail_with="HTTP 500"))
        entry = queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", now=now)

        queue.drain_due(now=now)

        stored = repos["email"].get_by_id(entry.id)
        assert stored.status == EmailQueueStatus.PENDING
        assert stored.attempt_count == 1
        assert stored.error_message == "HTTP 500"
        assert stored.next_attempt_at == now + timedelta(minutes=1)

    def test_not_retried_before_backoff(self, repos, now):
        """Should leave a backing-off entry alone until it is due."""
        transport = FakeTransport(fail_with="HTTP 500")
        queue = EmailQueueService(repos["email"], transport)
        queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", now=now)

        queue.drain_due(now=now)
        assert queue.drain_due(now=now + timedelta(seconds=30)) == 0
        assert len(transport.sent) == 1

    def test_backoff_strictly_increases_until_failed(self, repos, now):
        """Should double the delay per attempt and fail after the last one."""
        transport = FakeTransport(fail_with="HTTP 500")
        queue = EmailQueueService(repos["email"], transport, max_attempts=3)
        entry = queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", now=now)

        delays = []
        clock = now
        for _ in range(2):
            queue.drain_due(now=clock)
            stored = repos["email"].get_by_id(entry.id)
            delays.append(stored.next_attempt_at - clock)
            clock = stored.next_attempt_at

        queue.drain_due(now=clock)
        stored = repos["email"].get_by_id(entry.id)

        assert delays == [timedelta(minutes=1), timedelta(minutes=2)]
        assert stored.status == EmailQueueStatus.FAILED
        assert stored.attempt_count == 3

        # Failed entries are never picked up again
        assert queue.drain_due(now=clock + timedelta(days=1)) == 0
        assert len(transport.sent) == 3

    def test_backoff_values(self, email_queue):
        """Should grow the delay exponentially."""
        assert email_queue.backoff(1) == timedelta(minutes=1)
        assert email_queue.backoff(2) == timedelta(minutes=2)
        assert email_queue.backoff(3) == timedelta(minutes=4)

    def test_transport_exception_counts_as_failure(self, repos, now):
        """Should treat a raising transport like a failed send."""
        transport = Mock()
        transport.send.side_effect = RuntimeError("socket closed")
        queue = EmailQueueService(repos["email"], transport)
        entry = queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", now=now)

        assert queue.drain_due(now=now) == 1

        stored = repos["email"].get_by_id(entry.id)
        assert stored.status == EmailQueueStatus.PENDING
        assert stored.error_message == "socket closed"

    def test_batch_size_limits_drain(self, repos, transport, now):
        """Should process at most one batch per call."""
        queue = EmailQueueService(repos["email"], transport, batch_size=2)
        for i in range(3):
            queue.enqueue(f"user{i}@example.com", "Hello", "<p>Hi</p>", now=now)

        assert queue.drain_due(now=now) == 2
        assert queue.drain_due(now=now) == 1
        assert queue.drain_due(now=now) == 0


class TestCancel:
    """Test cancelling entries."""

    def test_cancel_pending(self, email_queue, repos, transport, now):
        """Should cancel a pending entry so it is never sent."""
        entry = email_queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", now=now)

        assert email_queue.cancel(entry.id) is True
        assert repos["email"].get_by_id(entry.id).status == EmailQueueStatus.CANCELLED
        assert email_queue.drain_due(now=now) == 0
        assert transport.sent == []

    def test_cancel_sent_is_rejected(self, email_queue, repos, now):
        """Should not cancel an entry that was already delivered."""
        entry = email_queue.enqueue("user@example.com", "Hello", "<p>Hi</p>", now=now)
        email_queue.drain_due(now=now)

        assert email_queue.cancel(entry.id) is False
        assert repos["email"].get_by_id(entry.id).status == EmailQueueStatus.SENT

    def test_cancel_unknown(self, email_queue):
        """Should return False for unknown entries."""
        assert email_queue.cancel(999) is False


class TestStats:
    """Test queue statistics."""

    def test_stats(self, repos, now):
        """Should count pending and failed entries."""
        queue = EmailQueueService(
            repos["email"], FakeTransport(fail_with="down"), max_attempts=1
        )
        queue.enqueue("a@example.com", "Hello", "<p>Hi</p>", now=now)
        queue.drain_due(now=now)
        queue.enqueue("b@example.com", "Hello", "<p>Hi</p>", now=now + timedelta(minutes=1))

        stats = queue.get_stats()

        assert stats.pending == 1
        assert stats.failed == 1
        assert stats.total == 2
        assert stats.last_processed_at == now

    @pytest.mark.parametrize("base, expected", [(1, 4), (5, 20)])
    def test_configurable_backoff_base(self, repos, transport, base, expected):
        """Should scale the delay with the configured base."""
        queue = EmailQueueService(repos["email"], transport, backoff_base_minutes=base)
        assert queue.backoff(3) == timedelta(minutes=expected)
