"""
Scheduler tests.
Tests for tick ordering, the transport kill switch and the job ledger.
"""

import threading
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from networth_alerts.database.models import AlertConfiguration, JobType, ProcessedJob
from networth_alerts.queue.email_queue import QueueStats
from networth_alerts.scheduler import RUNNING, STOPPED, Scheduler

MID_MONTH = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
MONTH_START = datetime(2024, 3, 1, 0, 30, tzinfo=timezone.utc)


@pytest.fixture
def manager():
    """Parent mock recording calls across all collaborators in order."""
    manager = Mock()
    manager.transport.is_configured = True
    manager.evaluator.evaluate_and_send_alerts.return_value = 2
    manager.snapshot_engine.send_pending_snapshot_emails.return_value = 1
    manager.config_repo.list_enabled.return_value = [AlertConfiguration(user_id=1)]
    manager.job_repo.exists.return_value = False
    manager.email_queue.batch_size = 10
    manager.email_queue.get_stats.return_value = QueueStats(pending=3, failed=0, total=3)
    manager.email_queue.drain_due.return_value = 3
    return manager


@pytest.fixture
def scheduler(manager):
    return Scheduler(
        transport=manager.transport,
        evaluator=manager.evaluator,
        snapshot_engine=manager.snapshot_engine,
        email_queue=manager.email_queue,
        config_repo=manager.config_repo,
        job_repo=manager.job_repo,
        interval_seconds=0.01,
    )


def recorded_jobs(manager) -> list[ProcessedJob]:
    return [c.args[0] for c in manager.job_repo.add.call_args_list]


class TestKillSwitch:
    """Test behavior without a configured transport."""

    def test_unconfigured_transport_skips_everything(self, manager, scheduler):
        """Should not touch any repository or service."""
        manager.transport.is_configured = False

        result = scheduler.run_tick(now=MONTH_START)

        assert result.skipped is True
        assert manager.evaluator.mock_calls == []
        assert manager.snapshot_engine.mock_calls == []
        assert manager.email_queue.mock_calls == []
        assert manager.config_repo.mock_calls == []
        assert manager.job_repo.mock_calls == []


class TestTick:
    """Test a single tick."""

    def test_order_of_steps(self, manager, scheduler):
        """Should run alerts, snapshot emails, generation, then the queue."""
        scheduler.run_tick(now=MONTH_START)

        steps = [
            name
            for name, _, _ in manager.mock_calls
            if name
            in (
                "evaluator.evaluate_and_send_alerts",
                "snapshot_engine.send_pending_snapshot_emails",
                "snapshot_engine.generate_monthly_snapshot",
                "email_queue.drain_due",
            )
        ]
        assert steps == [
            "evaluator.evaluate_and_send_alerts",
            "snapshot_engine.send_pending_snapshot_emails",
            "snapshot_engine.generate_monthly_snapshot",
            "email_queue.drain_due",
        ]

    def test_result_counts(self, scheduler):
        """Should report what each step did."""
        result = scheduler.run_tick(now=MONTH_START)

        assert result.skipped is False
        assert result.alerts_queued == 2
        assert result.snapshot_emails_queued == 1
        assert result.snapshots_generated == 1
        assert result.emails_processed == 3
        assert result.errors == []

    def test_no_generation_mid_month(self, manager, scheduler):
        """Should only generate snapshots inside the window."""
        result = scheduler.run_tick(now=MID_MONTH)

        manager.snapshot_engine.generate_monthly_snapshot.assert_not_called()
        assert result.snapshots_generated == 0

    def test_ledger_entries(self, manager, scheduler):
        """Should record each step in the job ledger."""
        scheduler.run_tick(now=MID_MONTH)

        jobs = {job.job_type: job for job in recorded_jobs(manager)}
        assert jobs[JobType.ALERT_PROCESSING].job_key == "2024-03-15-12"
        assert jobs[JobType.ALERT_PROCESSING].metadata == {"alerts_queued": 2}
        assert jobs[JobType.SNAPSHOT_EMAIL].metadata == {"emails_queued": 1}
        assert jobs[JobType.EMAIL_QUEUE].job_key == "2024-03-15-12-00"
        assert jobs[JobType.EMAIL_QUEUE].metadata == {"processed": 3}
        assert all(job.success for job in jobs.values())

    def test_failed_step_is_recorded_and_tick_continues(self, manager, scheduler):
        """Should log a failed step and still drain the queue."""
        manager.evaluator.evaluate_and_send_alerts.side_effect = RuntimeError("boom")

        result = scheduler.run_tick(now=MID_MONTH)

        assert result.errors == [f"{JobType.ALERT_PROCESSING}: boom"]
        assert result.emails_processed == 3
        failed = [j for j in recorded_jobs(manager) if j.job_type == JobType.ALERT_PROCESSING]
        assert failed[0].success is False
        assert failed[0].error_message == "boom"


class TestSnapshotWindow:
    """Test monthly generation scheduling."""

    @pytest.mark.parametrize(
        "now, expected",
        [
            (datetime(2024, 3, 1, 0, 0, tzinfo=timezone.utc), True),
            (datetime(2024, 3, 1, 1, 59, tzinfo=timezone.utc), True),
            (datetime(2024, 3, 1, 2, 0, tzinfo=timezone.utc), False),
            (datetime(2024, 3, 2, 0, 30, tzinfo=timezone.utc), False),
        ],
    )
    def test_is_snapshot_window(self, scheduler, now, expected):
        assert scheduler.is_snapshot_window(now) is expected

    def test_generates_previous_month(self, manager, scheduler):
        """Should snapshot the month that just ended."""
        scheduler.generate_monthly_snapshots(MONTH_START)

        args = manager.snapshot_engine.generate_monthly_snapshot.call_args
        assert args.args == (1, datetime(2024, 2, 1).date())
        assert recorded_jobs(manager)[0].job_key == "1:2024-02"

    def test_skips_already_generated(self, manager, scheduler):
        """Should not regenerate a month already in the ledger."""
        manager.job_repo.exists.return_value = True

        assert scheduler.generate_monthly_snapshots(MONTH_START) == 0
        manager.snapshot_engine.generate_monthly_snapshot.assert_not_called()

    def test_skips_users_without_snapshots(self, manager, scheduler):
        """Should honor the per-user snapshot preference."""
        manager.config_repo.list_enabled.return_value = [
            AlertConfiguration(user_id=1, monthly_snapshot_enabled=False)
        ]

        assert scheduler.generate_monthly_snapshots(MONTH_START) == 0
        manager.snapshot_engine.generate_monthly_snapshot.assert_not_called()

    def test_failure_recorded_per_user(self, manager, scheduler):
        """Should record a failed generation and move on."""
        manager.config_repo.list_enabled.return_value = [
            AlertConfiguration(user_id=1),
            AlertConfiguration(user_id=2),
        ]
        manager.snapshot_engine.generate_monthly_snapshot.side_effect = [
            RuntimeError("no data"),
            Mock(),
        ]

        assert scheduler.generate_monthly_snapshots(MONTH_START) == 1

        jobs = recorded_jobs(manager)
        assert [(j.job_key, j.success) for j in jobs] == [("1:2024-02", False), ("2:2024-02", True)]

    def test_no_accounts_counts_as_done(self, manager, scheduler):
        """Should mark the month handled even when no snapshot was needed."""
        manager.snapshot_engine.generate_monthly_snapshot.return_value = None

        assert scheduler.generate_monthly_snapshots(MONTH_START) == 0
        assert recorded_jobs(manager)[0].metadata == {"created": False}


class TestEmailQueueProcessing:
    """Test queue draining inside a tick."""

    def test_drains_until_short_batch(self, manager, scheduler):
        """Should keep draining while batches come back full."""
        manager.email_queue.drain_due.side_effect = [10, 10, 4]

        assert scheduler.process_email_queue(MID_MONTH) == 24
        assert manager.email_queue.drain_due.call_count == 3

    def test_skips_when_minute_already_processed(self, manager, scheduler):
        """Should not drain twice within the same minute."""
        manager.job_repo.exists.return_value = True

        assert scheduler.process_email_queue(MID_MONTH) == 0
        manager.email_queue.drain_due.assert_not_called()

    def test_skips_empty_queue(self, manager, scheduler):
        """Should not record anything when nothing is pending."""
        manager.email_queue.get_stats.return_value = QueueStats(pending=0, failed=2, total=2)

        assert scheduler.process_email_queue(MID_MONTH) == 0
        manager.job_repo.add.assert_not_called()


class TestRunLoop:
    """Test the background loop."""

    def test_stop_ends_loop(self, scheduler):
        """Should exit after stop() and report stopped."""
        ticks = []

        def tick():
            ticks.append(scheduler.state)
            scheduler.stop()

        scheduler.run_tick = tick
        scheduler.run_forever()

        assert ticks == [RUNNING]
        assert scheduler.state == STOPPED

    def test_tick_error_does_not_kill_loop(self, scheduler):
        """Should keep ticking after an unexpected error."""
        calls = []

        def tick():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("unexpected")
            scheduler.stop()

        scheduler.run_tick = tick
        scheduler.run_forever()

        assert len(calls) == 2

    def test_stop_from_another_thread(self, scheduler):
        """Should wake up from the interval wait when stopped."""
        scheduler.interval_seconds = 60
        scheduler.run_tick = Mock()
        thread = threading.Thread(target=scheduler.run_forever)
        thread.start()

        scheduler.stop()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert scheduler.state == STOPPED
