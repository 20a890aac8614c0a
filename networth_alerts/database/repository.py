"""
Repository classes for CRUD operations.
"""

import json
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from .connection import Database
from .models import (
    Account,
    AccountCategory,
    AlertConfiguration,
    BalanceRecord,
    EmailQueueEntry,
    EmailQueueStatus,
    MonthlySnapshot,
    ProcessedJob,
    User,
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp so that text ordering matches time ordering."""
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _dec(value: Optional[str]) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(value)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRepository:
    """CRUD operations for users."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, user: User) -> User:
        """Create a new user."""
        cursor = self.db.connection.cursor()
        cursor.execute("INSERT INTO users (email) VALUES (?)", (user.email,))
        self.db.connection.commit()
        user.id = cursor.lastrowid
        return user

    def get_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_all(self) -> list[User]:
        """List all users."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM users ORDER BY id")
        return [self._row_to_user(row) for row in cursor.fetchall()]

    def _row_to_user(self, row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            created_at=_parse_ts(row["created_at"]),
        )


class AccountRepository:
    """Accounts and their balance history."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, account: Account) -> Account:
        """Create a new account."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO accounts
            (user_id, name, category, current_balance, is_active, institution)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                account.user_id,
                account.name,
                account.category.value,
                str(account.current_balance),
                1 if account.is_active else 0,
                account.institution,
            ),
        )
        self.db.connection.commit()
        account.id = cursor.lastrowid
        return account

    def get_by_id(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM accounts WHERE id = ?", (account_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def accounts_for_user(self, user_id: int, active_only: bool = True) -> list[Account]:
        """Get a user's accounts, by default only the active ones."""
        cursor = self.db.connection.cursor()
        query = "SELECT * FROM accounts WHERE user_id = ?"
        if active_only:
            query += " AND is_active = 1"
        cursor.execute(query + " ORDER BY id", (user_id,))
        return [self._row_to_account(row) for row in cursor.fetchall()]

    def set_active(self, account_id: int, is_active: bool) -> None:
        cursor = self.db.connection.cursor()
        cursor.execute(
            "UPDATE accounts SET is_active = ? WHERE id = ?",
            (1 if is_active else 0, account_id),
        )
        self.db.connection.commit()

    def record_balance(
        self,
        account_id: int,
        balance: Decimal,
        recorded_at: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> BalanceRecord:
        """Set the account's current balance and append it to its history."""
        record = BalanceRecord(
            account_id=account_id,
            balance=balance,
            recorded_at=recorded_at or _utcnow(),
            notes=notes,
        )
        cursor = self.db.connection.cursor()
        cursor.execute(
            "UPDATE accounts SET current_balance = ? WHERE id = ?",
            (str(balance), account_id),
        )
        cursor.execute(
            """
            INSERT INTO balance_history (account_id, balance, recorded_at, notes)
            VALUES (?, ?, ?, ?)
            """,
            (account_id, str(balance), _ts(record.recorded_at), notes),
        )
        self.db.connection.commit()
        record.id = cursor.lastrowid
        return record

    def add_balance_record(self, record: BalanceRecord) -> BalanceRecord:
        """Insert a history record without touching the current balance."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO balance_history (account_id, balance, recorded_at, notes)
            VALUES (?, ?, ?, ?)
            """,
            (record.account_id, str(record.balance), _ts(record.recorded_at), record.notes),
        )
        self.db.connection.commit()
        record.id = cursor.lastrowid
        return record

    def balance_history(self, account_id: int) -> list[BalanceRecord]:
        """Get an account's balance history, oldest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM balance_history
            WHERE account_id = ?
            ORDER BY recorded_at, id
            """,
            (account_id,),
        )
        return [
            BalanceRecord(
                id=row["id"],
                account_id=row["account_id"],
                balance=Decimal(row["balance"]),
                recorded_at=_parse_ts(row["recorded_at"]),
                notes=row["notes"],
            )
            for row in cursor.fetchall()
        ]

    def _row_to_account(self, row) -> Account:
        return Account(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            category=AccountCategory(row["category"]),
            current_balance=Decimal(row["current_balance"]),
            is_active=bool(row["is_active"]),
            institution=row["institution"],
        )


class AlertConfigurationRepository:
    """CRUD operations for per-user alert configuration."""

    def __init__(
        self,
        db: Database,
        default_threshold_percent: Decimal = Decimal("5"),
        default_cash_runway_months: int = 3,
    ):
        self.db = db
        self.default_threshold_percent = default_threshold_percent
        self.default_cash_runway_months = default_cash_runway_months

    def get_by_user_id(self, user_id: int) -> Optional[AlertConfiguration]:
        """Get a user's configuration, None if never configured."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM alert_configurations WHERE user_id = ?", (user_id,)
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_config(row)

    def get_or_create(self, user_id: int) -> AlertConfiguration:
        """Get a user's configuration, materializing the defaults when absent."""
        existing = self.get_by_user_id(user_id)
        if existing is not None:
            return existing

        config = AlertConfiguration(
            user_id=user_id,
            alerts_enabled=True,
            net_worth_change_threshold_percent=self.default_threshold_percent,
            cash_runway_months=self.default_cash_runway_months,
            monthly_snapshot_enabled=True,
        )
        return self.create(config)

    def create(self, config: AlertConfiguration) -> AlertConfiguration:
        """Create a configuration row."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO alert_configurations
            (user_id, alerts_enabled, net_worth_change_threshold_percent,
             cash_runway_months, monthly_snapshot_enabled,
             last_net_worth_alert_sent_at, last_cash_runway_alert_sent_at,
             last_monthly_snapshot_sent_at, last_alerted_net_worth)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self._config_values(config),
        )
        self.db.connection.commit()
        config.id = cursor.lastrowid
        return config

    def update(self, config: AlertConfiguration) -> None:
        """Persist every field of the configuration."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE alert_configurations
            SET user_id = ?, alerts_enabled = ?,
                net_worth_change_threshold_percent = ?,
                cash_runway_months = ?, monthly_snapshot_enabled = ?,
                last_net_worth_alert_sent_at = ?,
                last_cash_runway_alert_sent_at = ?,
                last_monthly_snapshot_sent_at = ?,
                last_alerted_net_worth = ?
            WHERE id = ?
            """,
            self._config_values(config) + (config.id,),
        )
        self.db.connection.commit()

    def list_enabled(self) -> list[AlertConfiguration]:
        """List configurations with alerts enabled."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM alert_configurations
            WHERE alerts_enabled = 1
            ORDER BY user_id
            """
        )
        return [self._row_to_config(row) for row in cursor.fetchall()]

    def _config_values(self, config: AlertConfiguration) -> tuple:
        return (
            config.user_id,
            1 if config.alerts_enabled else 0,
            str(config.net_worth_change_threshold_percent),
            config.cash_runway_months,
            1 if config.monthly_snapshot_enabled else 0,
            _ts(config.last_net_worth_alert_sent_at),
            _ts(config.last_cash_runway_alert_sent_at),
            _ts(config.last_monthly_snapshot_sent_at),
            (
                str(config.last_alerted_net_worth)
                if config.last_alerted_net_worth is not None
                else None
            ),
        )

    def _row_to_config(self, row) -> AlertConfiguration:
        return AlertConfiguration(
            id=row["id"],
            user_id=row["user_id"],
            alerts_enabled=bool(row["alerts_enabled"]),
            net_worth_change_threshold_percent=Decimal(
                row["net_worth_change_threshold_percent"]
            ),
            cash_runway_months=row["cash_runway_months"],
            monthly_snapshot_enabled=bool(row["monthly_snapshot_enabled"]),
            last_net_worth_alert_sent_at=_parse_ts(row["last_net_worth_alert_sent_at"]),
            last_cash_runway_alert_sent_at=_parse_ts(row["last_cash_runway_alert_sent_at"]),
            last_monthly_snapshot_sent_at=_parse_ts(row["last_monthly_snapshot_sent_at"]),
            last_alerted_net_worth=_dec(row["last_alerted_net_worth"]),
        )


class MonthlySnapshotRepository:
    """CRUD operations for monthly snapshots."""

    def __init__(self, db: Database):
        self.db = db

    def create(self, snapshot: MonthlySnapshot) -> MonthlySnapshot:
        """Create a new snapshot."""
        if snapshot.created_at is None:
            snapshot.created_at = _utcnow()
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO monthly_snapshots
            (user_id, month, net_worth, total_assets, total_liabilities,
             net_worth_delta, net_worth_delta_percent, biggest_contributor_name,
             biggest_contributor_delta, biggest_contributor_positive,
             interpretation, email_sent, email_sent_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                snapshot.user_id,
                snapshot.month.isoformat(),
                str(snapshot.net_worth),
                str(snapshot.total_assets),
                str(snapshot.total_liabilities),
                str(snapshot.net_worth_delta),
                (
                    str(snapshot.net_worth_delta_percent)
                    if snapshot.net_worth_delta_percent is not None
                    else None
                ),
                snapshot.biggest_contributor_name,
                str(snapshot.biggest_contributor_delta),
                1 if snapshot.biggest_contributor_positive else 0,
                snapshot.interpretation,
                1 if snapshot.email_sent else 0,
                _ts(snapshot.email_sent_at),
                _ts(snapshot.created_at),
            ),
        )
        self.db.connection.commit()
        snapshot.id = cursor.lastrowid
        return snapshot

    def get_by_user_and_month(self, user_id: int, month: date) -> Optional[MonthlySnapshot]:
        """Get the snapshot for a user and first-of-month date."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM monthly_snapshots WHERE user_id = ? AND month = ?",
            (user_id, month.isoformat()),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_snapshot(row)

    def get_unsent(self) -> list[MonthlySnapshot]:
        """Get snapshots whose email has not been handled yet."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM monthly_snapshots
            WHERE email_sent = 0
            ORDER BY month, id
            """
        )
        return [self._row_to_snapshot(row) for row in cursor.fetchall()]

    def list_for_user(self, user_id: int, limit: int = 24) -> list[MonthlySnapshot]:
        """Get a user's most recent snapshots."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM monthly_snapshots
            WHERE user_id = ?
            ORDER BY month DESC
            LIMIT ?
            """,
            (user_id, limit),
        )
        return [self._row_to_snapshot(row) for row in cursor.fetchall()]

    def mark_email_handled(self, snapshot: MonthlySnapshot) -> None:
        """Persist the email flags of a snapshot."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE monthly_snapshots
            SET email_sent = ?, email_sent_at = ?
            WHERE id = ?
            """,
            (1 if snapshot.email_sent else 0, _ts(snapshot.email_sent_at), snapshot.id),
        )
        self.db.connection.commit()

    def _row_to_snapshot(self, row) -> MonthlySnapshot:
        return MonthlySnapshot(
            id=row["id"],
            user_id=row["user_id"],
            month=date.fromisoformat(row["month"]),
            net_worth=Decimal(row["net_worth"]),
            total_assets=Decimal(row["total_assets"]),
            total_liabilities=Decimal(row["total_liabilities"]),
            net_worth_delta=Decimal(row["net_worth_delta"]),
            net_worth_delta_percent=_dec(row["net_worth_delta_percent"]),
            biggest_contributor_name=row["biggest_contributor_name"],
            biggest_contributor_delta=Decimal(row["biggest_contributor_delta"]),
            biggest_contributor_positive=bool(row["biggest_contributor_positive"]),
            interpretation=row["interpretation"],
            email_sent=bool(row["email_sent"]),
            email_sent_at=_parse_ts(row["email_sent_at"]),
            created_at=_parse_ts(row["created_at"]),
        )


class EmailQueueRepository:
    """Storage for the outbound email queue."""

    def __init__(self, db: Database):
        self.db = db

    def add(self, entry: EmailQueueEntry) -> EmailQueueEntry:
        """Insert a new queue entry."""
        if entry.created_at is None:
            entry.created_at = _utcnow()
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO email_queue
            (to_email, subject, html_body, status, attempt_count, max_attempts,
             last_attempt_at, next_attempt_at, sent_at, error_message,
             idempotency_key, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.to_email,
                entry.subject,
                entry.html_body,
                entry.status.value,
                entry.attempt_count,
                entry.max_attempts,
                _ts(entry.last_attempt_at),
                _ts(entry.next_attempt_at),
                _ts(entry.sent_at),
                entry.error_message,
                entry.idempotency_key,
                _ts(entry.created_at),
            ),
        )
        self.db.connection.commit()
        entry.id = cursor.lastrowid
        return entry

    def update(self, entry: EmailQueueEntry) -> None:
        """Persist the delivery state of an entry."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            UPDATE email_queue
            SET status = ?, attempt_count = ?, max_attempts = ?,
                last_attempt_at = ?, next_attempt_at = ?, sent_at = ?,
                error_message = ?
            WHERE id = ?
            """,
            (
                entry.status.value,
                entry.attempt_count,
                entry.max_attempts,
                _ts(entry.last_attempt_at),
                _ts(entry.next_attempt_at),
                _ts(entry.sent_at),
                entry.error_message,
                entry.id,
            ),
        )
        self.db.connection.commit()

    def get_by_id(self, entry_id: int) -> Optional[EmailQueueEntry]:
        """Get entry by ID."""
        cursor = self.db.connection.cursor()
        cursor.execute("SELECT * FROM email_queue WHERE id = ?", (entry_id,))
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def get_due(self, batch_size: int, now: datetime) -> list[EmailQueueEntry]:
        """Get pending entries ready for another attempt, oldest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM email_queue
            WHERE status = ?
              AND (next_attempt_at IS NULL OR next_attempt_at <= ?)
              AND attempt_count < max_attempts
            ORDER BY created_at, id
            LIMIT ?
            """,
            (EmailQueueStatus.PENDING.value, _ts(now), batch_size),
        )
        return [self._row_to_entry(row) for row in cursor.fetchall()]

    def get_active_by_idempotency_key(self, key: str) -> Optional[EmailQueueEntry]:
        """Get the pending or processing entry holding an idempotency key."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM email_queue
            WHERE idempotency_key = ? AND status IN (?, ?)
            ORDER BY id
            LIMIT 1
            """,
            (key, EmailQueueStatus.PENDING.value, EmailQueueStatus.PROCESSING.value),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_entry(row)

    def list_by_idempotency_key(self, key: str) -> list[EmailQueueEntry]:
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT * FROM email_queue WHERE idempotency_key = ? ORDER BY id",
            (key,),
        )
        return [self._row_to_entry(row) for row in cursor.fetchall()]

    def count_by_status(self, status: EmailQueueStatus) -> int:
        cursor = self.db.connection.cursor()
        cursor.execute(
            "SELECT COUNT(*) FROM email_queue WHERE status = ?", (status.value,)
        )
        return cursor.fetchone()[0]

    def pending_count(self) -> int:
        return self.count_by_status(EmailQueueStatus.PENDING)

    def failed_count(self) -> int:
        return self.count_by_status(EmailQueueStatus.FAILED)

    def cleanup_old(self, days_to_keep: int = 30, now: Optional[datetime] = None) -> int:
        """Delete sent and cancelled entries older than the cutoff."""
        cutoff = (now or _utcnow()) - timedelta(days=days_to_keep)
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            DELETE FROM email_queue
            WHERE created_at < ? AND status IN (?, ?)
            """,
            (_ts(cutoff), EmailQueueStatus.SENT.value, EmailQueueStatus.CANCELLED.value),
        )
        self.db.connection.commit()
        return cursor.rowcount

    def _row_to_entry(self, row) -> EmailQueueEntry:
        return EmailQueueEntry(
            id=row["id"],
            to_email=row["to_email"],
            subject=row["subject"],
            html_body=row["html_body"],
            status=EmailQueueStatus(row["status"]),
            attempt_count=row["attempt_count"],
            max_attempts=row["max_attempts"],
            last_attempt_at=_parse_ts(row["last_attempt_at"]),
            next_attempt_at=_parse_ts(row["next_attempt_at"]),
            sent_at=_parse_ts(row["sent_at"]),
            error_message=row["error_message"],
            idempotency_key=row["idempotency_key"],
            created_at=_parse_ts(row["created_at"]),
        )


class ProcessedJobRepository:
    """Append-only job ledger."""

    def __init__(self, db: Database):
        self.db = db

    def add(self, job: ProcessedJob) -> ProcessedJob:
        """Record a finished job run."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            INSERT INTO processed_jobs
            (job_type, job_key, processed_at, success, error_message, metadata)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                job.job_type,
                job.job_key,
                _ts(job.processed_at),
                1 if job.success else 0,
                job.error_message,
                json.dumps(job.metadata),
            ),
        )
        self.db.connection.commit()
        job.id = cursor.lastrowid
        return job

    def exists(self, job_type: str, job_key: str, successful_only: bool = False) -> bool:
        """Check whether a job with this key has already run."""
        cursor = self.db.connection.cursor()
        query = "SELECT 1 FROM processed_jobs WHERE job_type = ? AND job_key = ?"
        if successful_only:
            query += " AND success = 1"
        cursor.execute(query + " LIMIT 1", (job_type, job_key))
        return cursor.fetchone() is not None

    def get_by_key(self, job_type: str, job_key: str) -> Optional[ProcessedJob]:
        """Get the most recent run of a job key."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM processed_jobs
            WHERE job_type = ? AND job_key = ?
            ORDER BY processed_at DESC, id DESC
            LIMIT 1
            """,
            (job_type, job_key),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_job(row)

    def get_recent(self, job_type: str, limit: int = 100) -> list[ProcessedJob]:
        """Get the latest runs of a job type, newest first."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM processed_jobs
            WHERE job_type = ?
            ORDER BY processed_at DESC, id DESC
            LIMIT ?
            """,
            (job_type, limit),
        )
        return [self._row_to_job(row) for row in cursor.fetchall()]

    def get_last_successful(self, job_type: str) -> Optional[ProcessedJob]:
        """Get the latest successful run of a job type."""
        cursor = self.db.connection.cursor()
        cursor.execute(
            """
            SELECT * FROM processed_jobs
            WHERE job_type = ? AND success = 1
            ORDER BY processed_at DESC, id DESC
            LIMIT 1
            """,
            (job_type,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return self._row_to_job(row)

    def cleanup_old(self, days_to_keep: int = 90, now: Optional[datetime] = None) -> int:
        """Delete ledger entries older than the cutoff."""
        cutoff = (now or _utcnow()) - timedelta(days=days_to_keep)
        cursor = self.db.connection.cursor()
        cursor.execute(
            "DELETE FROM processed_jobs WHERE processed_at < ?", (_ts(cutoff),)
        )
        self.db.connection.commit()
        return cursor.rowcount

    def _row_to_job(self, row) -> ProcessedJob:
        return ProcessedJob(
            id=row["id"],
            job_type=row["job_type"],
            job_key=row["job_key"],
            processed_at=_parse_ts(row["processed_at"]),
            success=bool(row["success"]),
            error_message=row["error_message"],
            metadata=json.loads(row["metadata"]),
        )
