"""
SQLite database connection and schema management.
"""

import sqlite3
from pathlib import Path
from typing import Optional


class Database:
    """SQLite database connection manager."""

    def __init__(self, db_path: str):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory DB.
        """
        self.db_path = db_path
        self._connection: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self) -> None:
        """Establish database connection."""
        if self.db_path != ":memory:":
            # Ensure parent directory exists
            path = Path(self.db_path)
            path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(self.db_path)
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA foreign_keys = ON")

    @property
    def connection(self) -> sqlite3.Connection:
        """Get the database connection."""
        if self._connection is None:
            raise sqlite3.ProgrammingError("Database connection is closed")
        return self._connection

    def initialize(self) -> None:
        """Create database schema if it doesn't exist."""
        cursor = self.connection.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                email TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                category TEXT NOT NULL,
                current_balance TEXT NOT NULL DEFAULT '0',
                is_active INTEGER NOT NULL DEFAULT 1,
                institution TEXT,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS balance_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                account_id INTEGER NOT NULL,
                balance TEXT NOT NULL,
                recorded_at TIMESTAMP NOT NULL,
                notes TEXT,
                FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE
            )
        """)

        # One configuration per user
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS alert_configurations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL UNIQUE,
                alerts_enabled INTEGER NOT NULL DEFAULT 1,
                net_worth_change_threshold_percent TEXT NOT NULL DEFAULT '5',
                cash_runway_months INTEGER NOT NULL DEFAULT 3,
                monthly_snapshot_enabled INTEGER NOT NULL DEFAULT 1,
                last_net_worth_alert_sent_at TIMESTAMP,
                last_cash_runway_alert_sent_at TIMESTAMP,
                last_monthly_snapshot_sent_at TIMESTAMP,
                last_alerted_net_worth TEXT,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS monthly_snapshots (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                month DATE NOT NULL,
                net_worth TEXT NOT NULL,
                total_assets TEXT NOT NULL,
                total_liabilities TEXT NOT NULL,
                net_worth_delta TEXT NOT NULL DEFAULT '0',
                net_worth_delta_percent TEXT,
                biggest_contributor_name TEXT,
                biggest_contributor_delta TEXT NOT NULL DEFAULT '0',
                biggest_contributor_positive INTEGER NOT NULL DEFAULT 1,
                interpretation TEXT NOT NULL DEFAULT '',
                email_sent INTEGER NOT NULL DEFAULT 0,
                email_sent_at TIMESTAMP,
                created_at TIMESTAMP NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE,
                UNIQUE (user_id, month)
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS email_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                to_email TEXT NOT NULL,
                subject TEXT NOT NULL,
                html_body TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                attempt_count INTEGER NOT NULL DEFAULT 0,
                max_attempts INTEGER NOT NULL DEFAULT 3,
                last_attempt_at TIMESTAMP,
                next_attempt_at TIMESTAMP,
                sent_at TIMESTAMP,
                error_message TEXT,
                idempotency_key TEXT,
                created_at TIMESTAMP NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS processed_jobs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                job_type TEXT NOT NULL,
                job_key TEXT NOT NULL,
                processed_at TIMESTAMP NOT NULL,
                success INTEGER NOT NULL DEFAULT 1,
                error_message TEXT,
                metadata TEXT NOT NULL DEFAULT '{}'
            )
        """)

        # Create indexes for common queries
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_accounts_user ON accounts(user_id)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_balance_history_account
            ON balance_history(account_id, recorded_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_snapshots_email_sent
            ON monthly_snapshots(email_sent)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_email_queue_status
            ON email_queue(status, next_attempt_at)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_email_queue_idempotency
            ON email_queue(idempotency_key)
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_processed_jobs_type_key
            ON processed_jobs(job_type, job_key)
        """)

        self.connection.commit()

    def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
