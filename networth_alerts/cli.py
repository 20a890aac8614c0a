"""
CLI commands for networth-alerts.
"""

import argparse
import json
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

from networth_alerts.alerts.snapshots import first_of_month
from networth_alerts.app import NetWorthAlertsApp
from networth_alerts.config import AppConfig, load_config
from networth_alerts.database.connection import Database
from networth_alerts.database.models import (
    Account,
    AccountCategory,
    AlertConfiguration,
    BalanceRecord,
    JobType,
    User,
)


def add_user(app: NetWorthAlertsApp, email: str) -> User:
    """Add a new user with default alert settings."""
    user = app.user_repo.create(User(email=email))
    app.config_repo.get_or_create(user.id)
    return user


def add_account(
    app: NetWorthAlertsApp,
    user_id: int,
    name: str,
    category: str,
    balance: Optional[str] = None,
    institution: Optional[str] = None,
) -> Account:
    """Add an account, optionally with an opening balance."""
    account = app.account_repo.create(
        Account(
            user_id=user_id,
            name=name,
            category=AccountCategory(category),
            institution=institution,
        )
    )
    if balance is not None:
        app.account_repo.record_balance(account.id, Decimal(balance), notes="Opening balance")
        account.current_balance = Decimal(balance)
    return account


def _parse_timestamp(value: str) -> datetime:
    when = datetime.fromisoformat(value)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


def record_balance(
    app: NetWorthAlertsApp,
    account_id: int,
    balance: str,
    recorded_at: Optional[str] = None,
    notes: Optional[str] = None,
) -> BalanceRecord:
    """Record a new balance for an account."""
    if app.account_repo.get_by_id(account_id) is None:
        raise ValueError(f"Account {account_id} not found")
    when = _parse_timestamp(recorded_at) if recorded_at else None
    return app.account_repo.record_balance(account_id, Decimal(balance), when, notes)


def import_balance(
    app: NetWorthAlertsApp,
    account_id: int,
    balance: str,
    recorded_at: str,
    notes: Optional[str] = None,
) -> BalanceRecord:
    """Backfill a historical balance without changing the current balance."""
    if app.account_repo.get_by_id(account_id) is None:
        raise ValueError(f"Account {account_id} not found")
    return app.account_repo.add_balance_record(
        BalanceRecord(
            account_id=account_id,
            balance=Decimal(balance),
            recorded_at=_parse_timestamp(recorded_at),
            notes=notes,
        )
    )


def set_account_active(app: NetWorthAlertsApp, account_id: int, active: bool) -> Account:
    """Activate or deactivate an account. Inactive accounts are ignored by alerts."""
    account = app.account_repo.get_by_id(account_id)
    if account is None:
        raise ValueError(f"Account {account_id} not found")
    app.account_repo.set_active(account_id, active)
    account.is_active = active
    return account


def set_alert_config(
    app: NetWorthAlertsApp,
    user_id: int,
    enabled: Optional[bool] = None,
    threshold: Optional[str] = None,
    runway_months: Optional[int] = None,
    snapshots: Optional[bool] = None,
) -> AlertConfiguration:
    """Update a user's alert settings, leaving unspecified fields alone."""
    config = app.config_repo.get_or_create(user_id)
    if enabled is not None:
        config.alerts_enabled = enabled
    if threshold is not None:
        config.net_worth_change_threshold_percent = Decimal(threshold)
    if runway_months is not None:
        config.cash_runway_months = runway_months
    if snapshots is not None:
        config.monthly_snapshot_enabled = snapshots
    app.config_repo.update(config)
    return config


def _on_off(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return value == "on"


def _load_app_config(path: str, db_path: Optional[str]) -> AppConfig:
    config = load_config(path) if os.path.exists(path) else AppConfig()
    if db_path:
        config.database.path = db_path
    return config


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="networth-alerts CLI")
    parser.add_argument("--config", default="config.yaml", help="Path to config file")
    parser.add_argument("--db", help="Database path (overrides config)")

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # User commands
    user_parser = subparsers.add_parser("user", help="User management")
    user_subparsers = user_parser.add_subparsers(dest="action")

    add_user_parser = user_subparsers.add_parser("add", help="Add user")
    add_user_parser.add_argument("--email", required=True, help="User email")

    user_subparsers.add_parser("list", help="List users")

    # Account commands
    account_parser = subparsers.add_parser("account", help="Account management")
    account_subparsers = account_parser.add_subparsers(dest="action")

    add_account_parser = account_subparsers.add_parser("add", help="Add account")
    add_account_parser.add_argument("--user", type=int, required=True, help="User ID")
    add_account_parser.add_argument("--name", required=True, help="Account name")
    add_account_parser.add_argument(
        "--category",
        required=True,
        choices=[c.value for c in AccountCategory],
    )
    add_account_parser.add_argument("--balance", help="Opening balance")
    add_account_parser.add_argument("--institution", help="Institution name")

    list_account_parser = account_subparsers.add_parser("list", help="List accounts")
    list_account_parser.add_argument("--user", type=int, required=True, help="User ID")

    for action, help_text in (("activate", "Activate account"), ("deactivate", "Deactivate account")):
        toggle_parser = account_subparsers.add_parser(action, help=help_text)
        toggle_parser.add_argument("id", type=int, help="Account ID")

    # Balance commands
    balance_parser = subparsers.add_parser("balance", help="Balance history")
    balance_subparsers = balance_parser.add_subparsers(dest="action")

    record_parser = balance_subparsers.add_parser("record", help="Record a balance")
    record_parser.add_argument("--account", type=int, required=True, help="Account ID")
    record_parser.add_argument("--amount", required=True, help="New balance")
    record_parser.add_argument("--at", help="ISO timestamp (default: now)")
    record_parser.add_argument("--notes", help="Free-form notes")

    import_parser = balance_subparsers.add_parser(
        "import", help="Backfill a historical balance"
    )
    import_parser.add_argument("--account", type=int, required=True, help="Account ID")
    import_parser.add_argument("--amount", required=True, help="Historical balance")
    import_parser.add_argument("--at", required=True, help="ISO timestamp")
    import_parser.add_argument("--notes", help="Free-form notes")

    # Alert configuration commands
    config_parser = subparsers.add_parser("config", help="Alert settings")
    config_subparsers = config_parser.add_subparsers(dest="action")

    show_config_parser = config_subparsers.add_parser("show", help="Show settings")
    show_config_parser.add_argument("--user", type=int, required=True, help="User ID")

    set_config_parser = config_subparsers.add_parser("set", help="Change settings")
    set_config_parser.add_argument("--user", type=int, required=True, help="User ID")
    set_config_parser.add_argument("--alerts", choices=["on", "off"])
    set_config_parser.add_argument("--threshold", help="Net worth change threshold (%%)")
    set_config_parser.add_argument("--runway", type=int, help="Cash runway threshold (months)")
    set_config_parser.add_argument("--snapshots", choices=["on", "off"])

    # Snapshot commands
    snapshot_parser = subparsers.add_parser("snapshot", help="Monthly snapshots")
    snapshot_subparsers = snapshot_parser.add_subparsers(dest="action")

    generate_parser = snapshot_subparsers.add_parser("generate", help="Generate a snapshot")
    generate_parser.add_argument("--user", type=int, required=True, help="User ID")
    generate_parser.add_argument("--month", required=True, help="Month as YYYY-MM")

    list_snapshot_parser = snapshot_subparsers.add_parser("list", help="List snapshots")
    list_snapshot_parser.add_argument("--user", type=int, required=True, help="User ID")
    list_snapshot_parser.add_argument("--limit", type=int, default=12)

    # Queue commands
    queue_parser = subparsers.add_parser("queue", help="Email queue")
    queue_subparsers = queue_parser.add_subparsers(dest="action")
    queue_subparsers.add_parser("stats", help="Show queue counts")
    queue_subparsers.add_parser("drain", help="Attempt due emails now")
    cancel_parser = queue_subparsers.add_parser("cancel", help="Cancel a pending email")
    cancel_parser.add_argument("id", type=int, help="Queue entry ID")
    show_queue_parser = queue_subparsers.add_parser("show", help="Show emails for a key")
    show_queue_parser.add_argument("key", help="Idempotency key")
    cleanup_parser = queue_subparsers.add_parser("cleanup", help="Delete old rows")
    cleanup_parser.add_argument("--email-days", type=int, default=30)
    cleanup_parser.add_argument("--job-days", type=int, default=90)

    # Job ledger commands
    jobs_parser = subparsers.add_parser("jobs", help="Job ledger")
    jobs_subparsers = jobs_parser.add_subparsers(dest="action")
    recent_parser = jobs_subparsers.add_parser("recent", help="Show recent runs")
    recent_parser.add_argument(
        "--type",
        default=JobType.ALERT_PROCESSING,
        choices=JobType.ALL,
    )
    recent_parser.add_argument("--limit", type=int, default=20)
    show_job_parser = jobs_subparsers.add_parser("show", help="Show the last run of a key")
    show_job_parser.add_argument("--type", required=True, choices=JobType.ALL)
    show_job_parser.add_argument("--key", required=True, help="Job key")

    subparsers.add_parser("health", help="Background job health")

    # DB commands
    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="action")
    db_subparsers.add_parser("status", help="Check database status")

    args = parser.parse_args()

    config = _load_app_config(args.config, args.db)

    # Initialize database
    db = Database(config.database.path)
    db.initialize()
    app = NetWorthAlertsApp(db=db, config=config)

    # Handle commands
    if args.command == "user":
        if args.action == "add":
            user = add_user(app, email=args.email)
            print(f"Created user with ID: {user.id}")
        elif args.action == "list":
            for user in app.user_repo.list_all():
                print(f"ID: {user.id}, Email: {user.email}")

    elif args.command == "account":
        if args.action == "add":
            account = add_account(
                app,
                args.user,
                args.name,
                args.category,
                balance=args.balance,
                institution=args.institution,
            )
            print(f"Created account with ID: {account.id}")
        elif args.action == "list":
            for a in app.account_repo.accounts_for_user(args.user, active_only=False):
                status = "" if a.is_active else " (inactive)"
                print(f"{a.id}: {a.name} [{a.category.value}] {a.current_balance}{status}")
        elif args.action in ("activate", "deactivate"):
            account = set_account_active(app, args.id, args.action == "activate")
            print(f"Account {account.id} is now {'active' if account.is_active else 'inactive'}")

    elif args.command == "balance":
        if args.action == "record":
            record = record_balance(app, args.account, args.amount, args.at, args.notes)
            print(f"Recorded balance {record.balance} at {record.recorded_at.isoformat()}")
        elif args.action == "import":
            record = import_balance(app, args.account, args.amount, args.at, args.notes)
            print(f"Imported balance {record.balance} at {record.recorded_at.isoformat()}")

    elif args.command == "config":
        if args.action == "show":
            settings = app.config_repo.get_or_create(args.user)
            print(f"Alerts enabled: {settings.alerts_enabled}")
            print(f"Net worth threshold: {settings.net_worth_change_threshold_percent}%")
            print(f"Cash runway threshold: {settings.cash_runway_months} months")
            print(f"Monthly snapshots: {settings.monthly_snapshot_enabled}")
            print(f"Last alerted net worth: {settings.last_alerted_net_worth}")
        elif args.action == "set":
            set_alert_config(
                app,
                args.user,
                enabled=_on_off(args.alerts),
                threshold=args.threshold,
                runway_months=args.runway,
                snapshots=_on_off(args.snapshots),
            )
            print("Settings updated")

    elif args.command == "snapshot":
        if args.action == "generate":
            month = first_of_month(date.fromisoformat(f"{args.month}-01"))
            snapshot = app.snapshot_engine.generate_monthly_snapshot(args.user, month)
            if snapshot is None:
                print("No accounts, nothing to snapshot")
            else:
                print(f"Snapshot {snapshot.month:%Y-%m}: net worth {snapshot.net_worth}")
                print(snapshot.interpretation)
        elif args.action == "list":
            for snapshot in app.snapshot_repo.list_for_user(args.user, limit=args.limit):
                sent = "sent" if snapshot.email_sent else "unsent"
                print(f"{snapshot.month:%Y-%m}: {snapshot.net_worth} ({sent})")

    elif args.command == "queue":
        if args.action == "stats":
            stats = app.email_queue.get_stats()
            print(f"Pending: {stats.pending}, Failed: {stats.failed}, Total: {stats.total}")
        elif args.action == "drain":
            if not app.transport.is_configured:
                print("Email transport not configured")
            else:
                processed = app.email_queue.drain_due()
                print(f"Attempted {processed} emails")
        elif args.action == "cancel":
            if app.email_queue.cancel(args.id):
                print(f"Cancelled email {args.id}")
            else:
                print(f"Email {args.id} is not pending")
        elif args.action == "show":
            for entry in app.email_queue_repo.list_by_idempotency_key(args.key):
                error = f" ({entry.error_message})" if entry.error_message else ""
                print(
                    f"{entry.id}: {entry.status.value} to {entry.to_email}, "
                    f"attempts {entry.attempt_count}{error}"
                )
        elif args.action == "cleanup":
            emails = app.email_queue_repo.cleanup_old(args.email_days)
            jobs = app.job_repo.cleanup_old(args.job_days)
            print(f"Deleted {emails} emails and {jobs} job records")

    elif args.command == "jobs":
        if args.action == "recent":
            for job in app.job_repo.get_recent(args.type, limit=args.limit):
                outcome = "ok" if job.success else f"failed: {job.error_message}"
                print(f"{job.processed_at.isoformat()} {job.job_key} {outcome} {json.dumps(job.metadata)}")
        elif args.action == "show":
            job = app.job_repo.get_by_key(args.type, args.key)
            if job is None:
                print(f"No {args.type} run recorded for {args.key}")
            else:
                outcome = "ok" if job.success else f"failed: {job.error_message}"
                print(f"{job.processed_at.isoformat()} {outcome} {json.dumps(job.metadata)}")

    elif args.command == "health":
        report = app.health()
        print(f"Status: {report.status}")
        print(report.description)
        for key, value in report.data.items():
            print(f"  {key}: {value}")

    elif args.command == "db":
        if args.action == "status":
            print(f"Database initialized at {config.database.path}")

    db.close()


if __name__ == "__main__":
    main()
