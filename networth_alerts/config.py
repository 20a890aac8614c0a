"""
Configuration loading and validation.
"""

import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable

import yaml

from networth_alerts.database.models import AccountCategory


class ConfigValidationError(Exception):
    """Raised when configuration is invalid."""

    pass


@dataclass
class DatabaseConfig:
    """Database configuration."""

    path: str = "data/networth.db"


@dataclass
class ScheduleConfig:
    """Scheduler loop configuration."""

    interval_seconds: int = 3600
    # Monthly snapshots run on the 1st before this hour (UTC)
    snapshot_window_hours: int = 2


@dataclass
class AlertsConfig:
    """Alert evaluation settings."""

    max_alerts_per_run: int = 5
    default_net_worth_threshold_percent: Decimal = Decimal("5")
    default_cash_runway_months: int = 3
    runway_window_days: int = 90
    liquid_categories: list[str] = field(default_factory=lambda: ["banking"])

    @property
    def liquid_account_categories(self) -> list[AccountCategory]:
        return [AccountCategory(c) for c in self.liquid_categories]


@dataclass
class EmailQueueConfig:
    """Email queue retry settings."""

    batch_size: int = 10
    max_attempts: int = 3
    backoff_base_minutes: float = 1


@dataclass
class SendGridConfig:
    """SendGrid credentials."""

    api_key: str = ""
    from_email: str = ""
    from_name: str = "Net Worth Tracker"


@dataclass
class SmtpConfig:
    """SMTP credentials."""

    host: str = "smtp.gmail.com"
    port: int = 587
    user: str = ""
    password: str = ""
    from_address: str = ""


@dataclass
class TransportConfig:
    """Outbound email transport selection."""

    type: str = "sendgrid"
    sendgrid: SendGridConfig = field(default_factory=SendGridConfig)
    smtp: SmtpConfig = field(default_factory=SmtpConfig)

    def as_factory_dict(self) -> dict[str, Any]:
        """Flatten the selected transport's settings for TransportFactory."""
        if self.type == "smtp":
            settings = vars(self.smtp)
        else:
            settings = vars(self.sendgrid)
        return {"type": self.type, **settings}


@dataclass
class HealthConfig:
    """Health check thresholds."""

    alert_job_max_age_hours: int = 25
    max_failed_emails: int = 10
    max_pending_emails: int = 100


@dataclass
class AdvancedConfig:
    """Advanced configuration."""

    log_level: str = "INFO"


@dataclass
class AppConfig:
    """Main application configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    email_queue: EmailQueueConfig = field(default_factory=EmailQueueConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)


def _substitute_env_vars(value: Any) -> Any:
    """Substitute environment variables in string values."""
    if isinstance(value, str):
        # Match ${VAR_NAME} pattern
        pattern = r"\$\{([^}]+)\}"
        matches = re.findall(pattern, value)
        for var_name in matches:
            env_value = os.environ.get(var_name, "")
            value = value.replace(f"${{{var_name}}}", env_value)
        return value
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values."""
    db_config = config_dict.get("database") or {}
    db_path = db_config.get("path", DatabaseConfig.path)
    if not db_path:
        raise ConfigValidationError("Database path is required")

    path = Path(db_path)
    parent = path.parent
    if db_path != ":memory:" and parent.exists() and not os.access(parent, os.W_OK):
        raise ConfigValidationError(f"Database path not writable: {parent}")

    schedule = config_dict.get("schedule") or {}
    if _to_number(schedule.get("interval_seconds", 3600), "schedule.interval_seconds") <= 0:
        raise ConfigValidationError("schedule.interval_seconds must be positive")
    window = _to_number(
        schedule.get("snapshot_window_hours", 2), "schedule.snapshot_window_hours"
    )
    if not 1 <= window <= 24:
        raise ConfigValidationError("schedule.snapshot_window_hours must be between 1 and 24")

    alerts = config_dict.get("alerts") or {}
    if _to_number(alerts.get("max_alerts_per_run", 5), "alerts.max_alerts_per_run") < 0:
        raise ConfigValidationError("alerts.max_alerts_per_run cannot be negative")
    if _to_number(alerts.get("runway_window_days", 90), "alerts.runway_window_days") < 1:
        raise ConfigValidationError("alerts.runway_window_days must be at least 1")
    if _to_number(
        alerts.get("default_cash_runway_months", 3), "alerts.default_cash_runway_months"
    ) < 0:
        raise ConfigValidationError("alerts.default_cash_runway_months cannot be negative")
    valid_categories = {c.value for c in AccountCategory}
    for category in alerts.get("liquid_categories", ["banking"]):
        if category not in valid_categories:
            raise ConfigValidationError(f"Unknown account category: {category}")

    queue = config_dict.get("email_queue") or {}
    if _to_number(queue.get("max_attempts", 3), "email_queue.max_attempts") < 1:
        raise ConfigValidationError("email_queue.max_attempts must be at least 1")
    if _to_number(queue.get("batch_size", 10), "email_queue.batch_size") < 1:
        raise ConfigValidationError("email_queue.batch_size must be at least 1")
    backoff = _to_number(
        queue.get("backoff_base_minutes", 1), "email_queue.backoff_base_minutes", float
    )
    if backoff <= 0:
        raise ConfigValidationError("email_queue.backoff_base_minutes must be positive")

    transport = config_dict.get("transport") or {}
    if transport.get("type", "sendgrid") not in ("sendgrid", "smtp"):
        raise ConfigValidationError(f"Unknown transport type: {transport.get('type')}")


def _to_number(value: Any, name: str, cast: Callable[[Any], Any] = int) -> Any:
    try:
        return cast(value)
    except (TypeError, ValueError):
        raise ConfigValidationError(f"{name} must be a number, got {value!r}")


def _to_decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ConfigValidationError(f"{name} must be a number, got {value!r}")


def load_config(config_path: str) -> AppConfig:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to configuration file

    Returns:
        AppConfig instance

    Raises:
        ConfigValidationError: If configuration is invalid
        FileNotFoundError: If config file doesn't exist
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(path) as f:
        raw_config = yaml.safe_load(f) or {}

    # Substitute environment variables
    config_dict = _substitute_env_vars(raw_config)

    _validate_config(config_dict)

    database = DatabaseConfig(**(config_dict.get("database") or {}))
    schedule = ScheduleConfig(**(config_dict.get("schedule") or {}))

    alerts_dict = dict(config_dict.get("alerts") or {})
    if "default_net_worth_threshold_percent" in alerts_dict:
        alerts_dict["default_net_worth_threshold_percent"] = _to_decimal(
            alerts_dict["default_net_worth_threshold_percent"],
            "alerts.default_net_worth_threshold_percent",
        )
    alerts = AlertsConfig(**alerts_dict)

    email_queue = EmailQueueConfig(**(config_dict.get("email_queue") or {}))

    # Transport
    transport_dict = dict(config_dict.get("transport") or {})
    sendgrid_dict = transport_dict.pop("sendgrid", None) or {}
    smtp_dict = transport_dict.pop("smtp", None) or {}
    transport = TransportConfig(
        type=transport_dict.get("type", "sendgrid"),
        sendgrid=SendGridConfig(**sendgrid_dict),
        smtp=SmtpConfig(**smtp_dict),
    )

    health = HealthConfig(**(config_dict.get("health") or {}))
    advanced = AdvancedConfig(**(config_dict.get("advanced") or {}))

    return AppConfig(
        database=database,
        schedule=schedule,
        alerts=alerts,
        email_queue=email_queue,
        transport=transport,
        health=health,
        advanced=advanced,
    )
