"""
Base transport classes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Any


class TransportError(Exception):
    """Raised when a transport cannot be built from configuration."""

    pass


@dataclass
class NotificationResult:
    """Result of a delivery attempt."""

    success: bool
    channel: str
    error: Optional[str] = None


class Transport(ABC):
    """Abstract outbound email transport."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the transport has the credentials it needs to send."""
        pass

    @abstractmethod
    def send(self, to_email: str, subject: str, html_body: str) -> NotificationResult:
        """
        Deliver a single email.

        Args:
            to_email: Recipient address
            subject: Email subject
            html_body: HTML content

        Returns:
            NotificationResult indicating success or failure
        """
        pass


class TransportFactory:
    """Factory for creating transport instances."""

    @staticmethod
    def create(config: dict[str, Any]) -> Transport:
        """
        Create a transport from configuration.

        Args:
            config: Transport configuration dict

        Returns:
            Appropriate Transport instance

        Raises:
            TransportError: If transport type is unknown
        """
        transport_type = config.get("type")

        if transport_type == "sendgrid":
            from .sendgrid import SendGridTransport

            return SendGridTransport(
                api_key=config.get("api_key", ""),
                from_email=config.get("from_email", ""),
                from_name=config.get("from_name", "Net Worth Tracker"),
            )

        elif transport_type == "smtp":
            from .email import SmtpTransport

            return SmtpTransport(
                smtp_host=config.get("host", ""),
                smtp_port=config.get("port", 587),
                smtp_user=config.get("user", ""),
                smtp_password=config.get("password", ""),
                from_address=config.get("from_address", ""),
            )

        else:
            raise TransportError(f"Unknown transport type: {transport_type}")
