"""
SendGrid HTTP API transport.
"""

import logging
import time
from typing import Any

import requests

from .base import Transport, NotificationResult

logger = logging.getLogger(__name__)


class SendGridTransport(Transport):
    """Sends email through the SendGrid v3 mail/send endpoint."""

    API_URL = "https://api.sendgrid.com/v3/mail/send"

    def __init__(
        self,
        api_key: str,
        from_email: str,
        from_name: str = "Net Worth Tracker",
        timeout: float = 10,
    ):
        """
        Initialize SendGrid transport.

        Args:
            api_key: SendGrid API key
            from_email: Verified sender address
            from_name: Sender display name
            timeout: HTTP timeout in seconds
        """
        self.api_key = api_key
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and bool(self.from_email)

    def send(self, to_email: str, subject: str, html_body: str) -> NotificationResult:
        """Send email via SendGrid."""
        if not self.is_configured:
            return NotificationResult(
                success=False,
                channel="sendgrid",
                error="SendGrid is not configured",
            )

        try:
            payload = self._create_payload(to_email, subject, html_body)
            response = self._post(payload)

            if response.ok:
                logger.info(f"Email sent to {to_email} via SendGrid")
                return NotificationResult(success=True, channel="sendgrid")
            else:
                return NotificationResult(
                    success=False,
                    channel="sendgrid",
                    error=f"HTTP {response.status_code}: {response.text}",
                )

        except requests.exceptions.ConnectionError as e:
            return NotificationResult(
                success=False,
                channel="sendgrid",
                error=f"Connection error: {str(e)}",
            )
        except requests.exceptions.RequestException as e:
            return NotificationResult(
                success=False,
                channel="sendgrid",
                error=str(e),
            )

    def _post(self, payload: dict[str, Any]) -> requests.Response:
        """Post payload with rate limit handling."""
        headers = {"Authorization": f"Bearer {self.api_key}"}
        response = requests.post(
            self.API_URL,
            json=payload,
            headers=headers,
            timeout=self.timeout,
        )

        # Handle rate limiting
        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After", "1")
            time.sleep(float(retry_after))
            response = requests.post(
                self.API_URL,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )

        return response

    def _create_payload(self, to_email: str, subject: str, html_body: str) -> dict[str, Any]:
        """Create SendGrid request payload."""
        return {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [{"type": "text/html", "value": html_body}],
        }
