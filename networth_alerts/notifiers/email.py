"""
Email SMTP transport.
"""

import re
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from .base import Transport, NotificationResult


class SmtpTransport(Transport):
    """Sends email via SMTP with STARTTLS."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_address: str,
    ):
        """
        Initialize SMTP transport.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            from_address: Sender email address
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_address = from_address

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.from_address)

    def send(self, to_email: str, subject: str, html_body: str) -> NotificationResult:
        """Send email over SMTP."""
        try:
            message = self._create_message(to_email, subject, html_body)

            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                server.starttls()
                server.login(self.smtp_user, self.smtp_password)
                server.send_message(message)

            return NotificationResult(success=True, channel="smtp")

        except smtplib.SMTPAuthenticationError as e:
            return NotificationResult(
                success=False,
                channel="smtp",
                error=f"Authentication failed: {str(e)}",
            )
        except (smtplib.SMTPException, OSError) as e:
            return NotificationResult(
                success=False,
                channel="smtp",
                error=f"SMTP error: {str(e)}",
            )

    def _create_message(self, to_email: str, subject: str, html_body: str) -> MIMEMultipart:
        """Create email message."""
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = self.from_address
        message["To"] = to_email

        # Plain text version
        message.attach(MIMEText(self._html_to_text(html_body), "plain"))

        # HTML version
        message.attach(MIMEText(html_body, "html"))

        return message

    def _html_to_text(self, html_body: str) -> str:
        """Crude plain text fallback for clients without HTML."""
        text = re.sub(r"<style.*?</style>", "", html_body, flags=re.DOTALL)
        text = re.sub(r"<[^>]+>", "", text)
        lines = [line.strip() for line in text.splitlines()]
        return "\n".join(line for line in lines if line)
