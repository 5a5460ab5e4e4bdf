"""
core/mailer.py -- Outbound email delivery.

The rest of the service treats email as a single capability:
    mailer.send(to, subject, body)  -- returns on success, raises on failure.

Two implementations:
  SmtpMailer    -- plain-text mail over SMTP with STARTTLS (production).
  ConsoleMailer -- writes the message to the log instead (local development,
                   EMAIL_BACKEND=console).

Failures are raised as EmailDeliveryError and are never retried here. The
caller has already persisted whatever the mail refers to (e.g. the OTP row);
the client is expected to re-request.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from core.config import Settings

logger = logging.getLogger("billingauth.mail")


class EmailDeliveryError(Exception):
    """Raised when the transport refuses or fails to deliver a message."""


class Mailer(Protocol):
    def send(self, to: str, subject: str, body: str) -> None: ...


class SmtpMailer:
    """Send plain-text mail through the SMTP relay configured in Settings."""

    def __init__(self, settings: Settings, timeout: float = 30.0) -> None:
        self.host = settings.email_host
        self.port = settings.email_port
        self.user = settings.email_user
        self.password = settings.email_pass
        self.sender = settings.sender_address
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    def send(self, to: str, subject: str, body: str) -> None:
        msg = self._build_message(to, subject, body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                if self.user:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", to, exc)
            raise EmailDeliveryError(f"could not deliver email to {to}") from exc
        logger.info("Email sent to %s: %s", to, subject)


class ConsoleMailer:
    """Log outgoing mail instead of sending it. Development only."""

    def send(self, to: str, subject: str, body: str) -> None:
        logger.info("[console mail] to=%s subject=%r body=%r", to, subject, body)


def build_mailer(settings: Settings) -> Mailer:
    """Return the mailer selected by EMAIL_BACKEND."""
    if settings.email_backend == "console":
        return ConsoleMailer()
    return SmtpMailer(settings)
