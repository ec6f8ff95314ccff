"""Outbound email for account verification.

With ``SMTP_HOST`` set, messages go out over SMTP (STARTTLS unless
``SMTP_USE_TLS=false``). Without it the message is written to the log instead,
which is what local development relies on to pick up verification links.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Protocol
from urllib.parse import urlencode

from .config import Settings

logger = logging.getLogger(__name__)

VERIFICATION_SUBJECT = "Verify your email address"

VERIFICATION_TEXT = """Hello,

Thanks for signing up. Please confirm your email address by opening the link below:

{verify_url}

If you did not create an account, you can ignore this message.

{sender_name}
"""


@dataclass(frozen=True, slots=True)
class OutboundEmail:
    to: str
    subject: str
    body: str


class Notifier(Protocol):
    def send(self, message: OutboundEmail) -> None: ...


def verification_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/auth/verify-email?{urlencode({'token': token})}"


def build_verification_email(settings: Settings, to_email: str, token: str) -> OutboundEmail:
    return OutboundEmail(
        to=to_email,
        subject=VERIFICATION_SUBJECT,
        body=VERIFICATION_TEXT.format(
            verify_url=verification_url(settings.app_base_url, token),
            sender_name=settings.email_from_name,
        ),
    )


class ConsoleNotifier:
    """Logs outgoing mail instead of delivering it."""

    def send(self, message: OutboundEmail) -> None:
        logger.info("email delivery not configured; message for %s follows", message.to)
        logger.info("Subject: %s\n%s", message.subject, message.body)


class SmtpNotifier:
    """Delivers mail through an SMTP relay, opening one connection per message."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        from_email: str,
        from_name: str = "",
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._sender = formataddr((from_name, from_email)) if from_name else from_email
        self._timeout = timeout

    def send(self, message: OutboundEmail) -> None:
        email = EmailMessage()
        email["From"] = self._sender
        email["To"] = message.to
        email["Subject"] = message.subject
        email.set_content(message.body)

        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as client:
            if self._use_tls:
                client.starttls()
            if self._username:
                client.login(self._username, self._password)
            client.send_message(email)
        logger.info("verification email sent to %s", message.to)


def build_notifier(settings: Settings) -> Notifier:
    if not settings.email_delivery_configured:
        logger.info("SMTP_HOST not set, emails will be logged to the console")
        return ConsoleNotifier()
    return SmtpNotifier(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        from_email=settings.email_from,
        from_name=settings.email_from_name,
    )


def deliver_quietly(notifier: Notifier, message: OutboundEmail) -> None:
    """Send ``message``, logging instead of raising on failure."""
    try:
        notifier.send(message)
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("failed to send email to %s: %s", message.to, exc)
