"""
SMTP mail transport for notification messages.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from pipewatch.src.config import Settings
from pipewatch.src.services.errors import DeliveryFailed

logger = logging.getLogger(__name__)

class SmtpMailer:
    """
    Sends plain-text mail through SMTP.

    When no host is configured delivery is a documented no-op: ``deliver``
    returns False instead of raising, so callers can tell "not configured"
    apart from "delivery failed".
    """

    def __init__(
        self,
        host: str = "",
        port: int = 587,
        user: str = "",
        password: str = "",
        sender: str = "",
        use_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpMailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_from,
            use_tls=settings.smtp_use_tls,
        )

    @property
    def configured(self) -> bool:
        return bool(self.host and self.sender)

    async def deliver(self, address: str, subject: str, body: str) -> bool:
        if not self.configured:
            logger.debug(f"Mail transport not configured, skipping message to {address}")
            return False

        message = self._build_message(address, subject, body)
        try:
            await asyncio.to_thread(self._send, message)
        except (smtplib.SMTPException, OSError) as e:
            raise DeliveryFailed(address, str(e)) from e

        logger.info(f"Notification sent to {address}: {subject}")
        return True

    def _build_message(self, address: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = self.sender
        message["To"] = address
        message.set_content(body)
        return message

    def _send(self, message: EmailMessage):
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(message)

def describe(mailer: Optional[SmtpMailer]) -> str:
    if mailer is None or not mailer.configured:
        return "disabled"
    return f"{mailer.host}:{mailer.port}"
