"""Key delivery — hands a new key to the customer by email.

Modes (``EMAIL_MODE``):
- ``none``: drop the message (keys are recovered through the admin API)
- ``console``: log that a key was delivered, without the key itself
- ``smtp``: send a plain-text email through the configured SMTP relay
"""

from __future__ import annotations

import asyncio
import smtplib
from email.message import EmailMessage

from config.settings import Settings
from keygate.core.exceptions import NotificationDeliveryError
from keygate.core.interfaces import BaseNotifier
from keygate.core.logging import get_logger
from keygate.saas.credential import mask_secret

log = get_logger(__name__)

SUBJECT = "Your API Key"


def render_body(secret_value: str) -> str:
    return (
        "Thanks for subscribing!\n\n"
        f"Your API Key: {secret_value}\n\n"
        "Send it in the x-api-key header with every request. Keep it secret.\n"
    )


class NullNotifier(BaseNotifier):
    async def send_key(self, owner_identity: str, secret_value: str) -> None:
        log.debug("key_delivery_skipped", owner=owner_identity)


class ConsoleNotifier(BaseNotifier):
    async def send_key(self, owner_identity: str, secret_value: str) -> None:
        log.info("key_delivered_console", owner=owner_identity, key=mask_secret(secret_value))


class SmtpNotifier(BaseNotifier):
    """Blocking smtplib client run in a worker thread."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        sender: str,
        user: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._host = host
        self._port = port
        self._sender = sender
        self._user = user
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout

    def build_message(self, owner_identity: str, secret_value: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._sender
        msg["To"] = owner_identity
        msg["Subject"] = SUBJECT
        msg.set_content(render_body(secret_value))
        return msg

    def _send(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as s:
            if self._use_tls:
                s.starttls()
            if self._user:
                s.login(self._user, self._password)
            s.send_message(msg)

    async def send_key(self, owner_identity: str, secret_value: str) -> None:
        msg = self.build_message(owner_identity, secret_value)
        try:
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationDeliveryError(
                "SMTP delivery failed",
                context={"owner": owner_identity, "host": self._host},
            ) from exc
        log.info("key_delivered_email", owner=owner_identity)


def build_notifier(settings: Settings) -> BaseNotifier:
    """Pick the notifier for the configured email mode."""
    if settings.email_mode == "console":
        return ConsoleNotifier()
    if settings.email_mode == "smtp":
        if not (settings.smtp_host and settings.email_from):
            log.warning("smtp_not_configured", host=settings.smtp_host)
            return NullNotifier()
        return SmtpNotifier(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.email_from,
            user=settings.smtp_user,
            password=settings.smtp_password.get_secret_value(),
            use_tls=settings.smtp_tls,
        )
    return NullNotifier()
