from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from python_http_client.exceptions import HTTPError
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, MailSettings, SandBoxMode

from ..config import get_settings
from ..domain.errors import DeliveryError

logger = logging.getLogger(__name__)


class EmailSender(Protocol):
    async def send(self, *, to: str, subject: str, body: str) -> None: ...


class ConsoleEmailSender:
    """DEV sender: logs the message instead of delivering it."""

    async def send(self, *, to: str, subject: str, body: str) -> None:
        logger.info("email_console", extra={"to": to, "subject": subject, "body": body})


class SendGridEmailSender:
    """Thin wrapper around the SendGrid client with async-friendly send."""

    def __init__(self, api_key: str, from_email: str, *, sandbox: bool = False, client: Optional[Any] = None) -> None:
        self._from_email = from_email
        self._sandbox = sandbox
        self._client = client or SendGridAPIClient(api_key)

    def _build(self, to: str, subject: str, body: str) -> Mail:
        message = Mail(from_email=self._from_email, to_emails=to, subject=subject, plain_text_content=body)
        if self._sandbox:
            # accepted by the API but never delivered
            mail_settings = MailSettings()
            mail_settings.sandbox_mode = SandBoxMode(True)
            message.mail_settings = mail_settings
        return message

    async def send(self, *, to: str, subject: str, body: str) -> None:
        message = self._build(to, subject, body)
        loop = asyncio.get_running_loop()
        try:
            resp = await loop.run_in_executor(None, lambda: self._client.send(message))
        except (HTTPError, OSError) as exc:
            logger.warning("SendGrid send failed: %s", exc)
            raise DeliveryError() from exc

        status = getattr(resp, "status_code", None)
        if status not in (200, 202):
            logger.warning("SendGrid returned non-2xx: %s", status)
            raise DeliveryError(f"SendGrid returned {status}")


def build_email_sender() -> EmailSender:
    settings = get_settings()
    if settings.EMAIL_BACKEND == "sendgrid":
        missing = [
            key
            for key, value in [
                ("SENDGRID_API_KEY", settings.SENDGRID_API_KEY),
                ("EMAIL_FROM", settings.EMAIL_FROM),
            ]
            if not value
        ]
        if missing:
            raise RuntimeError(f"SendGrid email backend missing settings: {', '.join(missing)}")
        return SendGridEmailSender(
            settings.SENDGRID_API_KEY,  # type: ignore[arg-type]
            settings.EMAIL_FROM,  # type: ignore[arg-type]
            sandbox=settings.SENDGRID_SANDBOX,
        )
    logger.info("Email delivery uses the console backend; codes are logged, not sent.")
    return ConsoleEmailSender()
