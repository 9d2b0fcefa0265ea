"""
Notification dispatch for accepted submissions.

One plain-text summary is sent through two independent channels: a Telegram
bot message and an SMTP email. Both sends are always attempted, concurrently;
their failures are collected into one NotificationError naming each failed
channel.
"""

from __future__ import annotations

import asyncio
import logging
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Tuple

import aiosmtplib
import httpx

from .configuration import Configuration, EmailSettings, TelegramSettings
from .errors import NotificationError
from .models import Submission, UploadedFile

logger = logging.getLogger(__name__)

CHAT_CHANNEL = "chat"
EMAIL_CHANNEL = "email"

# Telegram rejects longer messages
TELEGRAM_MAX_CHARS = 4096


class DeliveryError(Exception):
    """A channel refused or failed to deliver a message."""


class Notifier(Protocol):
    channel: str

    async def send(self, text: str) -> None:
        ...


def _or_na(value) -> str:
    return "N/A" if value is None or value == "" else str(value)


def build_summary(submission: Submission, uploaded: Sequence[UploadedFile]) -> str:
    """
    Render the human-readable summary shared by every channel.

    Fields appear in a fixed order; absent optional fields read ``N/A``.
    """
    lines = [
        "New request submitted:",
        f"Full Name: {submission.full_name}",
        f"Email: {submission.email}",
        f"Phone: {_or_na(submission.phone)}",
        f"Department: {submission.department}",
        f"Event Name: {_or_na(submission.event_name)}",
        f"Quantity: {_or_na(submission.quantity)}",
        f"Project Type: {submission.project_type}",
        f"Project Description: {_or_na(submission.project_description)}",
        "Uploaded Files:",
    ]
    if uploaded:
        lines.extend(f"- {f.name}: {f.url}" for f in uploaded)
    else:
        lines.append("- none")
    return "\n".join(lines)


class TelegramNotifier:
    """Sends the summary to a chat through the Telegram Bot API."""

    channel = CHAT_CHANNEL

    def __init__(self, settings: TelegramSettings, *, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.settings = settings
        self._shared_http = http_client

    async def _post(self, client: httpx.AsyncClient, text: str) -> httpx.Response:
        url = f"{self.settings.api_base.rstrip('/')}/bot{self.settings.bot_token}/sendMessage"
        return await client.post(url, json={"chat_id": self.settings.chat_id, "text": text})

    async def send(self, text: str) -> None:
        if len(text) > TELEGRAM_MAX_CHARS:
            text = text[: TELEGRAM_MAX_CHARS - 1] + "…"
        try:
            if self._shared_http is not None:
                response = await self._post(self._shared_http, text)
            else:
                async with httpx.AsyncClient(timeout=30.0) as client:
                    response = await self._post(client, text)
        except httpx.HTTPError as exc:
            # The request URL embeds the bot token, so only the error type is reported
            raise DeliveryError(f"Telegram request failed ({type(exc).__name__})") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400 or not body.get("ok", False):
            description = body.get("description") or response.reason_phrase
            raise DeliveryError(f"Telegram API error {response.status_code}: {description}")
        logger.info(f"Telegram message sent to chat {self.settings.chat_id}")


class EmailNotifier:
    """Sends the summary as a plain-text email over SMTP."""

    channel = EMAIL_CHANNEL

    def __init__(
        self,
        settings: EmailSettings,
        *,
        send: Callable[..., Awaitable[object]] = aiosmtplib.send,
    ) -> None:
        self.settings = settings
        self._send = send

    def build_message(self, text: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.settings.sender
        message["To"] = self.settings.recipient
        message["Subject"] = self.settings.subject
        message["Date"] = formatdate(localtime=True)
        message["Message-ID"] = make_msgid()
        message.set_content(text)
        return message

    async def send(self, text: str) -> None:
        message = self.build_message(text)
        try:
            await self._send(
                message,
                hostname=self.settings.host,
                port=self.settings.port,
                username=self.settings.user,
                password=self.settings.password,
                # Implicit TLS when secure, otherwise STARTTLS if the server offers it
                use_tls=self.settings.secure,
                start_tls=False if self.settings.secure else None,
                timeout=60,
            )
        except aiosmtplib.SMTPException as exc:
            raise DeliveryError(f"SMTP error: {exc}") from exc
        except OSError as exc:
            raise DeliveryError(f"SMTP connection failed: {exc}") from exc
        logger.info(f"Email sent to {self.settings.recipient}")


async def dispatch_notifications(text: str, notifiers: Sequence[Notifier]) -> None:
    """
    Send ``text`` through every notifier concurrently.

    Raises:
        NotificationError: Listing every channel that failed
    """
    results = await asyncio.gather(*(n.send(text) for n in notifiers), return_exceptions=True)

    failures: List[Tuple[str, str]] = []
    for notifier, result in zip(notifiers, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.error(f"{notifier.channel} notification failed: {result}")
            failures.append((notifier.channel, str(result) or type(result).__name__))
    if failures:
        raise NotificationError(failures)


async def notify(
    submission: Submission,
    uploaded: Sequence[UploadedFile],
    config: Configuration,
    *,
    chat: Optional[Notifier] = None,
    email: Optional[Notifier] = None,
) -> None:
    """Build the summary for a submission and send it on both channels."""
    text = build_summary(submission, uploaded)
    notifiers = [
        chat or TelegramNotifier(config.telegram),
        email or EmailNotifier(config.email),
    ]
    await dispatch_notifications(text, notifiers)
