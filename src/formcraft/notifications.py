"""Owner notifications for accepted submissions.

Delivery is best effort: a failed send is logged and reported as ``False``, never raised.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import urlsplit

import httpx

from formcraft.config import Settings
from formcraft.schema import FormDefinition

logger = logging.getLogger(__name__)


class MailSender(Protocol):
    async def send(self, to: str, subject: str, text: str) -> bool: ...


def is_valid_api_url(url: str) -> bool:
    if not url:
        return False
    parsed = urlsplit(url)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


class LogMailSender:
    async def send(self, to: str, subject: str, text: str) -> bool:
        logger.info("Mail delivery not configured; would send %r to %s", subject, to)
        return True


class HttpMailSender:
    def __init__(
        self,
        api_url: str,
        api_key: str = "",
        sender: str = "noreply@formcraft.app",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout
        self._transport = transport

    async def send(self, to: str, subject: str, text: str) -> bool:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        payload = {"from": self._sender, "to": to, "subject": subject, "text": text}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._api_url, json=payload, headers=headers)
                response.raise_for_status()
            logger.info("Notification sent to %s", to)
            return True
        except Exception:
            logger.exception("Notification to %s failed", to)
            return False


def get_mail_sender(settings: Settings) -> MailSender:
    if is_valid_api_url(settings.mail_api_url):
        return HttpMailSender(
            settings.mail_api_url,
            api_key=settings.mail_api_key,
            sender=settings.mail_from,
            timeout=settings.mail_timeout,
        )
    return LogMailSender()


def format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    return str(value)


def build_submission_message(form: FormDefinition, data: dict[str, Any]) -> tuple[str, str]:
    subject = f"New submission: {form.title}"
    lines = [f"A new response was submitted to \"{form.title}\".", ""]
    for item in form.fields:
        if item.id in data:
            lines.append(f"{item.label}: {format_value(data[item.id])}")
    return subject, "\n".join(lines)
