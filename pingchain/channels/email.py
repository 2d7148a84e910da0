"""Email delivery through the Resend or SendGrid REST APIs."""

from __future__ import annotations

import asyncio
import html
import logging
import os

import requests

from pingchain.channels.base import ChannelAdapter, reminder_title
from pingchain.config import ENGINE_CONFIG
from pingchain.models import Reminder

logger = logging.getLogger(__name__)

PROVIDERS = ("resend", "sendgrid")

_API_KEY_ENV = {
    "resend": "RESEND_API_KEY",
    "sendgrid": "SENDGRID_API_KEY",
}


class EmailChannel(ChannelAdapter):
    name = "email"

    def __init__(
        self,
        recipient: str,
        provider: str = "resend",
        api_key: str | None = None,
        sender: str | None = None,
        timeout: float | None = None,
    ) -> None:
        if provider not in PROVIDERS:
            raise ValueError(f"Unsupported email provider {provider!r}; expected one of {PROVIDERS}")
        self.recipient = recipient
        self.provider = provider
        self.api_key = api_key if api_key is not None else os.environ.get(_API_KEY_ENV[provider], "")
        self.sender = sender or ENGINE_CONFIG["email_from"]
        self.timeout = timeout or ENGINE_CONFIG["http_timeout_seconds"]

    async def _deliver(self, reminder: Reminder) -> bool:
        if not self.recipient:
            logger.warning("No recipient address configured, skipping email for %s", reminder.id)
            return False
        if not self.api_key:
            logger.warning("%s API key not set, skipping email for %s",
                           _API_KEY_ENV[self.provider], reminder.id)
            return False
        return await asyncio.to_thread(self._post, reminder)

    def _post(self, reminder: Reminder) -> bool:
        subject = reminder_title(reminder)
        text = f"{reminder.message}\n\nOpen your dashboard: {ENGINE_CONFIG['dashboard_url']}"
        body = render_html(reminder)
        if self.provider == "resend":
            url = ENGINE_CONFIG["resend_api_url"]
            payload = {
                "from": self.sender,
                "to": [self.recipient],
                "subject": subject,
                "html": body,
                "text": text,
            }
        else:
            url = ENGINE_CONFIG["sendgrid_api_url"]
            payload = {
                "personalizations": [{"to": [{"email": self.recipient}]}],
                "from": {"email": self.sender},
                "subject": subject,
                "content": [
                    {"type": "text/plain", "value": text},
                    {"type": "text/html", "value": body},
                ],
            }
        response = requests.post(
            url,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            timeout=self.timeout,
        )
        if not response.ok:
            logger.warning("%s rejected reminder %s: HTTP %s",
                           self.provider, reminder.id, response.status_code)
        return response.ok


def render_html(reminder: Reminder) -> str:
    title = html.escape(reminder_title(reminder))
    message = html.escape(reminder.message)
    url = html.escape(ENGINE_CONFIG["dashboard_url"], quote=True)
    return (
        f"<h2>{title}</h2>"
        f"<p>{message}</p>"
        f"<p><strong>Priority:</strong> {html.escape(reminder.priority)}</p>"
        f'<p><a href="{url}">Open dashboard</a></p>'
    )
