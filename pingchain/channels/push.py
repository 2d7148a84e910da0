"""Browser-style push notifications.

POSTs the notification payload to a webhook (e.g. a web-push relay) when one
is configured; otherwise the notification is only logged.
"""

from __future__ import annotations

import asyncio
import logging
import os

import requests

from pingchain.channels.base import ChannelAdapter, reminder_title
from pingchain.config import ENGINE_CONFIG
from pingchain.models import Reminder

logger = logging.getLogger(__name__)


class PushChannel(ChannelAdapter):
    name = "push"

    def __init__(self, webhook_url: str | None = None, timeout: float | None = None) -> None:
        self.webhook_url = webhook_url or os.environ.get("PINGCHAIN_PUSH_WEBHOOK", "")
        self.timeout = timeout or ENGINE_CONFIG["http_timeout_seconds"]

    def payload(self, reminder: Reminder) -> dict:
        return {
            "title": reminder_title(reminder),
            "body": reminder.message,
            "tag": f"{reminder.type}:{reminder.contact_id}",
            "requireInteraction": reminder.priority == "high",
            "data": {
                "reminderId": reminder.id,
                "contactId": reminder.contact_id,
                "url": ENGINE_CONFIG["dashboard_url"],
            },
        }

    async def _deliver(self, reminder: Reminder) -> bool:
        payload = self.payload(reminder)
        if not self.webhook_url:
            logger.info("Push notification for %s: %s", reminder.user_id, payload["title"])
            return True
        return await asyncio.to_thread(self._post, payload)

    def _post(self, payload: dict) -> bool:
        response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return True
