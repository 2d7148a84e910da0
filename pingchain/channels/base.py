"""Channel adapter interface.

Adapters deliver one reminder over one channel. ``send`` never raises: any
exception from the concrete ``_deliver`` is logged and reported as a failed
delivery, so one broken channel cannot stop the others.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pingchain.models import Reminder

logger = logging.getLogger(__name__)


class ChannelAdapter(ABC):
    name: str = ""

    async def send(self, reminder: Reminder) -> bool:
        try:
            return bool(await self._deliver(reminder))
        except Exception:
            logger.exception("Channel %s failed to deliver reminder %s", self.name, reminder.id)
            return False

    @abstractmethod
    async def _deliver(self, reminder: Reminder) -> bool:
        """Deliver the reminder; return True on success."""


def reminder_title(reminder: Reminder) -> str:
    titles = {
        "overdue": f"Reply owed to {reminder.contact_name}",
        "question": f"{reminder.contact_name} asked you something",
        "urgent": f"Urgent message from {reminder.contact_name}",
        "scheduled": f"Follow up with {reminder.contact_name}",
        "checkin": f"Time to check in with {reminder.contact_name}",
    }
    return titles.get(reminder.type, f"Reminder about {reminder.contact_name}")
