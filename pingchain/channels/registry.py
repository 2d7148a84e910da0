"""Map notification settings to channel adapters."""

from __future__ import annotations

from pingchain.channels.base import ChannelAdapter
from pingchain.channels.email import EmailChannel
from pingchain.channels.push import PushChannel
from pingchain.models import NotificationSettings


def build_channels(settings: NotificationSettings) -> dict[str, ChannelAdapter]:
    """Adapters for every channel the settings enable, keyed by channel name."""
    channels: dict[str, ChannelAdapter] = {}
    if settings.channel_enabled("push"):
        channels["push"] = PushChannel()
    if settings.channel_enabled("email"):
        channels["email"] = EmailChannel(
            recipient=settings.user_email, provider=settings.email_provider,
        )
    return channels
