"""Convenience factory for wiring the notification stack."""

from __future__ import annotations

from routerwatch.core.config import NotificationsConfig
from routerwatch.notify.channels import (
    NotificationChannel,
    TelegramChannel,
    WhatsAppChannel,
)
from routerwatch.notify.dispatcher import NotificationDispatcher


def create_notifier(config: NotificationsConfig) -> NotificationDispatcher:
    """Build a dispatcher with every enabled channel from config."""
    channels: list[NotificationChannel] = []

    if config.telegram.enabled:
        channels.append(TelegramChannel(config.telegram))

    if config.whatsapp.enabled:
        channels.append(WhatsAppChannel(config.whatsapp))

    return NotificationDispatcher(channels=channels)
