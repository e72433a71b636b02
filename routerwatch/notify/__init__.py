"""External notification delivery for alerts and escalations."""

from routerwatch.notify.channels import NotificationChannel, TelegramChannel, WhatsAppChannel
from routerwatch.notify.dispatcher import NotificationDispatcher
from routerwatch.notify.factory import create_notifier
from routerwatch.notify.formatters import format_alert, format_escalation
from routerwatch.notify.types import NotificationMessage, Severity

__all__ = [
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationMessage",
    "Severity",
    "TelegramChannel",
    "WhatsAppChannel",
    "create_notifier",
    "format_alert",
    "format_escalation",
]
