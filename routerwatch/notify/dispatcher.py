"""Central notification dispatcher — formats alerts and fans out to channels."""

from __future__ import annotations

import asyncio

import structlog

from routerwatch.core.types import Alert, NetwatchTarget, Router
from routerwatch.notify.channels import NotificationChannel
from routerwatch.notify.formatters import format_alert, format_escalation
from routerwatch.notify.types import NotificationMessage, Severity

# Dedicated structured logger for decision records.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Routes alerts and escalation reminders to notification channels.

    - Every message is logged via *decision_logger*.
    - Messages below *min_severity* are log-only.
    - Channels are sent to concurrently; a failing one is logged and never
      blocks the others.

    Deduplication is the alert engine's job; nothing is throttled here.
    """

    def __init__(
        self,
        channels: list[NotificationChannel] | None = None,
        min_severity: Severity = Severity.INFO,
    ) -> None:
        self._channels: list[NotificationChannel] = channels or []
        self._min_severity = min_severity

    @property
    def channel_count(self) -> int:
        return len(self._channels)

    # ── Alert engine entry points ───────────────────────────────

    async def notify_alert(self, alert: Alert, router: Router | None = None) -> None:
        await self.send(format_alert(alert, router))

    async def notify_escalation(
        self,
        alert: Alert,
        router: Router | None,
        level: int,
        downtime: str,
        target: NetwatchTarget | None = None,
    ) -> None:
        await self.send(format_escalation(alert, router, level, downtime, target))

    # ── Direct send ─────────────────────────────────────────────

    async def send(self, msg: NotificationMessage) -> int:
        """Log *msg* and deliver it. Returns how many channels accepted it."""
        self._log_decision(msg)
        if msg.severity < self._min_severity or not self._channels:
            return 0
        outcomes = await asyncio.gather(
            *(ch.send(msg) for ch in self._channels), return_exceptions=True
        )
        delivered = 0
        for ch, outcome in zip(self._channels, outcomes):
            if isinstance(outcome, Exception):
                logger.error(
                    "channel_dispatch_error",
                    channel=type(ch).__name__,
                    title=msg.title,
                    exc_info=outcome,
                )
            elif outcome is True:
                delivered += 1
        if delivered < len(self._channels):
            logger.warning(
                "notification_partially_delivered",
                title=msg.title,
                delivered=delivered,
                channels=len(self._channels),
            )
        return delivered

    def _log_decision(self, msg: NotificationMessage) -> None:
        decision_logger.info(
            "decision",
            severity=msg.severity.name,
            title=msg.title,
            body=msg.body,
            source_event_type=msg.source_event_type,
            fields=msg.fields,
        )

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=type(ch).__name__)
