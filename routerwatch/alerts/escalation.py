"""EscalationEngine — walks long-lived down alerts up a fixed time ladder."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from enum import StrEnum

import structlog
from pydantic import BaseModel

from routerwatch.alerts.engine import AlertEngine, AlertNotifier, netwatch_host
from routerwatch.core.config import EscalationConfig, EscalationTier, get_settings
from routerwatch.core.durations import format_duration
from routerwatch.core.types import (
    ESCALATABLE_TYPES,
    Alert,
    AlertType,
    NetwatchStatus,
    NetwatchTarget,
    Router,
    RouterStatus,
    utcnow,
)
from routerwatch.storage.base import NetwatchStore, RouterStore

logger = structlog.stdlib.get_logger()


class EscalationDecision(StrEnum):
    """What one scan did with one alert."""

    AUTO_RESOLVED = "auto_resolved"
    ESCALATED = "escalated"
    AT_MAX_LEVEL = "at_max_level"
    NOT_DUE = "not_due"
    COOLDOWN = "cooldown"
    SUPERSEDED = "superseded"  # conditional update matched nothing
    ERROR = "error"


class EscalationReport(BaseModel):
    """Totals for one scan."""

    checked: int = 0
    auto_resolved: int = 0
    escalated: int = 0
    skipped: int = 0
    errors: int = 0


class EscalationEngine:
    """Periodic scan over unresolved status-change and netwatch-down alerts.

    For every alert the scan first re-checks reality: a router that is back
    online or a netwatch host that is back up resolves the alert and no
    escalation happens.  Otherwise the alert moves one level up the ladder
    once its age crosses the next tier, at most once per cooldown.
    """

    def __init__(
        self,
        engine: AlertEngine,
        routers: RouterStore,
        netwatch: NetwatchStore,
        notifier: AlertNotifier | None = None,
        config: EscalationConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._engine = engine
        self._routers = routers
        self._netwatch = netwatch
        self._notifier = notifier
        self._config = config or get_settings().escalation
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def tiers(self) -> list[EscalationTier]:
        return self._config.tiers

    @property
    def max_level(self) -> int:
        return len(self._config.tiers)

    async def scan(self) -> EscalationReport:
        """Check every unresolved escalatable alert once."""
        report = EscalationReport()
        async with self._lock:
            now = self._clock()
            try:
                pending = await self._engine.store.list(types=ESCALATABLE_TYPES, resolved=False)
            except Exception:
                logger.exception("escalation_scan_list_failed")
                report.errors += 1
                return report

            for alert in pending:
                report.checked += 1
                try:
                    decision = await self.process(alert, now)
                except Exception:
                    logger.exception("escalation_alert_failed", alert_id=alert.id)
                    decision = EscalationDecision.ERROR

                if decision == EscalationDecision.AUTO_RESOLVED:
                    report.auto_resolved += 1
                elif decision == EscalationDecision.ESCALATED:
                    report.escalated += 1
                elif decision == EscalationDecision.ERROR:
                    report.errors += 1
                else:
                    report.skipped += 1

        if report.checked:
            logger.info("escalation_scan_complete", **report.model_dump())
        return report

    async def process(self, alert: Alert, now: datetime) -> EscalationDecision:
        """Decide and apply the escalation step for a single alert."""
        router = await self._routers.get(alert.router_id)
        target: NetwatchTarget | None = None

        if alert.type == AlertType.STATUS_CHANGE:
            if router is not None and router.status == RouterStatus.ONLINE:
                return await self._auto_resolve(alert, reason="router_online")
        elif alert.type == AlertType.NETWATCH_DOWN:
            host = netwatch_host(alert)
            if host is not None:
                target = await self._netwatch.find(alert.router_id, host)
                if target is not None and target.status == NetwatchStatus.UP:
                    return await self._auto_resolve(alert, reason="host_up")

        level = alert.escalation_level
        if level >= self.max_level:
            return EscalationDecision.AT_MAX_LEVEL

        elapsed = now - alert.created_at
        tier = self._config.tiers[level]
        if elapsed < timedelta(seconds=tier.after_secs):
            return EscalationDecision.NOT_DUE

        if alert.last_escalated_at is not None:
            since_last = now - alert.last_escalated_at
            if since_last < timedelta(seconds=self._config.cooldown_secs):
                return EscalationDecision.COOLDOWN

        updated = await self._engine.store.record_escalation(alert.id, tier.level, now)
        if updated is None:
            return EscalationDecision.SUPERSEDED

        downtime = format_duration(elapsed.total_seconds())
        logger.info(
            "escalation_alert_escalated",
            alert_id=alert.id,
            level=tier.level,
            downtime=downtime,
        )
        if self._notifier is not None:
            self._engine.run_detached(
                self._notify(updated, router, tier.level, downtime, target),
                name=f"escalate-{alert.id}-{tier.level}",
            )
        return EscalationDecision.ESCALATED

    async def _auto_resolve(self, alert: Alert, reason: str) -> EscalationDecision:
        resolved = await self._engine.resolve(alert.id)
        if resolved is None:
            return EscalationDecision.SUPERSEDED
        logger.info("escalation_alert_auto_resolved", alert_id=alert.id, reason=reason)
        return EscalationDecision.AUTO_RESOLVED

    async def _notify(
        self,
        alert: Alert,
        router: Router | None,
        level: int,
        downtime: str,
        target: NetwatchTarget | None,
    ) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier.notify_escalation(alert, router, level, downtime, target)
        except Exception:
            logger.exception("escalation_notification_failed", alert_id=alert.id, level=level)
