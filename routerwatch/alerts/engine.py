"""AlertEngine — creation, cooldown dedup, acknowledgement, resolution, queries."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Coroutine
from datetime import datetime, timedelta
from typing import Any, Protocol

import structlog

from routerwatch.alerts.thresholds import AlertThresholds, load_thresholds
from routerwatch.core.config import AlertsConfig, get_settings
from routerwatch.core.durations import format_duration
from routerwatch.core.types import (
    Alert,
    AlertSeverity,
    AlertType,
    NetwatchStatus,
    NetwatchTarget,
    NewAlert,
    Router,
    RouterMetrics,
    RouterStatus,
    SeverityCounts,
    UserRole,
    Viewer,
    utcnow,
)
from routerwatch.storage.base import AccessStore, AlertStore, RouterStore, SettingsStore

logger = structlog.stdlib.get_logger()

NEW_ALERT_EVENT = "new_alert"

_NETWATCH_HOST_RE = re.compile(r"Netwatch host (\S+)")
_IPV4_RE = re.compile(r"(\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})")


class AlertNotifier(Protocol):
    """Outbound notification collaborator (Telegram, WhatsApp, ...)."""

    async def notify_alert(self, alert: Alert, router: Router | None = None) -> None: ...

    async def notify_escalation(
        self,
        alert: Alert,
        router: Router | None,
        level: int,
        downtime: str,
        target: NetwatchTarget | None = None,
    ) -> None: ...


class AlertBroadcaster(Protocol):
    """Live-update push collaborator."""

    def broadcast(self, event: str, payload: dict[str, Any]) -> int: ...

    def broadcast_to_users(self, event: str, payload: dict[str, Any], user_ids: list[str]) -> int: ...


def mentions_host(alert: Alert, host: str) -> bool:
    """Whether *alert*'s message names *host* as a whole token."""
    pattern = rf"(?<![\w.]){re.escape(host)}(?![\w.])"
    return re.search(pattern, alert.message) is not None


def netwatch_host(alert: Alert) -> str | None:
    """Recover the watched host from a netwatch alert message."""
    match = _NETWATCH_HOST_RE.search(alert.message) or _IPV4_RE.search(alert.message)
    return match.group(1) if match else None


class AlertEngine:
    """Creates and manages alerts on behalf of the poll cycle and escalation scan.

    Usage::

        engine = AlertEngine(alerts, settings, access, routers=routers,
                             notifier=dispatcher, broadcaster=broadcaster)
        alert = await engine.create_if_warranted(
            router.id, AlertType.HIGH_CPU, AlertSeverity.WARNING, title, message
        )
        await engine.acknowledge(alert.id, viewer)
    """

    def __init__(
        self,
        alerts: AlertStore,
        settings: SettingsStore,
        access: AccessStore,
        routers: RouterStore | None = None,
        notifier: AlertNotifier | None = None,
        broadcaster: AlertBroadcaster | None = None,
        config: AlertsConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._alerts = alerts
        self._settings = settings
        self._access = access
        self._routers = routers
        self._notifier = notifier
        self._broadcaster = broadcaster
        self._config = config or get_settings().alerts
        self._clock = clock
        self._background: set[asyncio.Task[None]] = set()

    @property
    def cooldown(self) -> timedelta:
        return timedelta(minutes=self._config.cooldown_minutes)

    @property
    def store(self) -> AlertStore:
        return self._alerts

    async def thresholds(self) -> AlertThresholds:
        """Current thresholds, read from the settings store on every call."""
        return await load_thresholds(self._settings, self._config.thresholds)

    # ── Creation ─────────────────────────────────────────────────

    async def find_recent_unresolved(self, router_id: str, alert_type: AlertType) -> Alert | None:
        """Latest unresolved alert of this type if it is still inside the cooldown."""
        existing = await self._alerts.latest_unresolved(router_id, alert_type)
        if existing is not None and existing.created_at > self._clock() - self.cooldown:
            return existing
        return None

    async def create_if_warranted(
        self,
        router_id: str,
        alert_type: AlertType,
        severity: AlertSeverity,
        title: str,
        message: str,
    ) -> Alert:
        """Create an alert unless one of the same router + type fired recently.

        Returns the existing alert when deduplicated.  Once the cooldown has
        elapsed a new row is created even if an older one is still unresolved.
        """
        existing = await self.find_recent_unresolved(router_id, alert_type)
        if existing is not None:
            logger.debug(
                "alert_deduplicated",
                alert_id=existing.id,
                router_id=router_id,
                type=alert_type,
            )
            return existing
        return await self.create(
            NewAlert(
                router_id=router_id,
                type=alert_type,
                severity=severity,
                title=title,
                message=message,
            )
        )

    async def create(self, data: NewAlert, *, resolved: bool = False) -> Alert:
        """Persist an alert, then notify and broadcast without blocking on either.

        *resolved* closes the row immediately (recovery notices).
        """
        now = self._clock()
        alert = await self._alerts.insert(data, created_at=now)
        if resolved:
            alert = await self._alerts.resolve(alert.id, now) or alert

        logger.info(
            "alert_created",
            alert_id=alert.id,
            router_id=alert.router_id,
            type=alert.type,
            severity=alert.severity,
        )

        self.run_detached(self._notify(alert), name=f"notify-{alert.id}")
        await self._broadcast_new(alert)
        return alert

    def run_detached(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        """Run a best-effort side task; the caller never awaits its outcome."""
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for in-flight notification tasks (shutdown and tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _notify(self, alert: Alert) -> None:
        if self._notifier is None:
            return
        try:
            router = await self._routers.get(alert.router_id) if self._routers else None
            await self._notifier.notify_alert(alert, router)
        except Exception:
            logger.exception("alert_notification_failed", alert_id=alert.id)

    async def _broadcast_new(self, alert: Alert) -> None:
        if self._broadcaster is None:
            return
        payload = {
            "alert": alert.model_dump(mode="json"),
            "message": f"New alert: {alert.title}",
            "timestamp": self._clock().isoformat(),
        }
        try:
            try:
                user_ids = await self._access.user_ids_for_router(alert.router_id)
            except Exception:
                logger.exception("alert_audience_lookup_failed", alert_id=alert.id)
                self._broadcaster.broadcast(NEW_ALERT_EVENT, payload)
                return
            self._broadcaster.broadcast_to_users(NEW_ALERT_EVENT, payload, user_ids)
        except Exception:
            logger.exception("alert_broadcast_failed", alert_id=alert.id)

    # ── Detection paths ──────────────────────────────────────────

    async def create_status_change_alert(
        self,
        router: Router,
        old_status: RouterStatus,
        new_status: RouterStatus,
    ) -> Alert | None:
        """Router reachability changed.

        Going offline is deduplicated by cooldown.  Coming back online closes
        any open status alerts for the router and records a resolved notice.
        """
        t = await self.thresholds()
        if not t.alerts_enabled or not t.status_change_alerts:
            return None

        title = f"Router {router.name} is now {new_status.value}"
        message = f"Status changed from {old_status.value} to {new_status.value}"

        if new_status == RouterStatus.ONLINE:
            await self._resolve_open(router.id, AlertType.STATUS_CHANGE)
            return await self.create(
                NewAlert(
                    router_id=router.id,
                    type=AlertType.STATUS_CHANGE,
                    severity=AlertSeverity.INFO,
                    title=title,
                    message=message,
                ),
                resolved=True,
            )

        severity = (
            AlertSeverity.CRITICAL
            if new_status == RouterStatus.OFFLINE
            else AlertSeverity.WARNING
        )
        return await self.create_if_warranted(
            router.id, AlertType.STATUS_CHANGE, severity, title, message
        )

    async def create_netwatch_alert(
        self,
        router_id: str,
        device_name: str,
        host: str,
        status: NetwatchStatus,
    ) -> Alert | None:
        """A netwatch host flipped up or down."""
        t = await self.thresholds()
        if not t.alerts_enabled or not t.status_change_alerts:
            return None

        label = device_name or host

        if status == NetwatchStatus.UP:
            resolved = await self._resolve_open(
                router_id,
                AlertType.NETWATCH_DOWN,
                match=lambda a: mentions_host(a, host),
            )
            if not resolved:
                return None
            return await self.create(
                NewAlert(
                    router_id=router_id,
                    type=AlertType.STATUS_CHANGE,
                    severity=AlertSeverity.INFO,
                    title=f"Device {label} is back UP",
                    message=f"Netwatch host {host} ({device_name}) is now reachable",
                ),
                resolved=True,
            )

        if status != NetwatchStatus.DOWN:
            return None

        # Cooldown dedup, per host: several hosts behind one router may be down.
        cutoff = self._clock() - self.cooldown
        open_down = await self._alerts.list(
            router_ids=[router_id],
            types=[AlertType.NETWATCH_DOWN],
            resolved=False,
        )
        for existing in open_down:
            if existing.created_at > cutoff and mentions_host(existing, host):
                return existing

        return await self.create(
            NewAlert(
                router_id=router_id,
                type=AlertType.NETWATCH_DOWN,
                severity=AlertSeverity.WARNING,
                title=f"Device {label} is down",
                message=f"Netwatch host {host} ({device_name}) is now down",
            )
        )

    async def create_high_cpu_alert(self, router: Router, cpu_load: float) -> Alert | None:
        t = await self.thresholds()
        if not t.alerts_enabled or not t.high_cpu_alerts:
            return None
        if cpu_load < t.cpu_warning:
            return None

        critical = cpu_load >= t.cpu_critical
        severity = AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING
        threshold = t.cpu_critical if critical else t.cpu_warning
        return await self.create_if_warranted(
            router.id,
            AlertType.HIGH_CPU,
            severity,
            f"High CPU usage on {router.name}",
            f"CPU load is at {cpu_load:g}% (threshold: {threshold:g}%)",
        )

    async def create_high_memory_alert(self, router: Router, memory_percent: float) -> Alert | None:
        t = await self.thresholds()
        if not t.alerts_enabled or not t.high_memory_alerts:
            return None
        if memory_percent < t.memory_warning:
            return None

        critical = memory_percent >= t.memory_critical
        severity = AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING
        threshold = t.memory_critical if critical else t.memory_warning
        return await self.create_if_warranted(
            router.id,
            AlertType.HIGH_MEMORY,
            severity,
            f"High memory usage on {router.name}",
            f"Memory usage is at {memory_percent:g}% (threshold: {threshold:g}%)",
        )

    async def check_metric_alerts(
        self,
        router: Router,
        metrics: RouterMetrics | None,
    ) -> tuple[Alert | None, Alert | None]:
        """Run the CPU and memory threshold checks for one refresh."""
        if metrics is None:
            return None, None
        cpu_alert: Alert | None = None
        memory_alert: Alert | None = None
        if metrics.cpu_load is not None:
            cpu_alert = await self.create_high_cpu_alert(router, metrics.cpu_load)
        memory_percent = metrics.memory_percent
        if memory_percent is not None:
            memory_alert = await self.create_high_memory_alert(router, memory_percent)
        return cpu_alert, memory_alert

    async def create_session_connect_alert(
        self,
        router: Router,
        session_name: str,
        address: str | None,
    ) -> Alert | None:
        t = await self.thresholds()
        if not t.alerts_enabled:
            return None
        return await self.create(
            NewAlert(
                router_id=router.id,
                type=AlertType.PPPOE_CONNECT,
                severity=AlertSeverity.INFO,
                title=f"PPPoE {session_name} connected",
                message=f"Session {session_name} connected on {router.name} (address: {address or 'N/A'})",
            )
        )

    async def create_session_disconnect_alert(
        self,
        router: Router,
        session_name: str,
        address: str | None,
        duration_secs: float,
    ) -> Alert | None:
        t = await self.thresholds()
        if not t.alerts_enabled:
            return None
        return await self.create(
            NewAlert(
                router_id=router.id,
                type=AlertType.PPPOE_DISCONNECT,
                severity=AlertSeverity.WARNING,
                title=f"PPPoE {session_name} disconnected",
                message=(
                    f"Session {session_name} disconnected from {router.name} "
                    f"(address: {address or 'N/A'}, connected for {format_duration(duration_secs)})"
                ),
            )
        )

    # ── Acknowledge / resolve ────────────────────────────────────

    async def acknowledge(self, alert_id: str, viewer: Viewer) -> Alert | None:
        """Acknowledge one alert. None when missing, out of scope, or already done."""
        scope = await self._scope(viewer, unrestricted=(UserRole.ADMIN, UserRole.OPERATOR))
        if scope is not None and not scope:
            return None
        alert = await self._alerts.acknowledge(alert_id, viewer.user_id, self._clock(), scope)
        if alert is not None:
            logger.info("alert_acknowledged", alert_id=alert_id, user_id=viewer.user_id)
        return alert

    async def acknowledge_all(self, viewer: Viewer) -> int:
        scope = await self._scope(viewer, unrestricted=(UserRole.ADMIN, UserRole.OPERATOR))
        if scope is not None and not scope:
            return 0
        count = await self._alerts.acknowledge_all(viewer.user_id, self._clock(), scope)
        logger.info("alerts_acknowledged", count=count, user_id=viewer.user_id)
        return count

    async def resolve(self, alert_id: str) -> Alert | None:
        """Resolve one alert. None when missing or already resolved."""
        alert = await self._alerts.resolve(alert_id, self._clock())
        if alert is not None:
            logger.info("alert_resolved", alert_id=alert_id)
        return alert

    async def _resolve_open(
        self,
        router_id: str,
        alert_type: AlertType,
        match: Callable[[Alert], bool] | None = None,
    ) -> int:
        open_alerts = await self._alerts.list(
            router_ids=[router_id], types=[alert_type], resolved=False
        )
        count = 0
        for alert in open_alerts:
            if match is not None and not match(alert):
                continue
            if await self.resolve(alert.id) is not None:
                count += 1
        return count

    # ── Queries ──────────────────────────────────────────────────

    async def _scope(
        self,
        viewer: Viewer | None,
        unrestricted: tuple[UserRole, ...] = (UserRole.ADMIN,),
    ) -> list[str] | None:
        """Router ids *viewer* may see; None means no restriction."""
        if viewer is None or viewer.role in unrestricted:
            return None
        return await self._access.router_ids_for_user(viewer.user_id)

    async def find_all(self, limit: int = 100, viewer: Viewer | None = None) -> list[Alert]:
        scope = await self._scope(viewer)
        if scope is not None and not scope:
            return []
        return await self._alerts.list(router_ids=scope, limit=limit)

    async def find_unacknowledged(
        self,
        limit: int | None = 100,
        viewer: Viewer | None = None,
    ) -> list[Alert]:
        scope = await self._scope(viewer)
        if scope is not None and not scope:
            return []
        return await self._alerts.list(router_ids=scope, acknowledged=False, limit=limit)

    async def find_by_router(self, router_id: str, limit: int = 50) -> list[Alert]:
        return await self._alerts.list(router_ids=[router_id], limit=limit)

    async def find_by_id(self, alert_id: str) -> Alert | None:
        return await self._alerts.get(alert_id)

    async def count_unacknowledged(self, viewer: Viewer | None = None) -> int:
        return len(await self.find_unacknowledged(limit=None, viewer=viewer))

    async def count_by_severity(self, viewer: Viewer | None = None) -> SeverityCounts:
        scope = await self._scope(viewer)
        counts = SeverityCounts()
        if scope is not None and not scope:
            return counts
        open_alerts = await self._alerts.list(router_ids=scope, acknowledged=False, resolved=False)
        for alert in open_alerts:
            if alert.severity == AlertSeverity.INFO:
                counts.info += 1
            elif alert.severity == AlertSeverity.WARNING:
                counts.warning += 1
            else:
                counts.critical += 1
        return counts
