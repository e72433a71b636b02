"""Pure functions that convert alerts into NotificationMessage objects."""

from __future__ import annotations

from routerwatch.core.types import Alert, NetwatchTarget, Router
from routerwatch.notify.types import NotificationMessage, Severity


def _device_label(alert: Alert, router: Router | None, target: NetwatchTarget | None) -> str:
    if target is not None:
        return target.name or target.host
    if router is not None:
        return router.name
    return alert.router_id


def format_alert(alert: Alert, router: Router | None = None) -> NotificationMessage:
    """Convert a freshly created alert to a NotificationMessage."""
    fields: dict[str, str] = {
        "type": alert.type.value,
        "severity": alert.severity.value,
    }
    if router is not None:
        fields["router"] = router.name
        if router.host:
            fields["host"] = router.host

    return NotificationMessage(
        severity=Severity.from_alert(alert.severity),
        title=alert.title,
        body=alert.message,
        fields=fields,
        source_event_type=alert.type.value,
        raw=alert.model_dump(mode="json"),
    )


def format_escalation(
    alert: Alert,
    router: Router | None,
    level: int,
    downtime: str,
    target: NetwatchTarget | None = None,
) -> NotificationMessage:
    """Reminder that an alert is still open after *downtime*."""
    device = _device_label(alert, router, target)
    fields: dict[str, str] = {
        "level": str(level),
        "downtime": downtime,
        "type": alert.type.value,
    }
    if router is not None:
        fields["router"] = router.name
    if target is not None:
        fields["host"] = target.host

    return NotificationMessage(
        severity=Severity.CRITICAL,
        title=f"[ALERT #{level}] {device} is still DOWN",
        body=f"{alert.title}, unresolved for {downtime}",
        fields=fields,
        source_event_type=f"escalation_{alert.type.value}",
        raw=alert.model_dump(mode="json"),
    )
