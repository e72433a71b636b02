"""Tests for alert and escalation formatters."""

from __future__ import annotations

from routerwatch.core.types import (
    Alert,
    AlertSeverity,
    AlertType,
    NetwatchTarget,
    Router,
)
from routerwatch.notify.formatters import format_alert, format_escalation
from routerwatch.notify.types import Severity


def _alert(**kw: object) -> Alert:
    defaults: dict[str, object] = {
        "router_id": "r1",
        "type": AlertType.STATUS_CHANGE,
        "severity": AlertSeverity.CRITICAL,
        "title": "Router core-1 is now offline",
        "message": "Status changed from online to offline",
    }
    defaults.update(kw)
    return Alert(**defaults)  # type: ignore[arg-type]


class TestFormatAlert:
    def test_severity_mapping(self) -> None:
        assert format_alert(_alert()).severity == Severity.CRITICAL
        info = format_alert(_alert(severity=AlertSeverity.INFO))
        assert info.severity == Severity.INFO

    def test_router_fields(self) -> None:
        router = Router(id="r1", name="core-1", host="192.168.88.1")
        msg = format_alert(_alert(), router)
        assert msg.title == "Router core-1 is now offline"
        assert msg.body == "Status changed from online to offline"
        assert msg.fields["router"] == "core-1"
        assert msg.fields["host"] == "192.168.88.1"
        assert msg.source_event_type == "status_change"

    def test_without_router(self) -> None:
        msg = format_alert(_alert())
        assert "router" not in msg.fields


class TestFormatEscalation:
    def test_router_escalation(self) -> None:
        router = Router(id="r1", name="core-1")
        msg = format_escalation(_alert(), router, 2, "3 hours 1 minute")
        assert msg.severity == Severity.CRITICAL
        assert msg.title == "[ALERT #2] core-1 is still DOWN"
        assert "3 hours 1 minute" in msg.body
        assert msg.fields["level"] == "2"
        assert msg.source_event_type == "escalation_status_change"

    def test_netwatch_target_named(self) -> None:
        alert = _alert(type=AlertType.NETWATCH_DOWN, severity=AlertSeverity.WARNING)
        target = NetwatchTarget(router_id="r1", host="10.0.0.5", name="cctv-gate")
        msg = format_escalation(alert, Router(id="r1", name="core-1"), 1, "1 hour", target)
        assert msg.title == "[ALERT #1] cctv-gate is still DOWN"
        assert msg.fields["host"] == "10.0.0.5"

    def test_falls_back_to_router_id(self) -> None:
        msg = format_escalation(_alert(), None, 1, "1 hour")
        assert msg.title == "[ALERT #1] r1 is still DOWN"
