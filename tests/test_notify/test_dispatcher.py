"""Tests for NotificationDispatcher — formatting, severity gate, channel isolation."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

from routerwatch.core.types import Alert, AlertSeverity, AlertType, Router
from routerwatch.notify.channels import NotificationChannel
from routerwatch.notify.dispatcher import NotificationDispatcher
from routerwatch.notify.types import NotificationMessage, Severity


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    """In-memory channel for testing."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[NotificationMessage] = []
        self._fail = fail
        self.closed = False

    async def send(self, msg: NotificationMessage) -> bool:
        if self._fail:
            raise ConnectionError("fake error")
        self.sent.append(msg)
        return True

    async def close(self) -> None:
        self.closed = True


def _alert(severity: AlertSeverity = AlertSeverity.WARNING) -> Alert:
    return Alert(
        router_id="r1",
        type=AlertType.HIGH_CPU,
        severity=severity,
        title="High CPU usage on core-1",
        message="CPU load is at 75% (threshold: 70%)",
    )


# ── Routing ─────────────────────────────────────────────────────


class TestRouting:
    async def test_alert_reaches_every_channel(self) -> None:
        a, b = FakeChannel(), FakeChannel()
        disp = NotificationDispatcher(channels=[a, b])
        await disp.notify_alert(_alert(), Router(id="r1", name="core-1"))
        assert len(a.sent) == 1 and len(b.sent) == 1
        assert a.sent[0].title == "High CPU usage on core-1"

    async def test_escalation_formatted(self) -> None:
        ch = FakeChannel()
        disp = NotificationDispatcher(channels=[ch])
        await disp.notify_escalation(_alert(), Router(id="r1", name="core-1"), 3, "12 hours")
        assert ch.sent[0].title == "[ALERT #3] core-1 is still DOWN"
        assert ch.sent[0].severity == Severity.CRITICAL

    async def test_failing_channel_isolated(self) -> None:
        bad, good = FakeChannel(fail=True), FakeChannel()
        disp = NotificationDispatcher(channels=[bad, good])
        await disp.notify_alert(_alert())
        assert len(good.sent) == 1

    async def test_send_returns_delivered_count(self) -> None:
        disp = NotificationDispatcher(channels=[FakeChannel(fail=True), FakeChannel(), FakeChannel()])
        msg = NotificationMessage(
            severity=Severity.WARNING,
            title="probe",
            body="",
            source_event_type="test",
            timestamp=1.0,
        )
        assert await disp.send(msg) == 2

    async def test_channels_sent_concurrently(self) -> None:
        gate = asyncio.Event()

        class Blocking(FakeChannel):
            async def send(self, msg: NotificationMessage) -> bool:
                await gate.wait()
                return await super().send(msg)

        class Opener(FakeChannel):
            async def send(self, msg: NotificationMessage) -> bool:
                gate.set()
                return await super().send(msg)

        slow, fast = Blocking(), Opener()
        disp = NotificationDispatcher(channels=[slow, fast])
        await asyncio.wait_for(disp.notify_alert(_alert()), timeout=1.0)
        assert len(slow.sent) == 1 and len(fast.sent) == 1

    async def test_no_channels(self) -> None:
        disp = NotificationDispatcher()
        assert disp.channel_count == 0
        await disp.notify_alert(_alert())  # should not raise


class TestSeverityGate:
    async def test_below_min_is_log_only(self) -> None:
        ch = FakeChannel()
        disp = NotificationDispatcher(channels=[ch], min_severity=Severity.WARNING)
        await disp.notify_alert(_alert(AlertSeverity.INFO))
        assert ch.sent == []

    async def test_at_min_is_sent(self) -> None:
        ch = FakeChannel()
        disp = NotificationDispatcher(channels=[ch], min_severity=Severity.WARNING)
        await disp.notify_alert(_alert(AlertSeverity.WARNING))
        assert len(ch.sent) == 1


class TestDecisionLog:
    async def test_every_message_logged(self) -> None:
        disp = NotificationDispatcher(min_severity=Severity.CRITICAL)
        with patch("routerwatch.notify.dispatcher.decision_logger") as mock_log:
            await disp.notify_alert(_alert(AlertSeverity.INFO))
        mock_log.info.assert_called_once()
        assert mock_log.info.call_args[0][0] == "decision"
        assert mock_log.info.call_args[1]["severity"] == "INFO"


class TestLifecycle:
    async def test_close_all_channels(self) -> None:
        a, b = FakeChannel(), FakeChannel()
        disp = NotificationDispatcher(channels=[a, b])
        await disp.close()
        assert a.closed and b.closed
