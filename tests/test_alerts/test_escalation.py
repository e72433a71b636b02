"""Tests for EscalationEngine — ladder, cooldown, auto-resolve, per-alert isolation."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

from routerwatch.alerts.engine import AlertEngine
from routerwatch.alerts.escalation import EscalationDecision, EscalationEngine
from routerwatch.core.config import AlertsConfig, EscalationConfig
from routerwatch.core.types import (
    Alert,
    AlertSeverity,
    AlertType,
    NetwatchStatus,
    NetwatchTarget,
    Router,
    RouterStatus,
)
from routerwatch.storage.memory import MemoryStorage

T0 = datetime(2024, 3, 1, 8, 0, tzinfo=UTC)


# ── Helpers ─────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw: float) -> None:
        self.now += timedelta(**kw)


class Harness:
    def __init__(self) -> None:
        self.storage = MemoryStorage()
        self.clock = FakeClock()
        self.notifier = MagicMock()
        self.notifier.notify_escalation = AsyncMock()
        self.alerts = AlertEngine(
            self.storage.alerts,
            self.storage.settings,
            self.storage.access,
            routers=self.storage.routers,
            config=AlertsConfig(),
            clock=self.clock,
        )
        self.escalation = EscalationEngine(
            self.alerts,
            self.storage.routers,
            self.storage.netwatch,
            notifier=self.notifier,
            config=EscalationConfig(),
            clock=self.clock,
        )
        self.router = self.storage.routers.add(
            Router(id="r1", name="core-1", status=RouterStatus.OFFLINE)
        )

    def seed(
        self,
        age: timedelta,
        level: int = 0,
        last_escalated_ago: timedelta | None = None,
        type_: AlertType = AlertType.STATUS_CHANGE,
        router_id: str = "r1",
        message: str = "Status changed from online to offline",
    ) -> Alert:
        alert = Alert(
            router_id=router_id,
            type=type_,
            severity=AlertSeverity.CRITICAL,
            title="Router core-1 is now offline",
            message=message,
            escalation_level=level,
            last_escalated_at=(
                self.clock.now - last_escalated_ago if last_escalated_ago is not None else None
            ),
            created_at=self.clock.now - age,
        )
        return self.storage.alerts.add(alert)

    async def stored(self, alert: Alert) -> Alert:
        row = await self.storage.alerts.get(alert.id)
        assert row is not None
        return row


# ── Ladder ──────────────────────────────────────────────────────


class TestLadder:
    async def test_not_due_before_first_tier(self) -> None:
        h = Harness()
        alert = h.seed(timedelta(minutes=59))
        report = await h.escalation.scan()
        assert report.escalated == 0
        assert report.skipped == 1
        assert (await h.stored(alert)).escalation_level == 0

    async def test_first_tier_after_one_hour(self) -> None:
        h = Harness()
        alert = h.seed(timedelta(minutes=61))
        report = await h.escalation.scan()
        assert report.escalated == 1
        row = await h.stored(alert)
        assert row.escalation_level == 1
        assert row.last_escalated_at == T0

    async def test_bumps_exactly_one_level_then_waits_for_cooldown(self) -> None:
        h = Harness()
        alert = h.seed(timedelta(hours=3, minutes=1), level=1)

        first = await h.escalation.scan()
        assert first.escalated == 1
        assert (await h.stored(alert)).escalation_level == 2

        h.clock.advance(minutes=1)
        second = await h.escalation.scan()
        assert second.escalated == 0
        assert (await h.stored(alert)).escalation_level == 2

    async def test_catch_up_is_one_level_per_cooldown(self) -> None:
        h = Harness()
        alert = h.seed(timedelta(days=2))

        await h.escalation.scan()
        assert (await h.stored(alert)).escalation_level == 1

        h.clock.advance(minutes=4)
        await h.escalation.scan()
        assert (await h.stored(alert)).escalation_level == 1

        h.clock.advance(minutes=2)
        await h.escalation.scan()
        assert (await h.stored(alert)).escalation_level == 2

    async def test_level_two_waits_for_twelve_hours(self) -> None:
        h = Harness()
        alert = h.seed(timedelta(hours=3, minutes=1), level=2)
        assert (await h.escalation.scan()).escalated == 0
        h.clock.advance(hours=9)
        assert (await h.escalation.scan()).escalated == 1
        assert (await h.stored(alert)).escalation_level == 3

    async def test_max_level_skipped(self) -> None:
        h = Harness()
        alert = h.seed(timedelta(days=10), level=5)
        decision = await h.escalation.process(await h.stored(alert), h.clock.now)
        assert decision == EscalationDecision.AT_MAX_LEVEL
        assert h.escalation.max_level == 5

    async def test_cooldown_from_previous_escalation(self) -> None:
        h = Harness()
        alert = h.seed(timedelta(hours=4), level=1, last_escalated_ago=timedelta(minutes=3))
        decision = await h.escalation.process(await h.stored(alert), h.clock.now)
        assert decision == EscalationDecision.COOLDOWN


# ── Auto-resolve ────────────────────────────────────────────────


class TestAutoResolve:
    async def test_router_back_online_resolves_without_escalating(self) -> None:
        h = Harness()
        await h.storage.routers.set_status("r1", RouterStatus.ONLINE)
        alert = h.seed(timedelta(hours=5), level=1)

        report = await h.escalation.scan()

        assert report.auto_resolved == 1
        assert report.escalated == 0
        row = await h.stored(alert)
        assert row.resolved is True
        assert row.escalation_level == 1
        h.notifier.notify_escalation.assert_not_called()

    async def test_netwatch_host_up_resolves(self) -> None:
        h = Harness()
        h.storage.netwatch.add(
            NetwatchTarget(router_id="r1", host="10.0.0.5", name="cctv", status=NetwatchStatus.UP)
        )
        alert = h.seed(
            timedelta(hours=2),
            type_=AlertType.NETWATCH_DOWN,
            message="Netwatch host 10.0.0.5 (cctv) is now down",
        )
        report = await h.escalation.scan()
        assert report.auto_resolved == 1
        assert (await h.stored(alert)).resolved is True

    async def test_netwatch_host_still_down_escalates(self) -> None:
        h = Harness()
        h.storage.netwatch.add(
            NetwatchTarget(router_id="r1", host="10.0.0.5", name="cctv", status=NetwatchStatus.DOWN)
        )
        h.seed(
            timedelta(hours=2),
            type_=AlertType.NETWATCH_DOWN,
            message="Netwatch host 10.0.0.5 (cctv) is now down",
        )
        report = await h.escalation.scan()
        await h.alerts.drain()
        assert report.escalated == 1
        target = h.notifier.notify_escalation.call_args[0][4]
        assert target.name == "cctv"


# ── Scan behaviour ──────────────────────────────────────────────


class TestScan:
    async def test_only_escalatable_types(self) -> None:
        h = Harness()
        h.seed(timedelta(days=1), type_=AlertType.HIGH_CPU)
        report = await h.escalation.scan()
        assert report.checked == 0

    async def test_resolved_alerts_ignored(self) -> None:
        h = Harness()
        alert = h.seed(timedelta(days=1))
        await h.storage.alerts.resolve(alert.id, T0)
        assert (await h.escalation.scan()).checked == 0

    async def test_notification_carries_level_and_downtime(self) -> None:
        h = Harness()
        h.seed(timedelta(hours=3, minutes=1), level=1)
        await h.escalation.scan()
        await h.alerts.drain()
        h.notifier.notify_escalation.assert_awaited_once()
        alert, router, level, downtime, _target = h.notifier.notify_escalation.call_args[0]
        assert level == 2
        assert downtime == "3 hours 1 minute"
        assert router.name == "core-1"
        assert alert.escalation_level == 2

    async def test_notification_failure_does_not_undo_escalation(self) -> None:
        h = Harness()
        h.notifier.notify_escalation.side_effect = RuntimeError("gateway down")
        alert = h.seed(timedelta(hours=2))
        report = await h.escalation.scan()
        await h.alerts.drain()
        assert report.escalated == 1
        assert (await h.stored(alert)).escalation_level == 1

    async def test_failure_on_one_alert_does_not_stop_scan(self) -> None:
        h = Harness()
        h.storage.routers.add(Router(id="r2", name="edge-2", status=RouterStatus.OFFLINE))
        broken = h.seed(timedelta(hours=2), router_id="r1")
        healthy = h.seed(timedelta(hours=2), router_id="r2")

        real_get = h.storage.routers.get

        async def flaky_get(router_id: str) -> Router | None:
            if router_id == "r1":
                raise RuntimeError("db hiccup")
            return await real_get(router_id)

        h.storage.routers.get = flaky_get  # type: ignore[method-assign]

        report = await h.escalation.scan()

        assert report.checked == 2
        assert report.errors == 1
        assert report.escalated == 1
        assert (await h.stored(broken)).escalation_level == 0
        assert (await h.stored(healthy)).escalation_level == 1

    async def test_list_failure_reported(self) -> None:
        h = Harness()
        h.storage.alerts.list = AsyncMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]
        report = await h.escalation.scan()
        assert report.errors == 1
        assert report.checked == 0
