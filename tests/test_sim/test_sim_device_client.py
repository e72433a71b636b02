"""Tests for SimulatedDeviceClient and a full poll cycle against it."""

from __future__ import annotations

import random

import pytest

from routerwatch.alerts.engine import AlertEngine
from routerwatch.core.config import AlertsConfig, EscalationConfig, PollingConfig
from routerwatch.core.exceptions import DeviceRefreshError
from routerwatch.core.types import (
    AlertType,
    NetwatchStatus,
    NetwatchTarget,
    Router,
    RouterStatus,
)
from routerwatch.polling.interval import AdaptiveIntervalController
from routerwatch.polling.scheduler import PollScheduler
from routerwatch.sessions.tracker import SessionTracker
from routerwatch.sim.client import SimulatedDeviceClient
from routerwatch.storage.memory import MemoryStorage


def _storage() -> MemoryStorage:
    storage = MemoryStorage()
    storage.routers.add(Router(id="r1", name="rb-001", host="192.168.0.1"))
    storage.netwatch.add(NetwatchTarget(router_id="r1", host="10.0.0.10", name="cam"))
    return storage


# ── Refresh ─────────────────────────────────────────────────────


class TestRefresh:
    async def test_marks_online_with_metrics(self) -> None:
        storage = _storage()
        client = SimulatedDeviceClient(storage, rng=random.Random(1))

        result = await client.refresh("r1")

        assert result.previous_status == RouterStatus.UNKNOWN
        assert result.router.status == RouterStatus.ONLINE
        assert result.router.metrics is not None
        assert 20 <= result.router.metrics.memory_percent <= 70
        stored = await storage.routers.get("r1")
        assert stored is not None and stored.last_seen is not None
        assert client.refresh_count == 1

    async def test_unknown_router(self) -> None:
        client = SimulatedDeviceClient(MemoryStorage())
        with pytest.raises(DeviceRefreshError, match="not found"):
            await client.refresh("missing")

    async def test_forced_offline(self) -> None:
        client = SimulatedDeviceClient(_storage())
        client.force_offline("r1")
        with pytest.raises(DeviceRefreshError, match="192.168.0.1"):
            await client.refresh("r1")
        client.force_online("r1")
        assert (await client.refresh("r1")).router.status == RouterStatus.ONLINE

    async def test_failure_probability_one_always_fails(self) -> None:
        client = SimulatedDeviceClient(_storage(), failure_probability=1.0)
        with pytest.raises(DeviceRefreshError):
            await client.refresh("r1")

    async def test_forced_cpu(self) -> None:
        client = SimulatedDeviceClient(_storage())
        client.set_cpu("r1", 97.5)
        result = await client.refresh("r1")
        assert result.router.metrics is not None
        assert result.router.metrics.cpu_load == 97.5


# ── Netwatch ────────────────────────────────────────────────────


class TestNetwatch:
    async def test_first_sight_is_not_a_flip(self) -> None:
        storage = _storage()
        client = SimulatedDeviceClient(storage)
        result = await client.refresh("r1")
        assert [t.is_flip for t in result.netwatch] == [False]
        target = await storage.netwatch.find("r1", "10.0.0.10")
        assert target is not None and target.status == NetwatchStatus.UP

    async def test_forced_flip_reported_once(self) -> None:
        storage = _storage()
        client = SimulatedDeviceClient(storage)
        await client.refresh("r1")

        client.set_netwatch("r1", "10.0.0.10", NetwatchStatus.DOWN)
        result = await client.refresh("r1")
        assert len(result.netwatch) == 1
        assert result.netwatch[0].is_flip
        assert result.netwatch[0].current == NetwatchStatus.DOWN

        assert (await client.refresh("r1")).netwatch == []

    async def test_dependents_skipped(self) -> None:
        client = SimulatedDeviceClient(_storage())
        result = await client.refresh("r1", include_dependents=False)
        assert result.netwatch == []


# ── Sessions ────────────────────────────────────────────────────


class TestSessions:
    async def test_not_fetched_without_full_sync(self) -> None:
        client = SimulatedDeviceClient(_storage(), session_pool=["a", "b"], session_churn=1.0)
        result = await client.refresh("r1", full_sync=False)
        assert result.sessions is None

    async def test_pinned_sessions(self) -> None:
        client = SimulatedDeviceClient(_storage(), session_pool=["x"], session_churn=1.0)
        client.set_sessions("r1", ["alice", "bob"])
        result = await client.refresh("r1")
        assert result.sessions is not None
        assert sorted(s.name for s in result.sessions) == ["alice", "bob"]

    async def test_full_churn_toggles_pool(self) -> None:
        client = SimulatedDeviceClient(_storage(), session_pool=["a", "b"], session_churn=1.0)
        first = await client.refresh("r1")
        second = await client.refresh("r1")
        assert first.sessions is not None and second.sessions is not None
        assert sorted(s.name for s in first.sessions) == ["a", "b"]
        assert second.sessions == []


# ── End to end ──────────────────────────────────────────────────


class TestFullCycle:
    async def test_cycle_against_simulated_fleet(self) -> None:
        storage = _storage()
        storage.routers.add(Router(id="r2", name="rb-002", status=RouterStatus.ONLINE))
        client = SimulatedDeviceClient(storage, rng=random.Random(3))
        client.force_offline("r2")
        client.set_sessions("r1", ["alice"])

        alerts = AlertEngine(
            storage.alerts,
            storage.settings,
            storage.access,
            routers=storage.routers,
            config=AlertsConfig(),
        )
        polling = PollingConfig(initial_delay_secs=0)
        scheduler = PollScheduler(
            storage.routers,
            client,
            AdaptiveIntervalController(storage.settings, storage.netwatch, config=polling),
            alerts,
            tracker=SessionTracker(storage.sessions, alerts),
            polling=polling,
            escalation_config=EscalationConfig(),
        )

        summary = await scheduler.poll_now()

        assert summary is not None
        assert (summary.succeeded, summary.failed) == (1, 1)
        offline = await storage.routers.get("r2")
        assert offline is not None and offline.status == RouterStatus.OFFLINE
        types = sorted(a.type for a in await storage.alerts.list())
        assert types == sorted([AlertType.STATUS_CHANGE, AlertType.PPPOE_CONNECT])
        assert [s.name for s in await storage.sessions.list_by_router("r1")] == ["alice"]
