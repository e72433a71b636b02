"""Simulated router fleet for demos and tests.

Refreshes routers held in the in-memory stores instead of talking to real
devices.  Supports configurable failure probability, latency, metric
ranges, netwatch flapping and PPPoE session churn.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from datetime import datetime

from routerwatch.core.exceptions import DeviceRefreshError
from routerwatch.core.types import (
    NetwatchStatus,
    NetwatchTransition,
    ObservedSession,
    RefreshResult,
    RouterMetrics,
    RouterStatus,
    utcnow,
)
from routerwatch.storage.memory import MemoryStorage

_MIB = 1024 * 1024


class SimulatedDeviceClient:
    """Drop-in DeviceClient backed by :class:`MemoryStorage`.

    Random behaviour comes from *rng*, so a seeded ``random.Random`` gives
    repeatable runs.  The ``force_*`` and ``set_*`` helpers pin behaviour
    for a specific router regardless of the dice.

    Usage::

        client = SimulatedDeviceClient(storage, failure_probability=0.05,
                                       rng=random.Random(7))
        client.force_offline(router.id)
        result = await client.refresh(router.id)   # raises DeviceRefreshError
    """

    def __init__(
        self,
        storage: MemoryStorage,
        failure_probability: float = 0.0,
        latency_secs: tuple[float, float] = (0.0, 0.0),
        cpu_range: tuple[float, float] = (5.0, 60.0),
        memory_range: tuple[float, float] = (20.0, 70.0),
        total_memory: int = 256 * _MIB,
        netwatch_flip_probability: float = 0.0,
        session_pool: list[str] | None = None,
        session_churn: float = 0.0,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._storage = storage
        self._failure_probability = failure_probability
        self._latency = latency_secs
        self._cpu_range = cpu_range
        self._memory_range = memory_range
        self._total_memory = total_memory
        self._flip_probability = netwatch_flip_probability
        self._session_pool = list(session_pool or [])
        self._churn = session_churn
        self._rng = rng or random.Random()
        self._clock = clock

        self._forced_offline: set[str] = set()
        self._forced_cpu: dict[str, float] = {}
        self._forced_netwatch: dict[tuple[str, str], NetwatchStatus] = {}
        self._sessions: dict[str, dict[str, ObservedSession]] = {}
        self._pinned_sessions: set[str] = set()
        self._refresh_count = 0

    # ── Behaviour overrides ─────────────────────────────────────

    def force_offline(self, router_id: str) -> None:
        self._forced_offline.add(router_id)

    def force_online(self, router_id: str) -> None:
        self._forced_offline.discard(router_id)

    def set_cpu(self, router_id: str, cpu_load: float) -> None:
        self._forced_cpu[router_id] = cpu_load

    def set_netwatch(self, router_id: str, host: str, status: NetwatchStatus) -> None:
        """Report *status* for this host on the next refresh."""
        self._forced_netwatch[(router_id, host)] = status

    def set_sessions(self, router_id: str, names: list[str]) -> None:
        """Pin the session list reported for a router (disables churn there)."""
        self._pinned_sessions.add(router_id)
        self._sessions[router_id] = {n: self._make_session(n) for n in names}

    @property
    def refresh_count(self) -> int:
        return self._refresh_count

    # ── DeviceClient ────────────────────────────────────────────

    async def refresh(
        self,
        router_id: str,
        include_dependents: bool = True,
        full_sync: bool = True,
    ) -> RefreshResult:
        self._refresh_count += 1
        low, high = self._latency
        if high > 0:
            await asyncio.sleep(self._rng.uniform(low, high))

        router = await self._storage.routers.get(router_id)
        if router is None:
            raise DeviceRefreshError(f"Router {router_id} not found")
        if router_id in self._forced_offline or self._rng.random() < self._failure_probability:
            raise DeviceRefreshError(f"Connection to {router.host or router.name} refused")

        previous = router.status
        router.status = RouterStatus.ONLINE
        router.last_seen = self._clock()
        router.metrics = self._metrics(router_id)
        self._storage.routers.save(router)

        transitions: list[NetwatchTransition] = []
        if include_dependents:
            transitions = await self._sync_netwatch(router_id)

        sessions = self._observe_sessions(router_id) if full_sync else None
        return RefreshResult(
            router=router,
            previous_status=previous,
            netwatch=transitions,
            sessions=sessions,
        )

    # ── Internals ───────────────────────────────────────────────

    def _metrics(self, router_id: str) -> RouterMetrics:
        cpu = self._forced_cpu.get(router_id)
        if cpu is None:
            cpu = round(self._rng.uniform(*self._cpu_range), 1)
        used_pct = self._rng.uniform(*self._memory_range)
        return RouterMetrics(
            cpu_load=cpu,
            total_memory=self._total_memory,
            used_memory=int(self._total_memory * used_pct / 100),
            uptime_secs=self._rng.randint(3600, 30 * 86400),
        )

    async def _sync_netwatch(self, router_id: str) -> list[NetwatchTransition]:
        transitions: list[NetwatchTransition] = []
        for target in await self._storage.netwatch.list_by_router(router_id):
            status = self._forced_netwatch.pop((router_id, target.host), None)
            if status is None:
                status = target.status
                if status == NetwatchStatus.UNKNOWN:
                    status = NetwatchStatus.UP
                elif self._rng.random() < self._flip_probability:
                    status = (
                        NetwatchStatus.DOWN
                        if status == NetwatchStatus.UP
                        else NetwatchStatus.UP
                    )
            previous = self._storage.netwatch.set_status(router_id, target.host, status)
            if previous is not None and previous != status:
                transitions.append(
                    NetwatchTransition(
                        host=target.host,
                        name=target.name,
                        previous=previous,
                        current=status,
                    )
                )
        return transitions

    def _observe_sessions(self, router_id: str) -> list[ObservedSession]:
        current = self._sessions.setdefault(router_id, {})
        if router_id not in self._pinned_sessions:
            for name in self._session_pool:
                if self._rng.random() >= self._churn:
                    continue
                if name in current:
                    del current[name]
                else:
                    current[name] = self._make_session(name)
        return list(current.values())

    def _make_session(self, name: str) -> ObservedSession:
        return ObservedSession(
            name=name,
            session_id=f"0x{self._rng.getrandbits(32):08x}",
            address=f"10.{self._rng.randint(0, 255)}.{self._rng.randint(0, 255)}.{self._rng.randint(2, 254)}",
            service="pppoe",
            uptime="0s",
        )
