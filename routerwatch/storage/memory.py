"""In-memory stores — drop-in replacements for a relational backend.

Used by the simulator, the demo entrypoint, and the test-suite.  Every read
returns a copy so callers cannot mutate stored state behind the store's back,
matching what a database round-trip would give them.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from routerwatch.core.types import (
    Alert,
    AlertType,
    NetwatchStatus,
    NetwatchTarget,
    NewAlert,
    Router,
    RouterStatus,
    TrackedSession,
)


class MemoryRouterStore:
    def __init__(self, routers: list[Router] | None = None) -> None:
        self._routers: dict[str, Router] = {}
        for router in routers or []:
            self.add(router)

    def add(self, router: Router) -> Router:
        self._routers[router.id] = router.model_copy(deep=True)
        return router

    def save(self, router: Router) -> None:
        """Replace the stored row (used by device clients after a refresh)."""
        self._routers[router.id] = router.model_copy(deep=True)

    async def list_all(self) -> list[Router]:
        return [r.model_copy(deep=True) for r in self._routers.values()]

    async def get(self, router_id: str) -> Router | None:
        router = self._routers.get(router_id)
        return router.model_copy(deep=True) if router else None

    async def count(self) -> int:
        return len(self._routers)

    async def set_status(
        self,
        router_id: str,
        status: RouterStatus,
        last_seen: datetime | None = None,
    ) -> Router | None:
        router = self._routers.get(router_id)
        if router is None:
            return None
        router.status = status
        if last_seen is not None:
            router.last_seen = last_seen
        return router.model_copy(deep=True)


class MemoryAlertStore:
    def __init__(self) -> None:
        self._alerts: dict[str, Alert] = {}

    def add(self, alert: Alert) -> Alert:
        """Seed a fully-formed alert (tests use this to back-date rows)."""
        self._alerts[alert.id] = alert.model_copy(deep=True)
        return alert

    @property
    def size(self) -> int:
        return len(self._alerts)

    async def insert(self, data: NewAlert, created_at: datetime) -> Alert:
        alert = Alert(**data.model_dump(), created_at=created_at)
        self._alerts[alert.id] = alert
        return alert.model_copy(deep=True)

    async def get(self, alert_id: str) -> Alert | None:
        alert = self._alerts.get(alert_id)
        return alert.model_copy(deep=True) if alert else None

    async def latest_unresolved(self, router_id: str, alert_type: AlertType) -> Alert | None:
        rows = await self.list(router_ids=[router_id], types=[alert_type], resolved=False, limit=1)
        return rows[0] if rows else None

    async def list(
        self,
        *,
        router_ids: Collection[str] | None = None,
        types: Collection[AlertType] | None = None,
        acknowledged: bool | None = None,
        resolved: bool | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        rows = [
            a
            for a in self._alerts.values()
            if (router_ids is None or a.router_id in router_ids)
            and (types is None or a.type in types)
            and (acknowledged is None or a.acknowledged == acknowledged)
            and (resolved is None or a.resolved == resolved)
        ]
        rows.sort(key=lambda a: a.created_at, reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return [a.model_copy(deep=True) for a in rows]

    async def acknowledge(
        self,
        alert_id: str,
        user_id: str,
        at: datetime,
        router_ids: Collection[str] | None = None,
    ) -> Alert | None:
        alert = self._alerts.get(alert_id)
        if alert is None or alert.acknowledged:
            return None
        if router_ids is not None and alert.router_id not in router_ids:
            return None
        alert.acknowledged = True
        alert.acknowledged_by = user_id
        alert.acknowledged_at = at
        return alert.model_copy(deep=True)

    async def acknowledge_all(
        self,
        user_id: str,
        at: datetime,
        router_ids: Collection[str] | None = None,
    ) -> int:
        count = 0
        for alert in self._alerts.values():
            if alert.acknowledged:
                continue
            if router_ids is not None and alert.router_id not in router_ids:
                continue
            alert.acknowledged = True
            alert.acknowledged_by = user_id
            alert.acknowledged_at = at
            count += 1
        return count

    async def resolve(self, alert_id: str, at: datetime) -> Alert | None:
        alert = self._alerts.get(alert_id)
        if alert is None or alert.resolved:
            return None
        alert.resolved = True
        alert.resolved_at = at
        return alert.model_copy(deep=True)

    async def record_escalation(self, alert_id: str, level: int, at: datetime) -> Alert | None:
        alert = self._alerts.get(alert_id)
        if alert is None or alert.resolved or alert.escalation_level >= level:
            return None
        alert.escalation_level = level
        alert.last_escalated_at = at
        return alert.model_copy(deep=True)


class MemoryNetwatchStore:
    def __init__(self, targets: list[NetwatchTarget] | None = None) -> None:
        self._targets: dict[str, NetwatchTarget] = {}
        for target in targets or []:
            self.add(target)

    def add(self, target: NetwatchTarget) -> NetwatchTarget:
        self._targets[target.id] = target.model_copy(deep=True)
        return target

    def set_status(self, router_id: str, host: str, status: NetwatchStatus) -> NetwatchStatus | None:
        """Update a target's status; returns the previous one (None if unknown host)."""
        for target in self._targets.values():
            if target.router_id == router_id and target.host == host:
                previous = target.status
                target.status = status
                return previous
        return None

    async def count(self) -> int:
        return len(self._targets)

    async def find(self, router_id: str, host: str) -> NetwatchTarget | None:
        for target in self._targets.values():
            if target.router_id == router_id and target.host == host:
                return target.model_copy(deep=True)
        return None

    async def list_by_router(self, router_id: str) -> list[NetwatchTarget]:
        return [
            t.model_copy(deep=True)
            for t in self._targets.values()
            if t.router_id == router_id
        ]


class MemorySessionStore:
    def __init__(self) -> None:
        self._sessions: dict[str, TrackedSession] = {}

    async def list_by_router(self, router_id: str) -> list[TrackedSession]:
        return [
            s.model_copy(deep=True)
            for s in self._sessions.values()
            if s.router_id == router_id
        ]

    async def insert(self, session: TrackedSession) -> TrackedSession:
        self._sessions[session.id] = session.model_copy(deep=True)
        return session

    async def update(
        self,
        session_id: str,
        *,
        last_seen: datetime,
        uptime: str | None = None,
        address: str | None = None,
    ) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            return
        session.last_seen = last_seen
        session.uptime = uptime
        session.address = address

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    async def delete_by_router(self, router_id: str) -> int:
        doomed = [sid for sid, s in self._sessions.items() if s.router_id == router_id]
        for sid in doomed:
            del self._sessions[sid]
        return len(doomed)


class MemorySettingsStore:
    def __init__(self, values: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(values or {})

    async def get_value(self, key: str) -> Any | None:
        return self._values.get(key)

    async def set_value(self, key: str, value: Any) -> None:
        self._values[key] = value


class MemoryAccessStore:
    def __init__(self) -> None:
        self._assignments: set[tuple[str, str]] = set()

    def assign(self, user_id: str, router_id: str) -> None:
        self._assignments.add((user_id, router_id))

    async def router_ids_for_user(self, user_id: str) -> list[str]:
        return sorted(r for u, r in self._assignments if u == user_id)

    async def user_ids_for_router(self, router_id: str) -> list[str]:
        return sorted(u for u, r in self._assignments if r == router_id)


@dataclass
class MemoryStorage:
    """All in-memory stores wired together."""

    routers: MemoryRouterStore = field(default_factory=MemoryRouterStore)
    alerts: MemoryAlertStore = field(default_factory=MemoryAlertStore)
    netwatch: MemoryNetwatchStore = field(default_factory=MemoryNetwatchStore)
    sessions: MemorySessionStore = field(default_factory=MemorySessionStore)
    settings: MemorySettingsStore = field(default_factory=MemorySettingsStore)
    access: MemoryAccessStore = field(default_factory=MemoryAccessStore)
