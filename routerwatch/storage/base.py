"""Persistence contracts the polling and alerting core depends on.

Every method is a coroutine because real backends do I/O; the in-memory
implementations in :mod:`routerwatch.storage.memory` honour the same
semantics (copies out, conditional updates, newest-first ordering).
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime
from typing import Any, Protocol

from routerwatch.core.types import (
    Alert,
    AlertType,
    NetwatchTarget,
    NewAlert,
    Router,
    RouterStatus,
    TrackedSession,
)


class RouterStore(Protocol):
    async def list_all(self) -> list[Router]: ...

    async def get(self, router_id: str) -> Router | None: ...

    async def count(self) -> int: ...

    async def set_status(
        self,
        router_id: str,
        status: RouterStatus,
        last_seen: datetime | None = None,
    ) -> Router | None: ...


class AlertStore(Protocol):
    async def insert(self, data: NewAlert, created_at: datetime) -> Alert: ...

    async def get(self, alert_id: str) -> Alert | None: ...

    async def latest_unresolved(self, router_id: str, alert_type: AlertType) -> Alert | None:
        """Most recently created unresolved alert for router + type."""
        ...

    async def list(
        self,
        *,
        router_ids: Collection[str] | None = None,
        types: Collection[AlertType] | None = None,
        acknowledged: bool | None = None,
        resolved: bool | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        """Alerts matching every given filter, newest first."""
        ...

    async def acknowledge(
        self,
        alert_id: str,
        user_id: str,
        at: datetime,
        router_ids: Collection[str] | None = None,
    ) -> Alert | None:
        """Acknowledge if unacknowledged (and within *router_ids* when given).

        Returns the updated alert, or None when no row matched.
        """
        ...

    async def acknowledge_all(
        self,
        user_id: str,
        at: datetime,
        router_ids: Collection[str] | None = None,
    ) -> int: ...

    async def resolve(self, alert_id: str, at: datetime) -> Alert | None:
        """Resolve if unresolved. Returns the updated alert or None."""
        ...

    async def record_escalation(self, alert_id: str, level: int, at: datetime) -> Alert | None:
        """Raise the level if the alert is unresolved and still below *level*."""
        ...


class NetwatchStore(Protocol):
    async def count(self) -> int: ...

    async def find(self, router_id: str, host: str) -> NetwatchTarget | None: ...

    async def list_by_router(self, router_id: str) -> list[NetwatchTarget]: ...


class SessionStore(Protocol):
    async def list_by_router(self, router_id: str) -> list[TrackedSession]: ...

    async def insert(self, session: TrackedSession) -> TrackedSession: ...

    async def update(
        self,
        session_id: str,
        *,
        last_seen: datetime,
        uptime: str | None = None,
        address: str | None = None,
    ) -> None: ...

    async def delete(self, session_id: str) -> None: ...

    async def delete_by_router(self, router_id: str) -> int: ...


class SettingsStore(Protocol):
    async def get_value(self, key: str) -> Any | None: ...

    async def set_value(self, key: str, value: Any) -> None: ...


class AccessStore(Protocol):
    async def router_ids_for_user(self, user_id: str) -> list[str]: ...

    async def user_ids_for_router(self, router_id: str) -> list[str]: ...
