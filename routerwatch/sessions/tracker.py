"""PPPoE presence tracking by set difference between polls."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import structlog

from routerwatch.alerts.engine import AlertEngine
from routerwatch.core.types import (
    ObservedSession,
    Router,
    SessionChanges,
    TrackedSession,
    utcnow,
)
from routerwatch.storage.base import SessionStore

logger = structlog.stdlib.get_logger()


class SessionTracker:
    """Turns successive session snapshots into connect/disconnect events.

    Sessions are keyed by name.  A name seen now but not tracked is a
    connect, a tracked name missing now is a disconnect, and names in both
    are refreshed in place.  Only feed it snapshots from a successful
    refresh: an empty list from a failed poll reads as everyone leaving.
    """

    def __init__(
        self,
        sessions: SessionStore,
        alerts: AlertEngine,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sessions = sessions
        self._alerts = alerts
        self._clock = clock

    async def track(self, router: Router, current: list[ObservedSession]) -> SessionChanges:
        changes = SessionChanges()
        now = self._clock()

        previous = {s.name: s for s in await self._sessions.list_by_router(router.id)}
        observed: dict[str, ObservedSession] = {}
        for session in current:
            observed.setdefault(session.name, session)

        for name, session in observed.items():
            existing = previous.get(name)
            if existing is not None:
                await self._sessions.update(
                    existing.id,
                    last_seen=now,
                    uptime=session.uptime,
                    address=session.address,
                )
                changes.refreshed.append(name)
                continue

            await self._sessions.insert(
                TrackedSession(
                    router_id=router.id,
                    name=name,
                    session_id=session.session_id,
                    caller_id=session.caller_id,
                    address=session.address,
                    service=session.service,
                    uptime=session.uptime,
                    connected_at=now,
                    last_seen=now,
                )
            )
            changes.connected.append(name)
            try:
                await self._alerts.create_session_connect_alert(router, name, session.address)
            except Exception:
                logger.exception("session_connect_alert_failed", router_id=router.id, session=name)

        for name, tracked in previous.items():
            if name in observed:
                continue
            duration = max((now - tracked.connected_at).total_seconds(), 0.0)
            changes.disconnected.append(name)
            try:
                await self._alerts.create_session_disconnect_alert(
                    router, name, tracked.address, duration
                )
            except Exception:
                logger.exception(
                    "session_disconnect_alert_failed", router_id=router.id, session=name
                )
            await self._sessions.delete(tracked.id)

        if changes.connected or changes.disconnected:
            logger.info(
                "sessions_changed",
                router_id=router.id,
                connected=len(changes.connected),
                disconnected=len(changes.disconnected),
            )
        return changes

    async def forget(self, router_id: str) -> int:
        """Drop every tracked session of a router (e.g. when it is removed)."""
        return await self._sessions.delete_by_router(router_id)
