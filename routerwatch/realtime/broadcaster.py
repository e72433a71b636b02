"""In-process event fan-out to connected live-update subscribers."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any

import structlog

from routerwatch.core.types import UserRole, new_id

logger = structlog.stdlib.get_logger()

# Sentinel event names: keep-alive comment, and end-of-stream for dropped clients.
HEARTBEAT = ""
CLOSED = "\0closed"


@dataclass(frozen=True)
class ServerEvent:
    """One event queued for a subscriber."""

    name: str
    data: dict[str, Any] = field(default_factory=dict)

    def encode(self) -> bytes:
        """Render as a server-sent-events frame."""
        if self.name == HEARTBEAT:
            return b": heartbeat\n\n"
        payload = json.dumps(self.data, default=str)
        return f"event: {self.name}\ndata: {payload}\n\n".encode()


class Subscriber:
    """A connected client with its own bounded queue."""

    def __init__(
        self,
        user_id: str | None = None,
        role: UserRole | None = None,
        queue_size: int = 100,
    ) -> None:
        self.id = new_id()
        self.user_id = user_id
        self.role = role
        self.queue: asyncio.Queue[ServerEvent] = asyncio.Queue(maxsize=queue_size)
        self.closed = False

    def close(self) -> None:
        """Replace whatever is pending with an end-of-stream marker."""
        self.closed = True
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(ServerEvent(CLOSED))

    @property
    def privileged(self) -> bool:
        return self.role in (UserRole.ADMIN, UserRole.OPERATOR)

    def can_see(self, user_ids: set[str]) -> bool:
        # Targeted events never go to anonymous clients.
        if self.user_id is None:
            return False
        return self.privileged or self.user_id in user_ids


class EventBroadcaster:
    """Registry of live subscribers.

    Delivery is ``put_nowait`` into each subscriber's queue, so callers never
    block on a slow client; a subscriber whose queue is full is dropped.

    Usage::

        broadcaster = EventBroadcaster()
        sub = broadcaster.subscribe(user_id="u1", role=UserRole.USER)
        broadcaster.broadcast_to_users("new_alert", {...}, ["u1"])
        event = await sub.queue.get()
    """

    def __init__(self, queue_size: int = 100, heartbeat_secs: float = 30.0) -> None:
        self._queue_size = queue_size
        self._heartbeat_secs = heartbeat_secs
        self._subscribers: dict[str, Subscriber] = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, user_id: str | None = None, role: UserRole | None = None) -> Subscriber:
        sub = Subscriber(user_id=user_id, role=role, queue_size=self._queue_size)
        self._subscribers[sub.id] = sub
        logger.info(
            "subscriber_connected",
            subscriber_id=sub.id,
            user_id=user_id,
            total=len(self._subscribers),
        )
        return sub

    def unsubscribe(self, sub: Subscriber) -> None:
        if self._subscribers.pop(sub.id, None) is not None:
            sub.close()
            logger.info(
                "subscriber_disconnected",
                subscriber_id=sub.id,
                total=len(self._subscribers),
            )

    def broadcast(self, event: str, payload: dict[str, Any]) -> int:
        """Send to every subscriber. Returns the number reached."""
        return self._deliver(ServerEvent(event, payload), list(self._subscribers.values()))

    def broadcast_to_users(
        self,
        event: str,
        payload: dict[str, Any],
        user_ids: list[str],
    ) -> int:
        """Send to admins/operators and the listed users only."""
        allowed = set(user_ids)
        targets = [s for s in self._subscribers.values() if s.can_see(allowed)]
        return self._deliver(ServerEvent(event, payload), targets)

    def _deliver(self, event: ServerEvent, targets: list[Subscriber]) -> int:
        reached = 0
        for sub in targets:
            try:
                sub.queue.put_nowait(event)
                reached += 1
            except asyncio.QueueFull:
                logger.warning("subscriber_queue_full", subscriber_id=sub.id)
                self.unsubscribe(sub)
        return reached

    # ── Heartbeat ───────────────────────────────────────────────

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._heartbeat_loop())

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _heartbeat_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._heartbeat_secs)
            except asyncio.CancelledError:
                return
            self._deliver(ServerEvent(HEARTBEAT), list(self._subscribers.values()))
