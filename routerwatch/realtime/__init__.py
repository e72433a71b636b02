"""Live updates — SSE broadcaster and the HTTP control surface."""

from routerwatch.realtime.broadcaster import (
    CLOSED,
    HEARTBEAT,
    EventBroadcaster,
    ServerEvent,
    Subscriber,
)
from routerwatch.realtime.server import create_web_app, start_web_server

__all__ = [
    "CLOSED",
    "HEARTBEAT",
    "EventBroadcaster",
    "ServerEvent",
    "Subscriber",
    "create_web_app",
    "start_web_server",
]
