"""HTTP control surface — live events and scheduler triggers over aiohttp.

Exposes:
- ``GET  /events``         → server-sent events stream from the broadcaster
- ``GET  /api/scheduler``  → JSON scheduler status
- ``POST /api/poll``       → start a poll cycle now (single-flight)
- ``POST /api/escalation`` → run an escalation scan now

``/events`` takes ``user_id`` and ``role`` from the query string.  The
``admin`` and ``operator`` roles are honoured only when Basic auth is
configured; otherwise the stream is downgraded to an unprivileged one.
"""

from __future__ import annotations

import base64
import hmac
from typing import Any

import structlog
from aiohttp import web

from routerwatch.core.types import UserRole
from routerwatch.polling.scheduler import PollScheduler
from routerwatch.realtime.broadcaster import CLOSED, EventBroadcaster, ServerEvent

logger = structlog.stdlib.get_logger()

SCHEDULER_KEY = web.AppKey("scheduler", PollScheduler)
BROADCASTER_KEY = web.AppKey("broadcaster", EventBroadcaster)
AUTH_KEY = web.AppKey("auth", tuple)

_PRIVILEGED_ROLES = frozenset({UserRole.ADMIN, UserRole.OPERATOR})


def _check_basic_auth(request: web.Request, username: str, password: str) -> bool:
    """Validate HTTP Basic Auth credentials."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Basic "):
        return False
    try:
        decoded = base64.b64decode(auth_header[6:]).decode("utf-8")
        req_user, req_pass = decoded.split(":", 1)
    except (ValueError, UnicodeDecodeError):
        return False
    user_ok = hmac.compare_digest(req_user, username)
    pass_ok = hmac.compare_digest(req_pass, password)
    return user_ok and pass_ok


@web.middleware
async def _auth_middleware(request: web.Request, handler: Any) -> web.StreamResponse:
    """Require HTTP Basic Auth on all routes when credentials are configured."""
    username, password = request.app[AUTH_KEY]
    if username and password:
        if not _check_basic_auth(request, username, password):
            return web.Response(
                status=401,
                text="Unauthorized",
                headers={"WWW-Authenticate": 'Basic realm="routerwatch"'},
            )
    return await handler(request)


def _parse_role(raw: str | None) -> UserRole | None:
    if not raw:
        return None
    try:
        return UserRole(raw.lower())
    except ValueError:
        return None


async def _handle_events(request: web.Request) -> web.StreamResponse:
    broadcaster = request.app[BROADCASTER_KEY]
    # EventSource cannot set headers, so identity rides on the query string.
    user_id = request.query.get("user_id") or None
    role = _parse_role(request.query.get("role"))
    username, password = request.app[AUTH_KEY]
    if role in _PRIVILEGED_ROLES and not (username and password):
        # Unauthenticated streams cannot claim the system-wide audience.
        logger.warning("subscriber_role_ignored", role=str(role), user_id=user_id)
        role = None

    response = web.StreamResponse(
        headers={
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )
    await response.prepare(request)

    sub = broadcaster.subscribe(user_id=user_id, role=role)
    try:
        await response.write(ServerEvent("connected", {"subscriber_id": sub.id}).encode())
        while True:
            event = await sub.queue.get()
            if event.name == CLOSED:
                break
            await response.write(event.encode())
    except ConnectionResetError:
        logger.debug("subscriber_connection_reset", subscriber_id=sub.id)
    finally:
        broadcaster.unsubscribe(sub)
    return response


async def _handle_status(request: web.Request) -> web.Response:
    scheduler = request.app[SCHEDULER_KEY]
    data = scheduler.status()
    data["subscribers"] = request.app[BROADCASTER_KEY].subscriber_count
    return web.json_response(data)


async def _handle_poll(request: web.Request) -> web.Response:
    scheduler = request.app[SCHEDULER_KEY]
    if scheduler.trigger():
        logger.info("manual_poll_triggered")
        return web.json_response({"started": True}, status=202)
    return web.json_response({"started": False, "reason": "cycle_in_progress"}, status=409)


async def _handle_escalation(request: web.Request) -> web.Response:
    scheduler = request.app[SCHEDULER_KEY]
    report = await scheduler.check_escalation_now()
    if report is None:
        return web.json_response({"error": "escalation disabled"}, status=503)
    return web.json_response(report.model_dump())


def create_web_app(
    scheduler: PollScheduler,
    broadcaster: EventBroadcaster,
    username: str | None = None,
    password: str | None = None,
) -> web.Application:
    """Create the aiohttp web application."""
    app = web.Application(middlewares=[_auth_middleware])
    app[SCHEDULER_KEY] = scheduler
    app[BROADCASTER_KEY] = broadcaster
    app[AUTH_KEY] = (username, password)
    app.router.add_get("/events", _handle_events)
    app.router.add_get("/api/scheduler", _handle_status)
    app.router.add_post("/api/poll", _handle_poll)
    app.router.add_post("/api/escalation", _handle_escalation)
    return app


async def start_web_server(
    scheduler: PollScheduler,
    broadcaster: EventBroadcaster,
    host: str = "127.0.0.1",
    port: int = 8080,
    username: str | None = None,
    password: str | None = None,
) -> web.AppRunner:
    """Start the control surface. Returns the runner for cleanup."""
    app = create_web_app(scheduler, broadcaster, username=username, password=password)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("web_server_started", host=host, port=port)
    return runner
