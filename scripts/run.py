#!/usr/bin/env python3
"""Main entrypoint — wires all components and runs the monitor against a simulated fleet.

Usage::

    # Run with default config
    python scripts/run.py

    # Custom config file and a bigger fleet
    python scripts/run.py --config config/settings.yaml --routers 120

    # Override log level
    python scripts/run.py --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import random
import signal
import sys

import structlog

from routerwatch.alerts.engine import AlertEngine
from routerwatch.alerts.escalation import EscalationEngine
from routerwatch.core.config import load_settings
from routerwatch.core.logging import setup_logging
from routerwatch.core.types import NetwatchTarget, Router
from routerwatch.notify.factory import create_notifier
from routerwatch.polling.interval import AdaptiveIntervalController
from routerwatch.polling.scheduler import PollScheduler
from routerwatch.realtime.broadcaster import EventBroadcaster
from routerwatch.realtime.server import start_web_server
from routerwatch.sessions.tracker import SessionTracker
from routerwatch.sim.client import SimulatedDeviceClient
from routerwatch.storage.memory import MemoryStorage

logger = structlog.get_logger(__name__)


def seed_fleet(storage: MemoryStorage, count: int, hosts_per_router: int = 2) -> None:
    """Populate the memory stores with *count* routers and their netwatch hosts."""
    for i in range(count):
        router = storage.routers.add(Router(name=f"rb-{i + 1:03d}", host=f"192.168.{i // 250}.{i % 250 + 1}"))
        for j in range(hosts_per_router):
            storage.netwatch.add(
                NetwatchTarget(
                    router_id=router.id,
                    host=f"10.{i // 250}.{i % 250}.{j + 10}",
                    name=f"{router.name}-client-{j + 1}",
                )
            )


async def run(args: argparse.Namespace) -> int:
    """Start all components and run until interrupted."""
    settings = load_settings(args.config)
    setup_logging(level=args.log_level)

    # ── Stores + simulated fleet ─────────────────────────────────
    storage = MemoryStorage()
    seed_fleet(storage, args.routers)
    client = SimulatedDeviceClient(
        storage,
        failure_probability=args.failure_rate,
        latency_secs=(0.05, 0.5),
        netwatch_flip_probability=0.02,
        session_pool=[f"pppoe-user-{n}" for n in range(1, 21)],
        session_churn=0.05,
        rng=random.Random(args.seed),
    )

    logger.info(
        "monitor_starting",
        routers=args.routers,
        netwatch_targets=await storage.netwatch.count(),
        telegram=settings.notifications.telegram.enabled,
        whatsapp=settings.notifications.whatsapp.enabled,
    )

    # ── Notifications + live updates ─────────────────────────────
    notifier = create_notifier(settings.notifications)
    broadcaster = EventBroadcaster(
        queue_size=settings.dashboard.subscriber_queue_size,
        heartbeat_secs=settings.dashboard.heartbeat_secs,
    )

    # ── Alerting ─────────────────────────────────────────────────
    engine = AlertEngine(
        storage.alerts,
        storage.settings,
        storage.access,
        routers=storage.routers,
        notifier=notifier,
        broadcaster=broadcaster,
        config=settings.alerts,
    )
    escalation = EscalationEngine(
        engine,
        storage.routers,
        storage.netwatch,
        notifier=notifier,
        config=settings.escalation,
    )
    tracker = SessionTracker(storage.sessions, engine)

    # ── Scheduler ────────────────────────────────────────────────
    controller = AdaptiveIntervalController(
        storage.settings, storage.netwatch, config=settings.polling
    )
    scheduler = PollScheduler(
        storage.routers,
        client,
        controller,
        engine,
        tracker=tracker,
        escalation=escalation,
        polling=settings.polling,
        escalation_config=settings.escalation,
    )

    # ── Start everything ─────────────────────────────────────────
    await broadcaster.start()
    await scheduler.start()

    runner = None
    if settings.dashboard.enabled and not args.no_web:
        runner = await start_web_server(
            scheduler,
            broadcaster,
            host=settings.dashboard.host,
            port=settings.dashboard.port,
            username=settings.dashboard.username or None,
            password=settings.dashboard.password.get_secret_value() or None,
        )

    logger.info(
        "monitor_running",
        notification_channels=notifier.channel_count,
        web="active" if runner else "disabled",
    )

    # ── Wait for shutdown signal ─────────────────────────────────
    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows: signal handlers not supported on ProactorEventLoop
            pass

    try:
        await stop_event.wait()
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")

    # ── Graceful shutdown ────────────────────────────────────────
    logger.info("monitor_shutting_down")

    if runner is not None:
        await runner.cleanup()
    await scheduler.stop()
    await broadcaster.stop()
    await engine.drain()
    await notifier.close()

    summary = scheduler.last_summary
    logger.info(
        "monitor_stopped",
        cycles=scheduler.cycle_count,
        alerts=storage.alerts.size,
        last_cycle_succeeded=summary.succeeded if summary else None,
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Run the router poller and alert escalation against a simulated fleet.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument("--routers", type=int, default=25, help="Simulated fleet size")
    parser.add_argument(
        "--failure-rate",
        type=float,
        default=0.02,
        help="Probability that a simulated refresh fails",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed for the simulator")
    parser.add_argument("--no-web", action="store_true", help="Do not start the HTTP surface")
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
