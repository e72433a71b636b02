"""PollScheduler — drives poll cycles and the escalation scan."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import structlog

from routerwatch.alerts.engine import AlertEngine
from routerwatch.alerts.escalation import EscalationEngine, EscalationReport
from routerwatch.core.config import EscalationConfig, PollingConfig, get_settings
from routerwatch.core.exceptions import PollTimeoutError
from routerwatch.core.logging import cycle_context
from routerwatch.core.types import (
    CycleSummary,
    DevicePollResult,
    PollingPlan,
    PollOutcome,
    RefreshResult,
    Router,
    RouterStatus,
    utcnow,
)
from routerwatch.polling.client import DeviceClient
from routerwatch.polling.cycle import CycleToken
from routerwatch.polling.interval import AdaptiveIntervalController
from routerwatch.polling.timeout import with_timeout
from routerwatch.sessions.tracker import SessionTracker
from routerwatch.storage.base import RouterStore

logger = structlog.stdlib.get_logger()


def partition(items: list[Router], size: int) -> list[list[Router]]:
    """Split *items* into consecutive chunks of at most *size*."""
    size = max(size, 1)
    return [items[i : i + size] for i in range(0, len(items), size)]


class PollScheduler:
    """Owns the two recurring jobs: router polling and alert escalation.

    Each poll tick asks the interval controller for a fresh plan, fires a
    cycle in the background and sleeps for the plan's interval.  A tick
    that finds a cycle still running does nothing.  Within a cycle, routers
    are refreshed batch by batch; the routers of one batch run
    concurrently and the next batch starts only after every refresh of the
    previous one has settled.

    Usage::

        scheduler = PollScheduler(routers, client, controller, engine,
                                  tracker=tracker, escalation=escalation)
        await scheduler.start()
        summary = await scheduler.poll_now()
        await scheduler.stop()
    """

    def __init__(
        self,
        routers: RouterStore,
        client: DeviceClient,
        controller: AdaptiveIntervalController,
        alerts: AlertEngine,
        tracker: SessionTracker | None = None,
        escalation: EscalationEngine | None = None,
        polling: PollingConfig | None = None,
        escalation_config: EscalationConfig | None = None,
        token: CycleToken | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._routers = routers
        self._client = client
        self._controller = controller
        self._alerts = alerts
        self._tracker = tracker
        self._escalation = escalation
        self._polling = polling or get_settings().polling
        self._escalation_config = escalation_config or get_settings().escalation
        self._token = token or CycleToken(self._polling.stuck_cycle_timeout_secs)
        self._clock = clock

        self._running = False
        self._poll_task: asyncio.Task[None] | None = None
        self._escalation_task: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[Any]] = set()
        self._last_summary: CycleSummary | None = None
        self._last_report: EscalationReport | None = None
        self._cycle_count = 0

    # ── Properties ───────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    @property
    def token(self) -> CycleToken:
        return self._token

    @property
    def last_summary(self) -> CycleSummary | None:
        return self._last_summary

    @property
    def last_escalation_report(self) -> EscalationReport | None:
        return self._last_report

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    def status(self) -> dict[str, Any]:
        """JSON-ready snapshot for the control surface."""
        plan = self._controller.last_plan
        elapsed = self._token.elapsed()
        return {
            "running": self._running,
            "cycle_in_progress": self._token.in_progress,
            "cycle_elapsed_secs": round(elapsed, 1) if elapsed is not None else None,
            "cycle_count": self._cycle_count,
            "plan": plan.model_dump(mode="json") if plan else None,
            "last_cycle": (
                self._last_summary.model_dump(mode="json", exclude={"results"})
                if self._last_summary
                else None
            ),
            "escalation_enabled": self._escalation is not None
            and self._escalation_config.enabled,
            "last_escalation": self._last_report.model_dump() if self._last_report else None,
        }

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._poll_task = asyncio.create_task(self._poll_loop(), name="poll-loop")
        if self._escalation is not None and self._escalation_config.enabled:
            self._escalation_task = asyncio.create_task(
                self._escalation_loop(), name="escalation-loop"
            )
        logger.info(
            "scheduler_started",
            initial_delay_secs=self._polling.initial_delay_secs,
            escalation=self._escalation_task is not None,
        )

    async def stop(self) -> None:
        self._running = False
        for task in (self._poll_task, self._escalation_task, *self._cycles):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._poll_task = None
        self._escalation_task = None
        self._cycles.clear()
        logger.info("scheduler_stopped", cycle_count=self._cycle_count)

    async def restart(self) -> None:
        """Stop and start again, e.g. after the interval override changed."""
        await self.stop()
        await self.start()

    # ── Triggers ─────────────────────────────────────────────────

    def trigger(self, plan: PollingPlan | None = None) -> bool:
        """Fire a cycle in the background. False when one is already running."""
        if not self._token.try_begin():
            logger.info("poll_cycle_skipped", reason="in_progress")
            return False
        generation = self._token.generation
        task = asyncio.create_task(self._claimed_cycle(generation, plan), name="poll-cycle")
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)
        return True

    async def poll_now(self) -> CycleSummary | None:
        """Run one cycle immediately and wait for it.

        Still single-flight: returns None when a cycle is already running.
        """
        return await self.run_cycle()

    async def run_cycle(self, plan: PollingPlan | None = None) -> CycleSummary | None:
        if not self._token.try_begin():
            logger.info("poll_cycle_skipped", reason="in_progress")
            return None
        return await self._claimed_cycle(self._token.generation, plan)

    async def check_escalation_now(self) -> EscalationReport | None:
        if self._escalation is None:
            return None
        self._last_report = await self._escalation.scan()
        return self._last_report

    # ── Internal loops ───────────────────────────────────────────

    async def _poll_loop(self) -> None:
        try:
            await asyncio.sleep(self._polling.initial_delay_secs)
        except asyncio.CancelledError:
            return

        while self._running:
            interval = self._polling.default_interval_secs
            try:
                plan = await self._controller.current_plan()
                interval = plan.interval_secs
                self.trigger(plan)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("poll_trigger_error")

            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break

    async def _escalation_loop(self) -> None:
        try:
            await asyncio.sleep(self._escalation_config.initial_delay_secs)
        except asyncio.CancelledError:
            return

        while self._running:
            try:
                await self.check_escalation_now()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("escalation_scan_error")

            try:
                await asyncio.sleep(self._escalation_config.scan_interval_secs)
            except asyncio.CancelledError:
                break

    # ── Cycle ────────────────────────────────────────────────────

    async def _claimed_cycle(
        self, generation: int, plan: PollingPlan | None
    ) -> CycleSummary | None:
        try:
            with cycle_context(self._cycle_count + 1, generation=generation):
                summary = await self._execute(plan)
        except Exception:
            logger.exception("poll_cycle_failed")
            return None
        finally:
            self._token.end(generation)
        if generation != self._token.generation:
            # Replaced by the watchdog; the newer cycle owns the status.
            logger.warning("poll_cycle_finished_after_replacement", generation=generation)
            return summary
        self._last_summary = summary
        self._cycle_count += 1
        return summary

    async def _execute(self, plan: PollingPlan | None) -> CycleSummary:
        if plan is None:
            plan = await self._controller.current_plan()
        started_at = self._clock()
        t0 = time.monotonic()

        routers = await self._routers.list_all()
        batches = partition(routers, plan.batch_size)
        summary = CycleSummary(
            started_at=started_at,
            batch_size=plan.batch_size,
            batches=len(batches),
            total=len(routers),
        )

        for batch in batches:
            results = await asyncio.gather(*(self._poll_device(r, plan) for r in batch))
            summary.results.extend(results)

        for result in summary.results:
            if result.outcome == PollOutcome.SUCCESS:
                summary.succeeded += 1
            elif result.outcome == PollOutcome.TIMEOUT:
                summary.timed_out += 1
            else:
                summary.failed += 1
        summary.duration_secs = round(time.monotonic() - t0, 3)

        logger.info(
            "poll_cycle_complete",
            total=summary.total,
            batches=summary.batches,
            batch_size=summary.batch_size,
            succeeded=summary.succeeded,
            failed=summary.failed,
            timed_out=summary.timed_out,
            duration_secs=summary.duration_secs,
            plan=plan.label,
        )
        return summary

    async def _poll_device(self, router: Router, plan: PollingPlan) -> DevicePollResult:
        t0 = time.monotonic()
        timeout = self._polling.device_timeout_secs
        try:
            result = await with_timeout(
                self._client.refresh(router.id, include_dependents=True, full_sync=plan.full_sync),
                timeout,
                f"Refresh of {router.name} timed out after {timeout:g}s",
            )
        except PollTimeoutError as exc:
            logger.warning("device_poll_timeout", router_id=router.id, timeout_secs=timeout)
            await self._mark_offline(router)
            return DevicePollResult(
                router_id=router.id,
                outcome=PollOutcome.TIMEOUT,
                error=str(exc),
                duration_secs=round(time.monotonic() - t0, 3),
            )
        except Exception as exc:
            logger.warning("device_poll_failed", router_id=router.id, error=str(exc))
            await self._mark_offline(router)
            return DevicePollResult(
                router_id=router.id,
                outcome=PollOutcome.FAILED,
                error=str(exc) or type(exc).__name__,
                duration_secs=round(time.monotonic() - t0, 3),
            )

        await self._process_refresh(result)
        return DevicePollResult(
            router_id=router.id,
            outcome=PollOutcome.SUCCESS,
            duration_secs=round(time.monotonic() - t0, 3),
        )

    # ── Per-device outcome processing ────────────────────────────

    async def _isolated(self, step: str, router_id: str, work: Awaitable[Any]) -> None:
        try:
            await work
        except Exception:
            logger.exception("device_post_process_failed", step=step, router_id=router_id)

    async def _process_refresh(self, result: RefreshResult) -> None:
        router = result.router

        if result.previous_status == RouterStatus.OFFLINE and router.status == RouterStatus.ONLINE:
            await self._isolated(
                "status",
                router.id,
                self._alerts.create_status_change_alert(
                    router, RouterStatus.OFFLINE, RouterStatus.ONLINE
                ),
            )

        await self._isolated(
            "metrics", router.id, self._alerts.check_metric_alerts(router, router.metrics)
        )

        for transition in result.netwatch:
            if not transition.is_flip:
                continue
            await self._isolated(
                "netwatch",
                router.id,
                self._alerts.create_netwatch_alert(
                    router.id, transition.name, transition.host, transition.current
                ),
            )

        if self._tracker is not None and result.sessions is not None:
            await self._isolated("sessions", router.id, self._tracker.track(router, result.sessions))

    async def _mark_offline(self, router: Router) -> None:
        """Failed or timed-out refresh. Never touches session tracking."""
        try:
            current = await self._routers.get(router.id) or router
            previous = current.status
            if previous == RouterStatus.OFFLINE:
                return
            updated = await self._routers.set_status(router.id, RouterStatus.OFFLINE)
            await self._alerts.create_status_change_alert(
                updated or current, previous, RouterStatus.OFFLINE
            )
        except Exception:
            logger.exception("device_mark_offline_failed", router_id=router.id)
