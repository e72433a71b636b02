"""Adaptive poll cadence — degrade frequency and concurrency as the fleet grows."""

from __future__ import annotations

import re
from typing import Any

import structlog

from routerwatch.core.config import PollingConfig, PollingTier, get_settings
from routerwatch.core.types import PlanSource, PollingPlan
from routerwatch.storage.base import NetwatchStore, SettingsStore

logger = structlog.stdlib.get_logger()

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def parse_override_minutes(value: Any) -> int | None:
    """Leading integer of a stored interval override, or None when unusable.

    ``"5"``, ``5`` and ``"5 min"`` all give 5; anything below 1 is ignored.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        minutes = int(value)
    else:
        match = _LEADING_INT_RE.match(str(value))
        if match is None:
            return None
        minutes = int(match.group(1))
    return minutes if minutes >= 1 else None


class AdaptiveIntervalController:
    """Chooses interval and batch size for the next poll cycle.

    The netwatch target count stands in for total load.  Tiers are checked
    in ascending order and the first whose ``max_devices`` is at or above
    the count wins, so boundary counts land in the lower tier.

    A manual override (whole minutes, stored under
    ``config.interval_setting_key``) replaces the interval only.  Batch size
    and sync depth are still derived from the current count.
    """

    def __init__(
        self,
        settings: SettingsStore,
        netwatch: NetwatchStore,
        config: PollingConfig | None = None,
    ) -> None:
        self._settings = settings
        self._netwatch = netwatch
        self._config = config or get_settings().polling
        self._last_plan: PollingPlan | None = None

    @property
    def last_plan(self) -> PollingPlan | None:
        return self._last_plan

    def tier_for(self, device_count: int) -> PollingTier:
        for tier in self._config.tiers:
            if tier.max_devices is None or device_count <= tier.max_devices:
                return tier
        # Validation guarantees an unbounded last tier; keep the last as a floor.
        return self._config.tiers[-1]

    def plan_for(self, device_count: int, override_minutes: int | None = None) -> PollingPlan:
        """Pure tier selection for *device_count*."""
        tier = self.tier_for(device_count)
        if override_minutes is not None:
            return PollingPlan(
                interval_secs=override_minutes * 60.0,
                batch_size=tier.batch_size,
                full_sync=tier.full_sync,
                label=f"Manual ({override_minutes} min)",
                source=PlanSource.OVERRIDE,
                device_count=device_count,
            )
        return PollingPlan(
            interval_secs=tier.interval_secs,
            batch_size=tier.batch_size,
            full_sync=tier.full_sync,
            label=tier.label,
            source=PlanSource.TIER,
            device_count=device_count,
        )

    def fallback_plan(self) -> PollingPlan:
        return PollingPlan(
            interval_secs=self._config.default_interval_secs,
            batch_size=self._config.default_batch_size,
            full_sync=True,
            label="Default",
            source=PlanSource.FALLBACK,
        )

    async def current_plan(self) -> PollingPlan:
        """Read the override and the load proxy, then pick a plan.

        A failed settings read falls back to the default interval and batch
        size.  A failed count keeps a valid override's interval and uses the
        default batch size; without an override it falls back as well.
        """
        plan = await self._read_plan()
        if self._last_plan is None or plan.label != self._last_plan.label:
            logger.info(
                "polling_plan_selected",
                label=plan.label,
                interval_secs=plan.interval_secs,
                batch_size=plan.batch_size,
                device_count=plan.device_count,
                source=plan.source,
            )
        self._last_plan = plan
        return plan

    async def _read_plan(self) -> PollingPlan:
        try:
            override = parse_override_minutes(
                await self._settings.get_value(self._config.interval_setting_key)
            )
        except Exception:
            logger.warning("polling_plan_fallback", step="override", exc_info=True)
            return self.fallback_plan()

        try:
            count = await self._netwatch.count()
        except Exception:
            logger.warning("polling_plan_fallback", step="count", exc_info=True)
            if override is None:
                return self.fallback_plan()
            return PollingPlan(
                interval_secs=override * 60.0,
                batch_size=self._config.default_batch_size,
                full_sync=True,
                label=f"Manual ({override} min)",
                source=PlanSource.OVERRIDE,
            )
        return self.plan_for(count, override)
