"""Tests for AdaptiveIntervalController — tier boundaries, override, fallback."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from routerwatch.core.config import PollingConfig
from routerwatch.core.types import NetwatchTarget, PlanSource
from routerwatch.polling.interval import AdaptiveIntervalController, parse_override_minutes
from routerwatch.storage.memory import MemoryNetwatchStore, MemorySettingsStore


# ── Helpers ─────────────────────────────────────────────────────


def _controller(
    targets: int = 0,
    settings: dict[str, object] | None = None,
) -> AdaptiveIntervalController:
    netwatch = MemoryNetwatchStore(
        [NetwatchTarget(router_id="r1", host=f"10.0.{i // 250}.{i % 250}") for i in range(targets)]
    )
    return AdaptiveIntervalController(
        MemorySettingsStore(settings), netwatch, config=PollingConfig()
    )


# ── Tier selection ──────────────────────────────────────────────


class TestTierSelection:
    @pytest.mark.parametrize(
        ("count", "interval", "batch"),
        [
            (0, 30, 10),
            (1, 30, 10),
            (50, 30, 10),
            (51, 60, 5),
            (200, 60, 5),
            (201, 120, 3),
            (500, 120, 3),
            (501, 300, 2),
            (100_000, 300, 2),
        ],
    )
    def test_boundaries_inclusive(self, count: int, interval: float, batch: int) -> None:
        plan = _controller().plan_for(count)
        assert plan.interval_secs == interval
        assert plan.batch_size == batch
        assert plan.source == PlanSource.TIER
        assert plan.device_count == count

    def test_full_sync_only_in_light_tiers(self) -> None:
        c = _controller()
        assert c.plan_for(10).full_sync is True
        assert c.plan_for(150).full_sync is True
        assert c.plan_for(300).full_sync is False
        assert c.plan_for(900).full_sync is False

    def test_labels(self) -> None:
        c = _controller()
        assert c.plan_for(10).label == "Full check"
        assert c.plan_for(900).label == "Sampling + Alert only"

    def test_interval_ms(self) -> None:
        assert _controller().plan_for(10).interval_ms == 30_000


# ── Override ────────────────────────────────────────────────────


class TestOverride:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("5", 5),
            (5, 5),
            ("10 min", 10),
            (" 3", 3),
            (2.7, 2),
            ("0", None),
            ("-4", None),
            ("abc", None),
            ("", None),
            (None, None),
            (True, None),
        ],
    )
    def test_parse(self, raw: object, expected: int | None) -> None:
        assert parse_override_minutes(raw) == expected

    async def test_override_replaces_interval_only(self) -> None:
        c = _controller(targets=60, settings={"polling_interval": "7"})
        plan = await c.current_plan()
        assert plan.interval_secs == 420
        assert plan.source == PlanSource.OVERRIDE
        # Concurrency still follows the live device count.
        assert plan.batch_size == 5
        assert plan.full_sync is True

    async def test_invalid_override_ignored(self) -> None:
        c = _controller(targets=10, settings={"polling_interval": "0"})
        plan = await c.current_plan()
        assert plan.source == PlanSource.TIER
        assert plan.interval_secs == 30


# ── Fallback ────────────────────────────────────────────────────


class TestFallback:
    async def test_count_error_falls_back(self) -> None:
        c = _controller()
        c._netwatch.count = AsyncMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]
        plan = await c.current_plan()
        assert plan.source == PlanSource.FALLBACK
        assert plan.interval_secs == 120
        assert plan.batch_size == 10

    async def test_count_error_keeps_override_interval(self) -> None:
        c = _controller(settings={"polling_interval": "7"})
        c._netwatch.count = AsyncMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]
        plan = await c.current_plan()
        assert plan.source == PlanSource.OVERRIDE
        assert plan.interval_secs == 420
        assert plan.batch_size == 10
        assert plan.device_count is None

    async def test_settings_error_falls_back(self) -> None:
        c = _controller()
        c._settings.get_value = AsyncMock(side_effect=RuntimeError("db down"))  # type: ignore[method-assign]
        plan = await c.current_plan()
        assert plan.source == PlanSource.FALLBACK

    async def test_last_plan_recorded(self) -> None:
        c = _controller(targets=3)
        assert c.last_plan is None
        plan = await c.current_plan()
        assert c.last_plan == plan
