"""Tests for CycleToken — single flight, stuck-cycle watchdog, stale release."""

from __future__ import annotations

from routerwatch.polling.cycle import CycleToken


class FakeMonotonic:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestCycleToken:
    def test_begin_and_end(self) -> None:
        token = CycleToken(600, clock=FakeMonotonic())
        assert token.try_begin() is True
        assert token.in_progress
        token.end()
        assert not token.in_progress
        assert token.try_begin() is True

    def test_overlap_rejected_while_young(self) -> None:
        clock = FakeMonotonic()
        token = CycleToken(600, clock=clock)
        assert token.try_begin() is True
        clock.now += 599
        assert token.try_begin() is False
        assert token.elapsed() == 599

    def test_exactly_at_timeout_still_held(self) -> None:
        clock = FakeMonotonic()
        token = CycleToken(600, clock=clock)
        token.try_begin()
        clock.now += 600
        assert token.try_begin() is False

    def test_watchdog_clears_stuck_cycle(self) -> None:
        clock = FakeMonotonic()
        token = CycleToken(600, clock=clock)
        token.try_begin()
        clock.now += 601
        assert token.try_begin() is True
        assert token.started_at == clock.now
        assert token.elapsed() == 0

    def test_stale_end_ignored(self) -> None:
        clock = FakeMonotonic()
        token = CycleToken(600, clock=clock)
        token.try_begin()
        stale = token.generation
        clock.now += 601
        token.try_begin()
        token.end(stale)
        assert token.in_progress
        token.end(token.generation)
        assert not token.in_progress

    def test_elapsed_none_when_idle(self) -> None:
        assert CycleToken().elapsed() is None
