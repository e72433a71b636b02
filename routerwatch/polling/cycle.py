"""Single-flight token for poll cycles."""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

logger = structlog.stdlib.get_logger()


class CycleToken:
    """At most one poll cycle runs at a time.

    ``try_begin`` does the stuck-cycle check and the claim in one step with
    no await in between, so a manual trigger and the timer cannot both win.
    A holder older than ``stuck_after_secs`` is assumed wedged and replaced.

    Each claim gets a new generation.  A wedged cycle that finally finishes
    after being replaced calls ``end`` with its stale generation, which is
    ignored.
    """

    def __init__(
        self,
        stuck_after_secs: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._stuck_after = stuck_after_secs
        self._clock = clock
        self._started_at: float | None = None
        self._generation = 0

    @property
    def in_progress(self) -> bool:
        return self._started_at is not None

    @property
    def started_at(self) -> float | None:
        return self._started_at

    @property
    def generation(self) -> int:
        return self._generation

    def elapsed(self) -> float | None:
        if self._started_at is None:
            return None
        return self._clock() - self._started_at

    def try_begin(self) -> bool:
        now = self._clock()
        if self._started_at is not None:
            held = now - self._started_at
            if held <= self._stuck_after:
                return False
            logger.warning(
                "poll_cycle_stuck_cleared",
                held_secs=round(held, 1),
                generation=self._generation,
            )
        self._started_at = now
        self._generation += 1
        return True

    def end(self, generation: int | None = None) -> None:
        """Release the token; *generation* guards against stale holders."""
        if generation is not None and generation != self._generation:
            return
        self._started_at = None
