"""Deadline wrapper for per-device refreshes."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from routerwatch.core.exceptions import PollTimeoutError

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], seconds: float, message: str) -> T:
    """Return *awaitable*'s result, or raise PollTimeoutError after *seconds*.

    The underlying work is cancelled on expiry so its connection and task
    are released instead of running on in the background.  A TimeoutError
    raised by the work itself (e.g. a client socket timeout) is not this
    deadline and propagates unchanged.
    """
    try:
        async with asyncio.timeout(seconds) as deadline:
            return await awaitable
    except TimeoutError as exc:
        if deadline.expired():
            raise PollTimeoutError(message, timeout_secs=seconds) from exc
        raise
