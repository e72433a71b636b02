"""Exception hierarchy for the polling and alerting core."""

from __future__ import annotations


class RouterwatchError(Exception):
    """Base exception for all routerwatch errors."""


class PollTimeoutError(RouterwatchError):
    """A remote operation exceeded its deadline."""

    def __init__(self, message: str, timeout_secs: float | None = None) -> None:
        super().__init__(message)
        self.timeout_secs = timeout_secs


class DeviceRefreshError(RouterwatchError):
    """A router refresh failed for a reason other than a timeout."""

