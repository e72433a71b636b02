"""Core module — config, types, logging, exceptions."""

from routerwatch.core.config import Settings, get_settings, load_settings, reset_settings
from routerwatch.core.exceptions import (
    DeviceRefreshError,
    PollTimeoutError,
    RouterwatchError,
)
from routerwatch.core.logging import cycle_context, setup_logging
from routerwatch.core.types import (
    Alert,
    AlertSeverity,
    AlertType,
    CycleSummary,
    NetwatchStatus,
    NetwatchTarget,
    ObservedSession,
    PollingPlan,
    PollOutcome,
    RefreshResult,
    Router,
    RouterStatus,
    TrackedSession,
    Viewer,
)

__all__ = [
    "Alert",
    "AlertSeverity",
    "AlertType",
    "CycleSummary",
    "DeviceRefreshError",
    "NetwatchStatus",
    "NetwatchTarget",
    "ObservedSession",
    "PollOutcome",
    "PollTimeoutError",
    "PollingPlan",
    "RefreshResult",
    "Router",
    "RouterStatus",
    "RouterwatchError",
    "Settings",
    "TrackedSession",
    "Viewer",
    "cycle_context",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
