"""Router poll cycle — adaptive cadence, batching, single-flight cycles."""

from routerwatch.polling.client import DeviceClient
from routerwatch.polling.cycle import CycleToken
from routerwatch.polling.interval import AdaptiveIntervalController, parse_override_minutes
from routerwatch.polling.scheduler import PollScheduler, partition
from routerwatch.polling.timeout import with_timeout

__all__ = [
    "AdaptiveIntervalController",
    "CycleToken",
    "DeviceClient",
    "PollScheduler",
    "parse_override_minutes",
    "partition",
    "with_timeout",
]
