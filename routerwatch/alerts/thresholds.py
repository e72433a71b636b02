"""Runtime-tunable alert thresholds and switches.

Operators change these through the settings store while the process runs,
so they are read fresh on every check and never cached.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel

from routerwatch.core.config import ThresholdDefaults
from routerwatch.storage.base import SettingsStore

logger = structlog.stdlib.get_logger()

# Settings-store keys.
CPU_WARNING_KEY = "alertThresholdCpuWarning"
CPU_CRITICAL_KEY = "alertThresholdCpuCritical"
MEMORY_WARNING_KEY = "alertThresholdMemoryWarning"
MEMORY_CRITICAL_KEY = "alertThresholdMemoryCritical"
ALERTS_ENABLED_KEY = "alertsEnabled"
STATUS_CHANGE_KEY = "statusChangeAlerts"
HIGH_CPU_KEY = "highCpuAlerts"
HIGH_MEMORY_KEY = "highMemoryAlerts"


class AlertThresholds(BaseModel):
    """Snapshot of thresholds and switches for one check."""

    cpu_warning: float = 70.0
    cpu_critical: float = 90.0
    memory_warning: float = 80.0
    memory_critical: float = 95.0
    alerts_enabled: bool = True
    status_change_alerts: bool = True
    high_cpu_alerts: bool = True
    high_memory_alerts: bool = True


def _as_number(key: str, value: Any, default: float) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        logger.warning("threshold_setting_invalid", key=key, value=value)
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("threshold_setting_invalid", key=key, value=value)
        return default


def _as_flag(value: Any) -> bool:
    # Only an explicit false switches a feature off.
    if isinstance(value, str):
        return value.strip().lower() != "false"
    return value is not False


async def load_thresholds(
    store: SettingsStore,
    defaults: ThresholdDefaults | None = None,
) -> AlertThresholds:
    """Read every threshold and switch from *store*, falling back to *defaults*."""
    d = defaults or ThresholdDefaults()
    return AlertThresholds(
        cpu_warning=_as_number(CPU_WARNING_KEY, await store.get_value(CPU_WARNING_KEY), d.cpu_warning),
        cpu_critical=_as_number(CPU_CRITICAL_KEY, await store.get_value(CPU_CRITICAL_KEY), d.cpu_critical),
        memory_warning=_as_number(
            MEMORY_WARNING_KEY, await store.get_value(MEMORY_WARNING_KEY), d.memory_warning
        ),
        memory_critical=_as_number(
            MEMORY_CRITICAL_KEY, await store.get_value(MEMORY_CRITICAL_KEY), d.memory_critical
        ),
        alerts_enabled=_as_flag(await store.get_value(ALERTS_ENABLED_KEY)),
        status_change_alerts=_as_flag(await store.get_value(STATUS_CHANGE_KEY)),
        high_cpu_alerts=_as_flag(await store.get_value(HIGH_CPU_KEY)),
        high_memory_alerts=_as_flag(await store.get_value(HIGH_MEMORY_KEY)),
    )
