"""Message types for external notification delivery."""

from __future__ import annotations

import time
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field

from routerwatch.core.types import AlertSeverity


class Severity(IntEnum):
    """Notification severity, ordered so comparisons work naturally."""

    INFO = 1
    WARNING = 2
    CRITICAL = 3

    @classmethod
    def from_alert(cls, severity: AlertSeverity) -> Severity:
        return _FROM_ALERT[severity]


_FROM_ALERT: dict[AlertSeverity, Severity] = {
    AlertSeverity.INFO: Severity.INFO,
    AlertSeverity.WARNING: Severity.WARNING,
    AlertSeverity.CRITICAL: Severity.CRITICAL,
}


class NotificationMessage(BaseModel):
    """Normalised message ready for dispatch to channels."""

    severity: Severity
    title: str
    body: str = ""
    fields: dict[str, str] = Field(default_factory=dict)
    source_event_type: str = ""
    timestamp: float = Field(default_factory=time.time)
    raw: dict[str, Any] = Field(default_factory=dict)
