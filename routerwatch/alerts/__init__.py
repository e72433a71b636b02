"""Alert lifecycle — creation, dedup, thresholds, escalation."""

from routerwatch.alerts.engine import (
    NEW_ALERT_EVENT,
    AlertBroadcaster,
    AlertEngine,
    AlertNotifier,
    mentions_host,
    netwatch_host,
)
from routerwatch.alerts.escalation import (
    EscalationDecision,
    EscalationEngine,
    EscalationReport,
)
from routerwatch.alerts.thresholds import AlertThresholds, load_thresholds

__all__ = [
    "NEW_ALERT_EVENT",
    "AlertBroadcaster",
    "AlertEngine",
    "AlertNotifier",
    "AlertThresholds",
    "EscalationDecision",
    "EscalationEngine",
    "EscalationReport",
    "load_thresholds",
    "mentions_host",
    "netwatch_host",
]
