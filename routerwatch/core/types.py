"""Domain types for router polling, alerting, and session tracking."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current time; the default clock everywhere."""
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


# ── Routers ──────────────────────────────────────────────────────


class RouterStatus(StrEnum):
    """Reachability of a polled router."""

    ONLINE = "online"
    OFFLINE = "offline"
    MAINTENANCE = "maintenance"
    UNKNOWN = "unknown"


class RouterMetrics(BaseModel):
    """Latest resource snapshot taken during a refresh."""

    cpu_load: float | None = None
    total_memory: int | None = None
    used_memory: int | None = None
    total_disk: int | None = None
    used_disk: int | None = None
    uptime_secs: int | None = None

    @property
    def memory_percent(self) -> int | None:
        if not self.total_memory or not self.used_memory:
            return None
        return round(self.used_memory / self.total_memory * 100)


class Router(BaseModel):
    """Polling state of one managed router."""

    id: str = Field(default_factory=new_id)
    name: str
    host: str = ""
    status: RouterStatus = RouterStatus.UNKNOWN
    last_seen: datetime | None = None
    metrics: RouterMetrics | None = None


# ── Netwatch ─────────────────────────────────────────────────────


class NetwatchStatus(StrEnum):
    """Reachability of a host watched through its parent router."""

    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"


class NetwatchTarget(BaseModel):
    """A dependent host monitored by a router's netwatch tool."""

    id: str = Field(default_factory=new_id)
    router_id: str
    host: str
    name: str = ""
    status: NetwatchStatus = NetwatchStatus.UNKNOWN
    last_up: datetime | None = None
    last_down: datetime | None = None


class NetwatchTransition(BaseModel):
    """A status flip observed for a netwatch host during one refresh."""

    host: str
    name: str = ""
    previous: NetwatchStatus
    current: NetwatchStatus

    @property
    def is_flip(self) -> bool:
        """True for a real up↔down change (unknown on either side is ignored)."""
        known = (NetwatchStatus.UP, NetwatchStatus.DOWN)
        return (
            self.previous in known
            and self.current in known
            and self.previous != self.current
        )


# ── Alerts ───────────────────────────────────────────────────────


class AlertType(StrEnum):
    """Condition categories an alert can describe."""

    STATUS_CHANGE = "status_change"
    HIGH_CPU = "high_cpu"
    HIGH_MEMORY = "high_memory"
    HIGH_DISK = "high_disk"
    INTERFACE_DOWN = "interface_down"
    NETWATCH_DOWN = "netwatch_down"
    THRESHOLD = "threshold"
    REBOOT = "reboot"
    PPPOE_CONNECT = "pppoe_connect"
    PPPOE_DISCONNECT = "pppoe_disconnect"


# Types the escalation scan walks up the ladder.
ESCALATABLE_TYPES: frozenset[AlertType] = frozenset(
    {AlertType.STATUS_CHANGE, AlertType.NETWATCH_DOWN}
)


class AlertSeverity(StrEnum):
    """Alert severity as stored."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class Alert(BaseModel):
    """One instance of a monitored condition."""

    id: str = Field(default_factory=new_id)
    router_id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    acknowledged: bool = False
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    resolved: bool = False
    resolved_at: datetime | None = None
    escalation_level: int = 0
    last_escalated_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)


class NewAlert(BaseModel):
    """Insert payload for an alert."""

    router_id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str


class SeverityCounts(BaseModel):
    """Open (unacknowledged + unresolved) alerts per severity."""

    info: int = 0
    warning: int = 0
    critical: int = 0


class UserRole(StrEnum):
    ADMIN = "admin"
    OPERATOR = "operator"
    USER = "user"


class Viewer(BaseModel):
    """The caller on whose behalf alerts are queried or mutated."""

    user_id: str
    role: UserRole = UserRole.USER


# ── PPPoE sessions ───────────────────────────────────────────────


class ObservedSession(BaseModel):
    """A session as reported by the router during one refresh."""

    name: str
    session_id: str | None = None
    caller_id: str | None = None
    address: str | None = None
    service: str | None = None
    uptime: str | None = None


class TrackedSession(BaseModel):
    """A persisted session record owned by the session tracker."""

    id: str = Field(default_factory=new_id)
    router_id: str
    name: str
    session_id: str | None = None
    caller_id: str | None = None
    address: str | None = None
    service: str | None = None
    uptime: str | None = None
    connected_at: datetime = Field(default_factory=utcnow)
    last_seen: datetime = Field(default_factory=utcnow)


class SessionChanges(BaseModel):
    """Connect/disconnect events derived from one tracking pass."""

    connected: list[str] = Field(default_factory=list)
    disconnected: list[str] = Field(default_factory=list)
    refreshed: list[str] = Field(default_factory=list)


# ── Polling ──────────────────────────────────────────────────────


class RefreshResult(BaseModel):
    """What the device client hands back after a successful refresh."""

    router: Router
    previous_status: RouterStatus = RouterStatus.UNKNOWN
    netwatch: list[NetwatchTransition] = Field(default_factory=list)
    # None means sessions were not fetched; [] means the router reported none.
    sessions: list[ObservedSession] | None = None


class PlanSource(StrEnum):
    TIER = "tier"
    OVERRIDE = "override"
    FALLBACK = "fallback"


class PollingPlan(BaseModel):
    """Cadence and concurrency for the next poll cycle."""

    interval_secs: float
    batch_size: int
    full_sync: bool = True
    label: str = ""
    source: PlanSource = PlanSource.TIER
    device_count: int | None = None

    @property
    def interval_ms(self) -> int:
        return int(self.interval_secs * 1000)


class PollOutcome(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


class DevicePollResult(BaseModel):
    """Outcome of refreshing a single router within a cycle."""

    router_id: str
    outcome: PollOutcome
    error: str = ""
    duration_secs: float = 0.0


class CycleSummary(BaseModel):
    """Aggregate of one completed poll cycle."""

    started_at: datetime
    duration_secs: float = 0.0
    batch_size: int = 0
    batches: int = 0
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    timed_out: int = 0
    results: list[DevicePollResult] = Field(default_factory=list)
