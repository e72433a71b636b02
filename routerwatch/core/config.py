"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, SecretStr, field_validator

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class PollingTier(BaseModel):
    """One step of the adaptive polling ladder."""

    max_devices: int | None = None  # None = unbounded
    interval_secs: float
    batch_size: int
    full_sync: bool = True
    label: str = ""


class PollingConfig(BaseModel):
    """Router poll cycle configuration."""

    default_interval_secs: float = 120.0
    default_batch_size: int = 10
    initial_delay_secs: float = 5.0
    device_timeout_secs: float = 60.0
    stuck_cycle_timeout_secs: float = 600.0
    interval_setting_key: str = "polling_interval"
    tiers: list[PollingTier] = [
        PollingTier(max_devices=50, interval_secs=30.0, batch_size=10, label="Full check"),
        PollingTier(max_devices=200, interval_secs=60.0, batch_size=5, label="Batching"),
        PollingTier(
            max_devices=500,
            interval_secs=120.0,
            batch_size=3,
            full_sync=False,
            label="Priority + Batching",
        ),
        PollingTier(
            max_devices=None,
            interval_secs=300.0,
            batch_size=2,
            full_sync=False,
            label="Sampling + Alert only",
        ),
    ]

    @field_validator("tiers")
    @classmethod
    def _tiers_ascending(cls, tiers: list[PollingTier]) -> list[PollingTier]:
        if not tiers:
            raise ValueError("at least one polling tier is required")
        if any(t.max_devices is None for t in tiers[:-1]):
            raise ValueError("only the last polling tier may be unbounded")
        limits = [
            float("inf") if t.max_devices is None else float(t.max_devices)
            for t in tiers
        ]
        if any(b <= a for a, b in zip(limits, limits[1:])):
            raise ValueError("polling tier thresholds must be strictly ascending")
        if any(t.batch_size < 1 for t in tiers):
            raise ValueError("polling tier batch_size must be >= 1")
        return tiers


class EscalationTier(BaseModel):
    """Escalation step — reached once an alert stays unresolved *after_secs*."""

    level: int
    after_secs: float
    label: str = ""


class EscalationConfig(BaseModel):
    """Escalation scan configuration."""

    enabled: bool = True
    scan_interval_secs: float = 300.0
    initial_delay_secs: float = 10.0
    cooldown_secs: float = 300.0
    tiers: list[EscalationTier] = [
        EscalationTier(level=1, after_secs=1 * 3600, label="1 hour"),
        EscalationTier(level=2, after_secs=3 * 3600, label="3 hours"),
        EscalationTier(level=3, after_secs=12 * 3600, label="12 hours"),
        EscalationTier(level=4, after_secs=24 * 3600, label="1 day"),
        EscalationTier(level=5, after_secs=3 * 24 * 3600, label="3 days"),
    ]

    @field_validator("tiers")
    @classmethod
    def _levels_sequential(cls, tiers: list[EscalationTier]) -> list[EscalationTier]:
        for idx, tier in enumerate(tiers):
            if tier.level != idx + 1:
                raise ValueError("escalation levels must run 1..N in order")
            if idx and tier.after_secs <= tiers[idx - 1].after_secs:
                raise ValueError("escalation thresholds must be strictly ascending")
        return tiers


class ThresholdDefaults(BaseModel):
    """Fallback thresholds used when the settings store has no value."""

    cpu_warning: float = 70.0
    cpu_critical: float = 90.0
    memory_warning: float = 80.0
    memory_critical: float = 95.0


class AlertsConfig(BaseModel):
    """Alert engine configuration."""

    cooldown_minutes: float = 30.0
    thresholds: ThresholdDefaults = ThresholdDefaults()


class TelegramConfig(BaseModel):
    """Telegram Bot API channel."""

    enabled: bool = False
    bot_token: SecretStr = SecretStr("")
    chat_id: str = ""
    thread_id: str = ""


class WhatsAppConfig(BaseModel):
    """WhatsApp HTTP gateway channel (go-whatsapp-web-multidevice compatible)."""

    enabled: bool = False
    base_url: str = ""
    to: str = ""
    api_key: SecretStr = SecretStr("")
    timeout_secs: float = 10.0


class NotificationsConfig(BaseModel):
    """External notification channels."""

    telegram: TelegramConfig = TelegramConfig()
    whatsapp: WhatsAppConfig = WhatsAppConfig()


class DashboardConfig(BaseModel):
    """HTTP control surface + server-sent events."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8080
    username: str = ""
    password: SecretStr = SecretStr("")
    heartbeat_secs: float = 30.0
    subscriber_queue_size: int = 100


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"
    service: str = "routerwatch"
    # Third-party loggers held at WARNING or above.
    quiet_loggers: list[str] = ["aiohttp.access", "aiohttp.server"]


class Settings(BaseModel):
    """Root settings container."""

    polling: PollingConfig = PollingConfig()
    escalation: EscalationConfig = EscalationConfig()
    alerts: AlertsConfig = AlertsConfig()
    notifications: NotificationsConfig = NotificationsConfig()
    dashboard: DashboardConfig = DashboardConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
