"""Persistence contracts and the in-memory backend."""

from routerwatch.storage.base import (
    AccessStore,
    AlertStore,
    NetwatchStore,
    RouterStore,
    SessionStore,
    SettingsStore,
)
from routerwatch.storage.memory import (
    MemoryAccessStore,
    MemoryAlertStore,
    MemoryNetwatchStore,
    MemoryRouterStore,
    MemorySessionStore,
    MemorySettingsStore,
    MemoryStorage,
)

__all__ = [
    "AccessStore",
    "AlertStore",
    "MemoryAccessStore",
    "MemoryAlertStore",
    "MemoryNetwatchStore",
    "MemoryRouterStore",
    "MemorySessionStore",
    "MemorySettingsStore",
    "MemoryStorage",
    "NetwatchStore",
    "RouterStore",
    "SessionStore",
    "SettingsStore",
]
