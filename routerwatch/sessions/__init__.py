"""PPPoE session presence tracking."""

from routerwatch.sessions.tracker import SessionTracker

__all__ = ["SessionTracker"]
