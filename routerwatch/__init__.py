"""routerwatch — adaptive router polling with alert dedup and escalation."""

__version__ = "0.1.0"
