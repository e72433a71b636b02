"""Human-readable elapsed-time strings."""

from __future__ import annotations


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def format_duration(seconds: float) -> str:
    """Render *seconds* using its two most significant units.

    >>> format_duration(3 * 3600 + 60)
    '3 hours 1 minute'
    >>> format_duration(86400)
    '1 day'
    """
    total = max(int(seconds), 0)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    if days:
        return _plural(days, "day") + (f" {_plural(hours, 'hour')}" if hours else "")
    if hours:
        return _plural(hours, "hour") + (f" {_plural(minutes, 'minute')}" if minutes else "")
    if minutes:
        return _plural(minutes, "minute")
    return _plural(secs, "second")
