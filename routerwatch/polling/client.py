"""Collaborator that talks to the routers themselves."""

from __future__ import annotations

from typing import Protocol

from routerwatch.core.types import RefreshResult


class DeviceClient(Protocol):
    """Refreshes one router over its management API.

    Implementations persist the new router state, sync netwatch targets when
    *include_dependents* is set, and report what changed.  They raise on any
    failure; the poller treats every exception as a failed refresh.
    """

    async def refresh(
        self,
        router_id: str,
        include_dependents: bool = True,
        full_sync: bool = True,
    ) -> RefreshResult: ...
