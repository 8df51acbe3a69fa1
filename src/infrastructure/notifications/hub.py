"""
infrastructure.notifications.hub - Fan-out of background results.

Implements NotificationChannel. Presentation surfaces (WebSocket connections,
the interactive CLI) register an async callback; every broadcast goes to all
of them. A surface whose callback raises is dropped, never retried.
"""

from __future__ import annotations

import logging
from typing import Any

from domain.models import NotificationEvent
from domain.ports import NotificationSurface

logger = logging.getLogger(__name__)


class NotificationHub:
    """One-way event channel to zero or more live surfaces."""

    def __init__(self):
        self._surfaces: dict[str, NotificationSurface] = {}

    def register(self, surface_id: str, surface: NotificationSurface) -> None:
        self._surfaces[surface_id] = surface
        logger.debug("Notification surface registered: %s", surface_id)

    def unregister(self, surface_id: str) -> None:
        if self._surfaces.pop(surface_id, None) is not None:
            logger.debug("Notification surface removed: %s", surface_id)

    @property
    def surface_count(self) -> int:
        return len(self._surfaces)

    async def broadcast(self, event: NotificationEvent) -> int:
        """Send event to every live surface; returns how many received it.

        With no surfaces this is a silent no-op.
        """
        if not self._surfaces:
            return 0

        message: dict[str, Any] = event.to_dict()
        delivered = 0
        for surface_id, surface in list(self._surfaces.items()):
            try:
                await surface(message)
                delivered += 1
            except Exception:
                logger.exception("Notification surface %s failed; removing", surface_id)
                self.unregister(surface_id)
        logger.info("Broadcast %s to %d surface(s)", event.type, delivered)
        return delivered
