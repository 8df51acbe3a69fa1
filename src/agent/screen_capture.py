"""
agent.screen_capture - Screenshot step.

The capture itself belongs to the presentation layer; this agent only calls
the ScreenCapturePort it was given.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from agent.base import BaseAgent
from domain.models import ChainContext, ResponseEnvelope
from domain.ports import ScreenCapturePort

logger = logging.getLogger(__name__)


class ScreenCaptureAgent(BaseAgent):
    name = "screen_capture"
    description = "Captures the current screen and any text visible on it."
    actions = ("capture", "execute")

    def __init__(self, provider: Optional[ScreenCapturePort] = None):
        self._provider = provider

    async def execute(
        self, action: str, params: dict[str, Any], ctx: ChainContext,
    ) -> ResponseEnvelope:
        if self._provider is None:
            return ResponseEnvelope.failure("No screen capture provider is available")
        try:
            shot = await self._provider.capture()
        except Exception as e:
            logger.exception("Screen capture failed")
            return ResponseEnvelope.failure(f"Screen capture failed: {e}")

        if not shot or not shot.get("image_base64"):
            return ResponseEnvelope.failure("Screen capture returned no image")
        logger.info("Captured screen (%d bytes base64)", len(shot["image_base64"]))
        return ResponseEnvelope.of_data(shot, text="Screenshot taken.")
