"""
application.services.background - Detached orchestration + notification.

The synchronous reply never waits for agents. schedule() starts a task that
runs the orchestrator and, if it produced something to say, pushes an
orchestration-complete NotificationEvent to every live surface. Failed
tasks are logged and dropped: no notification is sent for them.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from application.services.orchestrator import AgentOrchestrator
from domain.models import (
    Intent,
    IntentClassificationPayload,
    NotificationEvent,
    ResponseEnvelope,
    ResponseKind,
    looks_like_serialized_structure,
)
from domain.ports import NotificationChannel

logger = logging.getLogger(__name__)


def time_of_day_greeting(now: datetime) -> str:
    if now.hour < 12:
        part = "Good morning"
    elif now.hour < 18:
        part = "Good afternoon"
    else:
        part = "Good evening"
    return f"{part}! How can I help you?"


def normalize_response(value: Any) -> Optional[str]:
    """Reduce an agent result to display text, or None if there is none."""
    if value is None:
        return None

    if isinstance(value, ResponseEnvelope):
        if value.kind in (ResponseKind.EMPTY, ResponseKind.ERROR):
            return None
        if value.text:
            return normalize_response(value.text)
        if value.kind == ResponseKind.DATA and isinstance(value.data, Mapping):
            return normalize_response(value.data)
        return None

    if isinstance(value, Mapping):
        if "response" in value:
            return normalize_response(value["response"])
        data = value.get("data")
        if isinstance(data, Mapping) and "response" in data:
            return normalize_response(data["response"])
        for key in ("text", "message"):
            if isinstance(value.get(key), str):
                return normalize_response(value[key])
        return None

    if isinstance(value, str):
        text = value.strip()
        if looks_like_serialized_structure(text):
            parsed = json.loads(text)
            return normalize_response(parsed) if isinstance(parsed, dict) else None
        if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
            text = text[1:-1].strip()
        return text or None

    return None


class BackgroundOrchestrator:
    """BackgroundSchedulerPort implementation on the running event loop."""

    def __init__(
        self,
        orchestrator: AgentOrchestrator,
        channel: NotificationChannel,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._orchestrator = orchestrator
        self._channel = channel
        self._clock = clock
        # Strong references so tasks are not garbage collected mid-flight
        self._tasks: set[asyncio.Task] = set()

    def schedule(
        self, payload: IntentClassificationPayload, session_id: Optional[str] = None,
    ) -> None:
        task = asyncio.create_task(self._process(payload, session_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Scheduled background orchestration (%d in flight)", len(self._tasks))

    async def drain(self) -> None:
        """Wait for every in-flight task, including ones scheduled meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _process(
        self, payload: IntentClassificationPayload, session_id: Optional[str],
    ) -> None:
        method = str(payload.context_metadata.get("method", "unknown"))
        try:
            if payload.primary_intent == Intent.GREETING:
                text = time_of_day_greeting(self._clock())
                handled_by = "greeting"
            else:
                outcome = await self._orchestrator.ask(payload, session_id)
                if not outcome.success:
                    logger.info("Background orchestration failed: %s", outcome.error)
                    return
                text = normalize_response(outcome.response)
                handled_by = ",".join(outcome.agents_used) or payload.primary_intent.value

            if not text:
                logger.debug("Background orchestration produced nothing to say")
                return

            delivered = await self._channel.broadcast(
                NotificationEvent(response=text, handled_by=handled_by, method=method),
            )
            logger.info("Notification delivered to %d surface(s)", delivered)
        except Exception:
            logger.exception("Background orchestration task crashed")
