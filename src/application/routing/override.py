"""
application.routing.override - Conversational override.

A memory_store or command decision is sometimes really a question about the
conversation ("what was the last thing I asked you to remember?"). A narrow
binary classifier gets one chance to turn such decisions into
memory_retrieve. Any failure of that classifier keeps the original decision.
"""

from __future__ import annotations

import asyncio
import logging

from domain.exceptions import ClassificationError
from domain.models import Intent, RoutingDecision, RoutingMethod
from domain.ports import ConversationalClassifierPort

logger = logging.getLogger(__name__)

_TRIGGERS = {Intent.MEMORY_STORE, Intent.COMMAND}


class ConversationalOverride:

    def __init__(self, classifier: ConversationalClassifierPort, timeout_ms: int = 5_000):
        self._classifier = classifier
        self._timeout = timeout_ms / 1000.0

    async def apply(self, decision: RoutingDecision, text: str) -> RoutingDecision:
        """Return the decision unchanged or its memory_retrieve replacement."""
        if decision.primary_intent not in _TRIGGERS:
            return decision

        try:
            is_conversational, confidence = await asyncio.wait_for(
                self._classifier.is_conversational(text), timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Conversational override timed out after %.1fs", self._timeout)
            return decision
        except ClassificationError as e:
            logger.warning("Conversational override skipped: %s", e)
            return decision

        if not is_conversational:
            return decision

        logger.info(
            "Override: %s -> memory_retrieve (%.2f)",
            decision.primary_intent.value, confidence,
        )
        return RoutingDecision(
            primary_intent=Intent.MEMORY_RETRIEVE,
            confidence=confidence,
            reasoning="conversational query override",
            entities=decision.entities,
            needs_semantic_search=True,
            needs_orchestration=False,
            method=RoutingMethod.OVERRIDE,
        )
