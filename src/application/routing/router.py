"""
application.routing.router - Escalating intent router.

Tiers, cheapest first:
    1. StructuralClassifier  (rules over tokens + extracted entities)
    2. IntentClassifierPort  (model, strict JSON)
    3. keyword_decision      (fixed keyword table)
    4. fallback decision     (question)

The chosen decision then passes through the ConversationalOverride. The
router is an explicit instance built once with immutable thresholds;
route() never raises.

Also home to the payload builders that turn a RoutingDecision into the
IntentClassificationPayload persisted for every routed utterance.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

from application.routing.entities import EntityExtractor
from application.routing.keywords import keyword_decision
from application.routing.override import ConversationalOverride
from application.routing.structural import StructuralClassifier
from domain.exceptions import ClassificationError
from domain.models import (
    Intent,
    IntentClassificationPayload,
    IntentScore,
    RoutingDecision,
    RoutingMethod,
    Utterance,
)
from domain.ports import IntentClassifierPort
from domain.thresholds import RoutingThresholds

logger = logging.getLogger(__name__)


class IntentRouter:
    """Decide what the user wants from a single utterance."""

    def __init__(
        self,
        thresholds: RoutingThresholds,
        structural: StructuralClassifier,
        extractor: EntityExtractor,
        model_classifier: Optional[IntentClassifierPort] = None,
        override: Optional[ConversationalOverride] = None,
    ):
        self._t = thresholds
        self._structural = structural
        self._extractor = extractor
        self._model = model_classifier
        self._override = override

    async def route(
        self, utterance: Utterance, storage_confidence: float = 0.0,
    ) -> RoutingDecision:
        """Route one utterance. Always returns a decision."""
        try:
            decision = await self._classify(utterance.text, storage_confidence)
            if self._override is not None:
                decision = await self._override.apply(decision, utterance.text)
        except Exception:
            logger.exception("Intent routing failed; using fallback decision")
            return fallback_decision(self._t.fallback_confidence)

        logger.info(
            "Routed '%s' -> %s (%.2f, %s)",
            utterance.text[:60], decision.primary_intent.value,
            decision.confidence, decision.method.value,
        )
        return decision

    async def _classify(self, text: str, storage_confidence: float) -> RoutingDecision:
        entities = self._extractor.extract(text)

        decision = self._structural.classify(text, entities, storage_confidence)
        if decision is not None:
            return decision

        if self._model is not None:
            try:
                decision = await asyncio.wait_for(
                    self._model.classify(text),
                    timeout=self._t.classifier_timeout_ms / 1000.0,
                )
                merged = {**entities, **decision.entities}
                return RoutingDecision(
                    primary_intent=decision.primary_intent,
                    confidence=decision.confidence,
                    reasoning=decision.reasoning,
                    entities=merged,
                    needs_semantic_search=decision.needs_semantic_search,
                    needs_orchestration=decision.needs_orchestration,
                    method=decision.method,
                )
            except asyncio.TimeoutError:
                logger.warning("Model classifier timed out; using keywords")
            except ClassificationError as e:
                logger.warning("Model classifier failed (%s); using keywords", e)

        keyword = keyword_decision(text, self._t.keyword_confidence)
        return RoutingDecision(
            primary_intent=keyword.primary_intent,
            confidence=keyword.confidence,
            reasoning=keyword.reasoning,
            entities=entities,
            needs_semantic_search=keyword.needs_semantic_search,
            needs_orchestration=keyword.needs_orchestration,
            method=keyword.method,
        )


def fallback_decision(confidence: float = 0.7) -> RoutingDecision:
    return RoutingDecision(
        primary_intent=Intent.QUESTION,
        confidence=confidence,
        reasoning="fallback",
        needs_semantic_search=True,
        needs_orchestration=True,
        method=RoutingMethod.FALLBACK,
    )


# ---------------------------------------------------------------------------
# Payload building
# ---------------------------------------------------------------------------

_CAPTURE_WORDS = re.compile(r"\b(screenshot|screen\s*shot|capture|screen)\b")
_SCREEN_QUESTION = re.compile(
    r"\b(on|in) (my|the|this) (screen|window|display)\b|\bwhat am i (looking at|seeing)\b"
)

_SUGGESTED_RESPONSES = {
    Intent.GREETING: "Hello! How can I help you?",
    Intent.MEMORY_STORE: "Got it, I'll remember that.",
    Intent.MEMORY_RETRIEVE: "Let me check what you've told me.",
    Intent.MEMORY_UPDATE: "Okay, I'll update that.",
    Intent.MEMORY_DELETE: "Okay, I'll forget that.",
    Intent.QUESTION: "Let me think about that.",
    Intent.COMMAND: "On it.",
}


def wants_screen_capture(intent: Intent, text: str) -> bool:
    lowered = text.lower()
    if intent == Intent.COMMAND:
        return bool(_CAPTURE_WORDS.search(lowered))
    if intent == Intent.QUESTION:
        return bool(_SCREEN_QUESTION.search(lowered))
    return False


def build_payload(
    decision: RoutingDecision,
    text: str,
    session_id: Optional[str] = None,
) -> IntentClassificationPayload:
    """Turn a routing decision into the persisted classification payload."""
    intent = decision.primary_intent
    capture = wants_screen_capture(intent, text)
    suggested = "Taking a screenshot now." if capture and intent == Intent.COMMAND \
        else _SUGGESTED_RESPONSES[intent]

    return IntentClassificationPayload(
        primary_intent=intent,
        intents=(IntentScore(intent, decision.confidence, decision.reasoning),),
        entities=decision.entities,
        requires_memory_access=intent.is_memory or intent == Intent.QUESTION,
        requires_external_data=capture,
        capture_screen=capture,
        suggested_response=suggested,
        source_text=text,
        context_metadata={
            "method": decision.method.value,
            "needs_semantic_search": decision.needs_semantic_search,
            "needs_orchestration": decision.needs_orchestration,
            "session_id": session_id,
        },
    )


def fallback_payload(
    text: str, session_id: Optional[str] = None, confidence: float = 0.7,
) -> IntentClassificationPayload:
    """Fixed template used when routing is disabled or failed outright."""
    return build_payload(fallback_decision(confidence), text, session_id)
