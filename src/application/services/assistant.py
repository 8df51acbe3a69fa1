"""
application.services.assistant - The synchronous request path.

    utterance
      -> storage pre-check          (statements to keep skip staged search)
      -> staged semantic search     (may answer immediately)
      -> intent routing + override
      -> classification payload     (persisted)
      -> immediate reply            (payload.suggested_response)
      -> background orchestration   (when the decision needs agents)

handle() never raises; any internal failure becomes success=False with the
standard apology text.
"""

from __future__ import annotations

import logging
from typing import Optional

from application.dto import FALLBACK_REPLY, AssistantResponse
from application.routing.router import IntentRouter, build_payload, fallback_decision, fallback_payload
from application.services.staged_search import StagedSemanticSearch
from application.services.storage_intent import StorageCheck, StorageIntentDetector
from domain.entities import ClassificationRecord
from domain.models import Intent, IntentClassificationPayload, Utterance
from domain.ports import BackgroundSchedulerPort, ClassificationRepository

logger = logging.getLogger(__name__)


class AssistantService:
    """Handles one utterance end to end (minus the detached agent work)."""

    def __init__(
        self,
        router: IntentRouter,
        storage_detector: StorageIntentDetector,
        staged_search: StagedSemanticSearch,
        scheduler: Optional[BackgroundSchedulerPort] = None,
        classifications: Optional[ClassificationRepository] = None,
        fallback_confidence: float = 0.7,
    ):
        self._router = router
        self._storage = storage_detector
        self._search = staged_search
        self._scheduler = scheduler
        self._classifications = classifications
        self._fallback_confidence = fallback_confidence

    async def handle(self, utterance: Utterance) -> AssistantResponse:
        if not utterance.text.strip():
            return AssistantResponse(success=False, data=FALLBACK_REPLY, error="Empty utterance")
        try:
            return await self._handle(utterance)
        except Exception as e:
            logger.exception("Assistant request failed")
            return AssistantResponse(success=False, data=FALLBACK_REPLY, error=str(e))

    async def _handle(self, utterance: Utterance) -> AssistantResponse:
        options = utterance.options
        storage = StorageCheck(False, 0.0, "skipped")
        if options.prefer_semantic_search or options.enable_intent_classification:
            storage = await self._storage.check(utterance.text)

        if options.prefer_semantic_search and not storage.is_storage:
            hit = await self._search.search(utterance)
            if hit is not None:
                return AssistantResponse(
                    success=True, data=hit.response, answered_by=hit.stage.value,
                )
        elif storage.is_storage:
            logger.info("Storage statement (%.2f); staged search skipped", storage.confidence)

        if options.enable_intent_classification:
            boost = storage.confidence if storage.is_storage else 0.0
            decision = await self._router.route(utterance, boost)
            payload = build_payload(decision, utterance.text, utterance.session_id)
        else:
            decision = fallback_decision(self._fallback_confidence)
            payload = fallback_payload(
                utterance.text, utterance.session_id, self._fallback_confidence,
            )

        await self._persist(payload, utterance.session_id)

        if options.use_agent_orchestration and self._scheduler is not None and (
            decision.needs_orchestration or decision.primary_intent == Intent.GREETING
        ):
            # Greetings get the time-of-day notification without any agent
            self._scheduler.schedule(payload, utterance.session_id)

        return AssistantResponse(
            success=True,
            data=payload.suggested_response,
            intent_classification_payload=payload,
            answered_by="router",
        )

    async def _persist(
        self, payload: IntentClassificationPayload, session_id: Optional[str],
    ) -> None:
        if self._classifications is None:
            return
        record = ClassificationRecord(
            session_id=session_id,
            primary_intent=payload.primary_intent.value,
            confidence=payload.confidence,
            source_text=payload.source_text,
            payload=payload.to_dict(),
        )
        try:
            await self._classifications.save(record)
        except Exception:
            logger.exception("Failed to persist classification")
