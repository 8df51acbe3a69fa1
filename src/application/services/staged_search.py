"""
application.services.staged_search - Answer from what is already known.

Three stages, each only tried if the previous one failed:

    1. current exchange   the conversation window is similar enough to the prompt
    2. session            memories stored in this session are relevant enough
    3. cross-session      memories from any session are relevant enough

Every failure mode (no context, low similarity, embedder down, inference
timeout, empty answer) is a stage failure, never an exception for the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from domain.entities import MemoryRecord
from domain.exceptions import EmbeddingError, InferenceError
from domain.models import GenerationOptions, SearchStage, StageResult, Utterance
from domain.ports import EmbedderPort, InferenceServicePort, MemoryStorePort
from domain.similarity import cosine_similarity, mean_of_top
from domain.thresholds import SearchThresholds

logger = logging.getLogger(__name__)

_TRUNCATED = "...[truncated]"


def build_staged_prompt(
    question: str,
    conversation: str = "",
    memories: str = "",
    section_chars: int = 1500,
) -> str:
    """Pick the template that matches which sections are present."""
    convo = _truncate(conversation, section_chars)
    mem = _truncate(memories, section_chars)

    if convo and mem:
        return (
            "Answer using our recent conversation and relevant history.\n\n"
            f"RECENT CONVERSATION:\n{convo}\n\n"
            f"RELEVANT HISTORY:\n{mem}\n\n"
            f"QUESTION: {question}\n\n"
            "Be concise (2-4 sentences)."
        )
    if convo:
        return (
            "Answer based on our recent conversation.\n\n"
            f"RECENT CONVERSATION:\n{convo}\n\n"
            f"QUESTION: {question}\n\n"
            "Be concise (2-4 sentences)."
        )
    return (
        "Use relevant history to answer.\n\n"
        f"RELEVANT HISTORY:\n{mem}\n\n"
        f"QUESTION: {question}\n\n"
        "Be concise (2-4 sentences)."
    )


def _truncate(text: str, limit: int) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + _TRUNCATED


def format_snippets(
    matches: list[tuple[MemoryRecord, float]], count: int = 3, chars: int = 220,
) -> str:
    lines = []
    for i, (record, similarity) in enumerate(matches[:count], start=1):
        body = record.source_text or record.extracted_text or ""
        suffix = "..." if len(body) > chars else ""
        lines.append(f"Memory {i} ({round(similarity * 100)}%): {body[:chars]}{suffix}")
    return "\n".join(lines)


class StagedSemanticSearch:
    """Try to answer an utterance from conversation and stored memories."""

    def __init__(
        self,
        inference: InferenceServicePort,
        embedder: EmbedderPort,
        store: MemoryStorePort,
        thresholds: SearchThresholds,
    ):
        self._inference = inference
        self._embedder = embedder
        self._store = store
        self._t = thresholds

    async def search(self, utterance: Utterance) -> Optional[StageResult]:
        """Return the first successful stage, or None when all fail."""
        query_vector = await self._embed(utterance.text)

        for stage in (self._current_exchange, self._session, self._cross_session):
            result = await stage(utterance, query_vector)
            logger.info(
                "Staged search %s: %s (%s)",
                result.stage.value, "hit" if result.success else "miss", result.detail,
            )
            if result.success:
                return result
        return None

    # -- stages ---------------------------------------------------------------

    async def _current_exchange(
        self, utterance: Utterance, query_vector: Optional[list[float]],
    ) -> StageResult:
        stage = SearchStage.CURRENT
        context = utterance.context.as_text()
        if len(context.strip()) < self._t.min_context_chars:
            return StageResult(stage, False, detail="not enough context")
        if query_vector is None:
            return StageResult(stage, False, detail="embedder unavailable")

        sample = context
        if len(context) > self._t.context_sample_limit:
            edge = self._t.context_sample_edge
            sample = f"{context[:edge]}\n...\n{context[-edge:]}"

        context_vector = await self._embed(sample)
        if context_vector is None:
            return StageResult(stage, False, detail="embedder unavailable")

        similarity = cosine_similarity(query_vector, context_vector)
        if similarity < self._t.current_min_similarity:
            return StageResult(stage, False, detail=f"similarity {similarity:.2f}")

        prompt = build_staged_prompt(
            utterance.text, conversation=context,
            section_chars=self._t.prompt_section_chars,
        )
        return await self._answer(
            stage, prompt, self._t.current_timeout_ms, self._t.current_max_tokens,
        )

    async def _session(
        self, utterance: Utterance, query_vector: Optional[list[float]],
    ) -> StageResult:
        stage = SearchStage.SESSION
        if not utterance.session_id:
            return StageResult(stage, False, detail="no session")
        return await self._memory_stage(
            stage, utterance, query_vector,
            session_id=utterance.session_id,
            min_similarity=self._t.session_min_similarity,
            top_sufficient=self._t.session_top_sufficient,
            avg_sufficient=self._t.session_avg_sufficient,
            timeout_ms=self._t.session_timeout_ms,
            max_tokens=self._t.session_max_tokens,
        )

    async def _cross_session(
        self, utterance: Utterance, query_vector: Optional[list[float]],
    ) -> StageResult:
        return await self._memory_stage(
            SearchStage.CROSS_SESSION, utterance, query_vector,
            session_id=None,
            min_similarity=self._t.cross_min_similarity,
            top_sufficient=self._t.cross_top_sufficient,
            avg_sufficient=self._t.cross_avg_sufficient,
            timeout_ms=self._t.cross_timeout_ms,
            max_tokens=self._t.cross_max_tokens,
        )

    async def _memory_stage(
        self,
        stage: SearchStage,
        utterance: Utterance,
        query_vector: Optional[list[float]],
        *,
        session_id: Optional[str],
        min_similarity: float,
        top_sufficient: float,
        avg_sufficient: float,
        timeout_ms: int,
        max_tokens: int,
    ) -> StageResult:
        if query_vector is None:
            return StageResult(stage, False, detail="embedder unavailable")
        try:
            matches = await asyncio.wait_for(
                self._store.search_similar(
                    query_vector,
                    limit=self._t.search_limit,
                    min_similarity=min_similarity,
                    session_id=session_id,
                ),
                timeout=timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError:
            return StageResult(stage, False, detail="store timeout")
        except Exception:
            logger.exception("Memory search failed during %s", stage.value)
            return StageResult(stage, False, detail="store error")

        if not matches:
            return StageResult(stage, False, detail="no matches")

        sims = [sim for _, sim in matches]
        top, avg3 = sims[0], mean_of_top(sims, 3)
        if top < top_sufficient and avg3 < avg_sufficient:
            return StageResult(stage, False, detail=f"top {top:.2f} avg3 {avg3:.2f}")

        snippets = format_snippets(matches, self._t.snippet_count, self._t.snippet_chars)
        prompt = build_staged_prompt(
            utterance.text,
            conversation=utterance.context.as_text(),
            memories=snippets,
            section_chars=self._t.prompt_section_chars,
        )
        return await self._answer(stage, prompt, timeout_ms, max_tokens)

    # -- helpers --------------------------------------------------------------

    async def _answer(
        self, stage: SearchStage, prompt: str, timeout_ms: int, max_tokens: int,
    ) -> StageResult:
        options = GenerationOptions(
            temperature=self._t.temperature, max_tokens=max_tokens, timeout_ms=timeout_ms,
        )
        try:
            text = await asyncio.wait_for(
                self._inference.generate(prompt, options), timeout=options.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return StageResult(stage, False, detail="inference timeout")
        except InferenceError as e:
            return StageResult(stage, False, detail=f"inference error: {e}")

        text = (text or "").strip()
        if not text:
            return StageResult(stage, False, detail="empty answer")
        return StageResult(stage, True, response=text, detail="answered")

    async def _embed(self, text: str) -> Optional[list[float]]:
        try:
            return await self._embedder.embed(text)
        except EmbeddingError as e:
            logger.warning("Embedding failed during staged search: %s", e)
            return None
