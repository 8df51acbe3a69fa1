"""
Staged semantic search and storage pre-check tests.

Covers:
- Stage order and short-circuit (current exchange, session, cross-session)
- Every failure mode is a miss, never an exception
- Prompt templates and truncation
- StorageIntentDetector semantic and rule paths
"""

import pytest

from conftest import BagOfWordsEmbedder, ScriptedInference
from application.services.staged_search import (
    StagedSemanticSearch,
    build_staged_prompt,
    format_snippets,
)
from application.services.storage_intent import STORAGE_EXAMPLES, StorageIntentDetector
from domain.entities import MemoryRecord
from domain.exceptions import InferenceTimeoutError
from domain.models import ConversationContext, SearchStage, Utterance

QUESTION = "When is the dentist appointment?"


async def _remember(store, embedder, text, session_id):
    await store.insert(MemoryRecord(
        source_text=text, session_id=session_id, embedding=await embedder.embed(text),
    ))


# =============================================================================
# Stages
# =============================================================================

class TestStagedSemanticSearch:

    @pytest.mark.asyncio
    async def test_current_exchange_answers_without_store(
        self, embedder, memory_store, search_thresholds,
    ):
        context = ConversationContext().append(
            "user", "I have a dentist appointment tomorrow at 3pm with Dr. Smith",
        ).append("assistant", "Got it, I'll remember the dentist appointment.")
        inference = ScriptedInference(["Tomorrow at 3pm."])
        search = StagedSemanticSearch(inference, embedder, memory_store, search_thresholds)

        result = await search.search(Utterance(QUESTION, session_id="s1", context=context))

        assert result.stage == SearchStage.CURRENT
        assert result.success and result.response == "Tomorrow at 3pm."
        assert memory_store.search_calls == 0
        assert "RECENT CONVERSATION" in inference.prompts[0]

    @pytest.mark.asyncio
    async def test_session_stage(self, embedder, memory_store, search_thresholds):
        await _remember(memory_store, embedder, "dentist appointment tomorrow at 3pm", "s1")
        inference = ScriptedInference(["It is tomorrow at 3pm."])
        search = StagedSemanticSearch(inference, embedder, memory_store, search_thresholds)

        result = await search.search(Utterance(QUESTION, session_id="s1"))

        assert result.stage == SearchStage.SESSION
        assert memory_store.search_calls == 1
        assert "Memory 1 (" in inference.prompts[0]
        assert "dentist appointment tomorrow at 3pm" in inference.prompts[0]

    @pytest.mark.asyncio
    async def test_cross_session_stage(self, embedder, memory_store, search_thresholds):
        await _remember(memory_store, embedder, "dentist appointment tomorrow at 3pm", "older")
        search = StagedSemanticSearch(
            ScriptedInference(["Tomorrow."]), embedder, memory_store, search_thresholds,
        )

        result = await search.search(Utterance(QUESTION, session_id="s1"))

        assert result.stage == SearchStage.CROSS_SESSION
        assert memory_store.search_calls == 2

    @pytest.mark.asyncio
    async def test_nothing_relevant_is_none(self, embedder, memory_store, search_thresholds):
        await _remember(memory_store, embedder, "buy oat milk", "s1")
        inference = ScriptedInference(["should not be asked"])
        search = StagedSemanticSearch(inference, embedder, memory_store, search_thresholds)

        assert await search.search(Utterance(QUESTION, session_id="s1")) is None
        assert inference.prompts == []

    @pytest.mark.asyncio
    async def test_inference_failure_is_a_miss(self, embedder, memory_store, search_thresholds):
        await _remember(memory_store, embedder, "dentist appointment tomorrow at 3pm", "s1")
        inference = ScriptedInference(error=InferenceTimeoutError("slow"))
        search = StagedSemanticSearch(inference, embedder, memory_store, search_thresholds)

        assert await search.search(Utterance(QUESTION, session_id="s1")) is None
        # session and cross-session both tried to answer
        assert len(inference.prompts) == 2

    @pytest.mark.asyncio
    async def test_empty_answer_is_a_miss(self, embedder, memory_store, search_thresholds):
        await _remember(memory_store, embedder, "dentist appointment tomorrow at 3pm", "s1")
        search = StagedSemanticSearch(
            ScriptedInference(["   "]), embedder, memory_store, search_thresholds,
        )
        assert await search.search(Utterance(QUESTION, session_id="s1")) is None

    @pytest.mark.asyncio
    async def test_embedder_down_is_none(self, memory_store, search_thresholds):
        inference = ScriptedInference(["x"])
        search = StagedSemanticSearch(
            inference, BagOfWordsEmbedder(fail=True), memory_store, search_thresholds,
        )
        assert await search.search(Utterance(QUESTION, session_id="s1")) is None
        assert inference.prompts == []
        assert memory_store.search_calls == 0


# =============================================================================
# Prompts
# =============================================================================

class TestPrompts:

    def test_history_only_template(self):
        prompt = build_staged_prompt("Q?", memories="Memory 1 (90%): x")
        assert "RELEVANT HISTORY" in prompt
        assert "RECENT CONVERSATION" not in prompt

    def test_both_sections(self):
        prompt = build_staged_prompt("Q?", conversation="user: hi", memories="Memory 1")
        assert "RECENT CONVERSATION" in prompt and "RELEVANT HISTORY" in prompt

    def test_sections_are_truncated(self):
        prompt = build_staged_prompt("Q?", conversation="x" * 50, section_chars=10)
        assert "x" * 10 + "...[truncated]" in prompt
        assert "x" * 11 not in prompt

    def test_snippets(self):
        records = [(MemoryRecord(source_text="a" * 300), 0.5), (MemoryRecord(source_text="b"), 0.4)]
        text = format_snippets(records, count=1, chars=220)
        assert text.startswith("Memory 1 (50%): ")
        assert text.endswith("...")
        assert "Memory 2" not in text


# =============================================================================
# Storage pre-check
# =============================================================================

class TestStorageIntent:

    @pytest.mark.asyncio
    async def test_storage_example_is_storage(self, embedder):
        check = await StorageIntentDetector(embedder).check(STORAGE_EXAMPLES[0])
        assert check.is_storage
        assert check.method == "semantic"
        assert check.confidence >= 0.7

    @pytest.mark.asyncio
    async def test_unrelated_question_is_not_storage(self, embedder):
        detector = StorageIntentDetector(embedder)
        assert not (await detector.check("Capital city of Peru?")).is_storage

    @pytest.mark.asyncio
    async def test_examples_embedded_once(self, embedder):
        detector = StorageIntentDetector(embedder)
        await detector.check("one")
        await detector.check("two")
        assert embedder.calls == len(STORAGE_EXAMPLES) + 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text,expected", [
        ("Remember to buy milk", True),
        ("I want to learn Spanish", True),
        ("Nice weather today", False),
    ])
    async def test_rules_when_embedder_fails(self, text, expected):
        check = await StorageIntentDetector(BagOfWordsEmbedder(fail=True)).check(text)
        assert check.method == "rules"
        assert check.is_storage is expected
        assert check.confidence == pytest.approx(0.6 if expected else 0.1)

    @pytest.mark.asyncio
    async def test_rules_without_embedder(self):
        check = await StorageIntentDetector(None).check("Note that I parked on level 3")
        assert check.is_storage and check.method == "rules"
