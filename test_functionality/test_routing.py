"""
Intent routing tests.

Covers:
- EntityExtractor rule sets
- StructuralClassifier scoring, tie-break and abstention
- IntentRouter escalation: structural -> model -> keywords -> fallback
- ConversationalOverride (including timeout)
- Model-backed classifiers' JSON handling
- Classification payload building
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from conftest import FakeConversationalClassifier, ScriptedInference
from application.routing.entities import EntityExtractor
from application.routing.keywords import keyword_decision
from application.routing.override import ConversationalOverride
from application.routing.router import (
    IntentRouter,
    build_payload,
    fallback_decision,
    fallback_payload,
)
from application.routing.structural import StructuralClassifier, extract_features
from domain.exceptions import ClassificationError, InferenceUnavailableError
from domain.models import Intent, RoutingDecision, RoutingMethod, Utterance
from infrastructure.llm.intent_classifier import (
    ConversationalQueryClassifier,
    ModelIntentClassifier,
)


def _router(thresholds, model=None, override=None):
    return IntentRouter(
        thresholds=thresholds,
        structural=StructuralClassifier(thresholds),
        extractor=EntityExtractor(),
        model_classifier=model,
        override=override,
    )


# =============================================================================
# Entities
# =============================================================================

class TestEntityExtractor:

    def test_appointment_entities(self):
        entities = EntityExtractor().extract("I have a dentist appointment tomorrow at 3pm")
        assert entities["datetime"] == ["tomorrow", "3pm"]
        assert "dentist appointment" in entities["event"]
        assert "dentist" in entities["person"]
        assert "location" not in entities

    def test_people_places_contacts(self):
        text = "Meet Dr. Smith at the office tomorrow at 10:30am, email bob@example.com"
        entities = EntityExtractor().extract(text)
        assert "Dr. Smith" in entities["person"]
        assert "office" in entities["location"]
        assert "bob@example.com" in entities["contact"]
        assert "tomorrow" in entities["datetime"]
        assert "10:30am" in entities["datetime"]

    def test_sentence_initial_capitals_are_not_names(self):
        assert EntityExtractor().people("Remember Tuesday Morning plans") == []

    def test_capability_words(self):
        assert EntityExtractor().capabilities("Take a Screenshot please") == ["screenshot"]

    def test_nothing_found_is_empty(self):
        assert EntityExtractor().extract("ok") == {}


# =============================================================================
# Structural classifier
# =============================================================================

class TestStructuralClassifier:

    def classify(self, thresholds, text):
        return StructuralClassifier(thresholds).classify(text, EntityExtractor().extract(text))

    def test_appointment_is_memory_store(self, routing_thresholds):
        decision = self.classify(routing_thresholds, "I have a dentist appointment tomorrow at 3pm")
        assert decision.primary_intent == Intent.MEMORY_STORE
        assert decision.needs_orchestration
        assert not decision.needs_semantic_search
        assert decision.method == RoutingMethod.STRUCTURAL

    def test_recall_question_is_memory_retrieve(self, routing_thresholds):
        decision = self.classify(routing_thresholds, "What did I say about the dentist?")
        assert decision.primary_intent == Intent.MEMORY_RETRIEVE
        assert decision.needs_semantic_search
        assert not decision.needs_orchestration

    def test_screenshot_is_command(self, routing_thresholds):
        decision = self.classify(routing_thresholds, "Take a screenshot")
        assert decision.primary_intent == Intent.COMMAND
        assert decision.confidence == pytest.approx(0.9)
        assert decision.needs_orchestration

    def test_short_greeting(self, routing_thresholds):
        decision = self.classify(routing_thresholds, "hello")
        assert decision.primary_intent == Intent.GREETING
        assert not decision.needs_orchestration

    def test_negated_request_abstains(self, routing_thresholds):
        assert extract_features("Don't save this").negated
        assert self.classify(routing_thresholds, "Don't save this") is None

    def test_near_tie_goes_to_memory_store(self, routing_thresholds):
        decision = self.classify(routing_thresholds, "Remind me I have a meeting tomorrow")
        assert decision.primary_intent == Intent.MEMORY_STORE
        assert decision.method == RoutingMethod.STRUCTURAL_TIEBREAK
        assert decision.needs_orchestration

    def test_reasoning_lists_scores(self, routing_thresholds):
        decision = self.classify(routing_thresholds, "hello")
        assert decision.reasoning.startswith("scores=greeting:0.85")
        assert "negated=false" in decision.reasoning

    def test_empty_text_abstains(self, routing_thresholds):
        assert self.classify(routing_thresholds, "   ") is None

    def test_storage_boost_needs_positive_check(self, routing_thresholds):
        text = "The weather looks nice outside"
        classifier = StructuralClassifier(routing_thresholds)
        below = routing_thresholds.storage_intent_threshold - 0.03

        assert classifier.classify(text, {}, below) is None
        decision = classifier.classify(text, {}, 0.8)
        assert decision.primary_intent == Intent.MEMORY_STORE
        assert decision.confidence == pytest.approx(0.94)


# =============================================================================
# Router escalation
# =============================================================================

class TestIntentRouter:

    @pytest.mark.asyncio
    async def test_structural_answer_skips_model(self, routing_thresholds):
        model = AsyncMock()
        decision = await _router(routing_thresholds, model=model).route(Utterance("hello"))
        assert decision.primary_intent == Intent.GREETING
        model.classify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_model_used_when_structural_abstains(self, routing_thresholds):
        model = AsyncMock()
        model.classify.return_value = RoutingDecision(
            primary_intent=Intent.MEMORY_DELETE,
            confidence=0.8,
            entities={"event": ["meeting"]},
            needs_orchestration=True,
            method=RoutingMethod.MODEL,
        )
        decision = await _router(routing_thresholds, model=model).route(Utterance("Don't save this"))
        assert decision.primary_intent == Intent.MEMORY_DELETE
        assert decision.method == RoutingMethod.MODEL
        assert decision.entities == {"event": ["meeting"]}

    @pytest.mark.asyncio
    async def test_model_failure_falls_to_keywords(self, routing_thresholds):
        model = AsyncMock()
        model.classify.side_effect = ClassificationError("garbage")
        decision = await _router(routing_thresholds, model=model).route(Utterance("Don't save this"))
        assert decision.method == RoutingMethod.KEYWORD
        assert decision.primary_intent == Intent.QUESTION
        assert decision.confidence == pytest.approx(routing_thresholds.keyword_confidence)

    @pytest.mark.asyncio
    async def test_model_timeout_falls_to_keywords(self, routing_thresholds):
        async def slow(text):
            await asyncio.sleep(5)

        model = Mock()
        model.classify = slow
        decision = await _router(routing_thresholds, model=model).route(Utterance("Don't save this"))
        assert decision.method == RoutingMethod.KEYWORD

    @pytest.mark.asyncio
    async def test_unexpected_error_gives_fallback(self, routing_thresholds):
        structural = Mock()
        structural.classify.side_effect = RuntimeError("bug")
        router = IntentRouter(routing_thresholds, structural, EntityExtractor())

        decision = await router.route(Utterance("anything"))
        assert decision.primary_intent == Intent.QUESTION
        assert decision.method == RoutingMethod.FALLBACK
        assert decision.confidence == pytest.approx(0.7)
        assert decision.needs_semantic_search and decision.needs_orchestration

    @pytest.mark.asyncio
    async def test_override_turns_store_into_retrieve(self, routing_thresholds):
        override = ConversationalOverride(FakeConversationalClassifier(answer=True, confidence=0.88))
        decision = await _router(routing_thresholds, override=override).route(
            Utterance("I have a dentist appointment tomorrow at 3pm"),
        )
        assert decision.primary_intent == Intent.MEMORY_RETRIEVE
        assert decision.method == RoutingMethod.OVERRIDE
        assert decision.confidence == pytest.approx(0.88)
        assert decision.needs_semantic_search and not decision.needs_orchestration
        assert "datetime" in decision.entities

    def test_keyword_table(self):
        assert keyword_decision("take a screenshot", 0.6).primary_intent == Intent.COMMAND
        assert keyword_decision("what did we decide", 0.6).primary_intent == Intent.MEMORY_RETRIEVE
        assert keyword_decision("purple", 0.6).primary_intent == Intent.QUESTION

    @pytest.mark.parametrize("text", ["Don't save that", "Do not take a screenshot"])
    def test_negated_keyword_is_question(self, text):
        decision = keyword_decision(text, 0.6)
        assert decision.primary_intent == Intent.QUESTION
        assert decision.reasoning.startswith("negated keyword")


# =============================================================================
# Conversational override
# =============================================================================

class TestConversationalOverride:

    @pytest.mark.asyncio
    async def test_only_store_and_command_are_checked(self):
        classifier = FakeConversationalClassifier(answer=True)
        override = ConversationalOverride(classifier)
        decision = RoutingDecision(primary_intent=Intent.QUESTION, confidence=0.9)

        assert await override.apply(decision, "what is 2+2?") is decision
        assert classifier.calls == 0

    @pytest.mark.asyncio
    async def test_timeout_keeps_original(self):
        override = ConversationalOverride(
            FakeConversationalClassifier(answer=True, delay=1.0), timeout_ms=50,
        )
        decision = RoutingDecision(primary_intent=Intent.MEMORY_STORE, confidence=0.8)
        assert await override.apply(decision, "remember this") is decision

    @pytest.mark.asyncio
    async def test_no_keeps_original(self):
        override = ConversationalOverride(FakeConversationalClassifier(answer=False))
        decision = RoutingDecision(primary_intent=Intent.COMMAND, confidence=0.8)
        assert await override.apply(decision, "open my notes") is decision


# =============================================================================
# Model-backed classifiers
# =============================================================================

class TestModelClassifiers:

    @pytest.mark.asyncio
    async def test_model_intent_parses_json(self):
        inference = ScriptedInference([
            '{"primary_intent": "memory_update", "confidence": 0.81, '
            '"entities": {"datetime": "Friday", "event": ["meeting", ""]}, "reasoning": "moved"}'
        ])
        decision = await ModelIntentClassifier(inference).classify("the meeting moved to Friday")
        assert decision.primary_intent == Intent.MEMORY_UPDATE
        assert decision.entities == {"datetime": ["Friday"], "event": ["meeting"]}
        assert decision.method == RoutingMethod.MODEL
        assert "the meeting moved to Friday" in inference.prompts[0]

    @pytest.mark.asyncio
    async def test_model_intent_coerces_unknown(self):
        inference = ScriptedInference(['{"primary_intent": "dance", "confidence": 0.8}'])
        decision = await ModelIntentClassifier(inference).classify("wiggle")
        assert decision.primary_intent == Intent.QUESTION
        assert "coerced" in decision.reasoning

    @pytest.mark.asyncio
    async def test_model_intent_rejects_prose(self):
        inference = ScriptedInference(["I think it is a question."])
        with pytest.raises(ClassificationError):
            await ModelIntentClassifier(inference).classify("hmm")

    @pytest.mark.asyncio
    async def test_unavailable_model_is_classification_error(self):
        inference = ScriptedInference(error=InferenceUnavailableError("down"))
        with pytest.raises(ClassificationError):
            await ModelIntentClassifier(inference).classify("hmm")

    @pytest.mark.asyncio
    async def test_conversational_negation_short_circuits(self):
        inference = ScriptedInference(['{"is_conversational": true}'])
        answer = await ConversationalQueryClassifier(inference).is_conversational(
            "don't remember what I said",
        )
        assert answer == (False, 1.0)
        assert inference.prompts == []

    @pytest.mark.asyncio
    async def test_conversational_history_trap(self):
        inference = ScriptedInference(['{"is_conversational": true}'])
        answer = await ConversationalQueryClassifier(inference).is_conversational(
            "who was the first emperor of Rome",
        )
        assert answer == (False, 1.0)

    @pytest.mark.asyncio
    async def test_conversational_yes(self):
        inference = ScriptedInference(['{"is_conversational": "yes", "confidence": 0.7}'])
        answer = await ConversationalQueryClassifier(inference).is_conversational(
            "what was the last thing I asked you",
        )
        assert answer == (True, 0.7)


# =============================================================================
# Payload building
# =============================================================================

class TestPayload:

    def test_capture_command(self):
        decision = RoutingDecision(
            primary_intent=Intent.COMMAND, confidence=0.9, needs_orchestration=True,
        )
        payload = build_payload(decision, "Take a screenshot", "s1")
        assert payload.capture_screen and payload.requires_external_data
        assert payload.suggested_response == "Taking a screenshot now."
        assert payload.context_metadata["session_id"] == "s1"
        assert payload.confidence == pytest.approx(0.9)

    def test_screen_question_captures(self):
        decision = RoutingDecision(primary_intent=Intent.QUESTION, confidence=0.8)
        payload = build_payload(decision, "What is on my screen right now?")
        assert payload.capture_screen
        assert payload.requires_memory_access

    def test_greeting_needs_nothing(self):
        payload = build_payload(RoutingDecision(primary_intent=Intent.GREETING, confidence=0.85), "hi")
        assert not payload.requires_memory_access
        assert not payload.capture_screen
        assert payload.suggested_response == "Hello! How can I help you?"

    def test_fallback_template(self):
        payload = fallback_payload("???", "s9")
        assert payload.primary_intent == Intent.QUESTION
        assert payload.context_metadata["method"] == "fallback"
        assert payload.to_dict()["intents"][0]["confidence"] == pytest.approx(0.7)
        assert fallback_decision(0.5).confidence == pytest.approx(0.5)
