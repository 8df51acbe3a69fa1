"""
infrastructure.llm.intent_classifier - Model-based classifiers.

Two classifiers share the same shape: a fixed prompt (LangChain
PromptTemplate), one bounded call through the InferenceServicePort, and
strict JSON parsing with JsonOutputParser. Anything that does not parse
raises ClassificationError; the router decides what happens next.

    ModelIntentClassifier           → IntentClassifierPort
    ConversationalQueryClassifier   → ConversationalClassifierPort
"""

from __future__ import annotations

import logging
import re
from typing import Any

from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import PromptTemplate

from domain.exceptions import ClassificationError, InferenceError
from domain.models import GenerationOptions, Intent, RoutingDecision, RoutingMethod
from domain.ports import InferenceServicePort

logger = logging.getLogger(__name__)

_INTENT_INSTRUCTIONS = """You classify messages sent to a desktop assistant.
Return ONLY a JSON object, no prose.

ALLOWED INTENTS (use exactly one as "primary_intent"):
- "memory_store": the user states a fact, plan, appointment or goal to keep
- "memory_retrieve": the user asks about something they told you before
- "memory_update": the user corrects or changes something stored earlier
- "memory_delete": the user asks you to forget or remove something
- "greeting": a greeting with no other request
- "question": a general question that needs an answer
- "command": an action to perform now (screenshot, open, search, schedule)

ENTITY TYPES (lists of strings, omit empty ones):
datetime, person, location, event, contact, capability

OUTPUT FORMAT:
{{"primary_intent": "<intent>", "confidence": <0..1>, "entities": {{"<type>": ["..."]}}, "reasoning": "<one short sentence>"}}

EXAMPLES:
Input: "I have a dentist appointment next Tuesday at 3pm"
Output: {{"primary_intent": "memory_store", "confidence": 0.92, "entities": {{"event": ["dentist appointment"], "datetime": ["next Tuesday", "3pm"]}}, "reasoning": "States an appointment to remember"}}

Input: "When is my dentist appointment?"
Output: {{"primary_intent": "memory_retrieve", "confidence": 0.9, "entities": {{"event": ["dentist appointment"]}}, "reasoning": "Asks about a stored appointment"}}

Input: "Actually the meeting moved to Friday"
Output: {{"primary_intent": "memory_update", "confidence": 0.8, "entities": {{"event": ["meeting"], "datetime": ["Friday"]}}, "reasoning": "Changes a stored fact"}}

Input: "Forget what I said about the gym"
Output: {{"primary_intent": "memory_delete", "confidence": 0.85, "entities": {{}}, "reasoning": "Asks to remove a memory"}}

Input: "Take a screenshot of this window"
Output: {{"primary_intent": "command", "confidence": 0.95, "entities": {{"capability": ["screenshot"]}}, "reasoning": "Requests an action"}}

Input: "What is the capital of Peru?"
Output: {{"primary_intent": "question", "confidence": 0.9, "entities": {{"location": ["Peru"]}}, "reasoning": "General knowledge question"}}

Input: "Good morning!"
Output: {{"primary_intent": "greeting", "confidence": 0.95, "entities": {{}}, "reasoning": "Plain greeting"}}

Message: {message}
Output:"""

_CONVERSATIONAL_INSTRUCTIONS = """Decide whether this message asks about the
conversation itself or about something the user said earlier (for example
"what did I just say", "what did we talk about", "what was my first question").
Statements, plans and requests to perform actions are NOT conversational.

Message: "{message}"

Return ONLY JSON: {{"is_conversational": true|false, "confidence": <0..1>}}"""

# Guards that answer "no" without a model call
_NEGATION = re.compile(r"\b(don['’]?t|do not|no|never|stop|cancel|not)\b")
_HISTORY_TRAP = re.compile(
    r"\b(first|last|earliest|latest|previous|prior)\b.*\b(emperor|president|album|movie|"
    r"season|game|war|century|year|quarter|release|episode|chapter|book|song|event|"
    r"battle|dynasty|kingdom|empire|nation|country|city|planet|star|universe)\b"
)

_ORCHESTRATED = {
    Intent.COMMAND, Intent.MEMORY_STORE, Intent.MEMORY_UPDATE,
    Intent.MEMORY_DELETE, Intent.QUESTION,
}
_SEARCHED = {Intent.MEMORY_RETRIEVE, Intent.QUESTION}


class ModelIntentClassifier:
    """Slow-path intent classification with strict JSON output."""

    def __init__(self, inference: InferenceServicePort, timeout_ms: int = 10_000):
        self._inference = inference
        self._prompt = PromptTemplate.from_template(_INTENT_INSTRUCTIONS)
        self._parser = JsonOutputParser()
        self._options = GenerationOptions(
            temperature=0.0, max_tokens=200, timeout_ms=timeout_ms, json_mode=True,
        )

    async def classify(self, text: str) -> RoutingDecision:
        prompt = self._prompt.format(message=text)
        try:
            raw = await self._inference.generate(prompt, self._options)
        except InferenceError as e:
            raise ClassificationError(f"Model classifier unavailable: {e}") from e

        data = _parse_json(self._parser, raw)
        intent, coerced = Intent.coerce(data.get("primary_intent") or data.get("intent"))
        reasoning = str(data.get("reasoning", "")).strip()
        if coerced:
            reasoning = f"{reasoning}; invalid intent coerced to question".lstrip("; ")

        try:
            confidence = float(data.get("confidence", 0.7))
        except (TypeError, ValueError):
            confidence = 0.7

        return RoutingDecision(
            primary_intent=intent,
            confidence=confidence,
            reasoning=reasoning or "model classification",
            entities=_clean_entities(data.get("entities")),
            needs_semantic_search=intent in _SEARCHED,
            needs_orchestration=intent in _ORCHESTRATED,
            method=RoutingMethod.MODEL,
        )


class ConversationalQueryClassifier:
    """Narrow yes/no classifier used by the conversational override."""

    def __init__(self, inference: InferenceServicePort, timeout_ms: int = 5_000):
        self._inference = inference
        self._prompt = PromptTemplate.from_template(_CONVERSATIONAL_INSTRUCTIONS)
        self._parser = JsonOutputParser()
        self._options = GenerationOptions(
            temperature=0.0, max_tokens=40, timeout_ms=timeout_ms, json_mode=True,
        )

    async def is_conversational(self, text: str) -> tuple[bool, float]:
        """Return (answer, confidence).

        Raises ClassificationError when the model call fails or its output
        cannot be parsed.
        """
        lowered = text.lower().strip()
        if _NEGATION.search(lowered):
            return False, 1.0
        if _HISTORY_TRAP.search(lowered):
            return False, 1.0

        prompt = self._prompt.format(message=text.replace('"', "'"))
        try:
            raw = await self._inference.generate(prompt, self._options)
        except InferenceError as e:
            raise ClassificationError(f"Conversational classifier unavailable: {e}") from e

        data = _parse_json(self._parser, raw)
        answer = data.get("is_conversational")
        if isinstance(answer, str):
            answer = answer.strip().lower() in {"true", "yes"}
        if not isinstance(answer, bool):
            raise ClassificationError(f"Unexpected classifier answer: {raw[:120]!r}")
        try:
            confidence = float(data.get("confidence", 0.8))
        except (TypeError, ValueError):
            confidence = 0.8
        return answer, confidence


def _parse_json(parser: JsonOutputParser, raw: str) -> dict[str, Any]:
    try:
        data = parser.parse(raw)
    except OutputParserException as e:
        logger.warning("Unparseable classifier output: %s", raw[:200])
        raise ClassificationError(f"Unparseable classifier output: {e}") from e
    if not isinstance(data, dict):
        raise ClassificationError("Classifier output is not a JSON object")
    return data


def _clean_entities(value: object) -> dict[str, list[str]]:
    """Keep only {type: [str, ...]} pairs from whatever the model returned."""
    if not isinstance(value, dict):
        return {}
    cleaned: dict[str, list[str]] = {}
    for key, items in value.items():
        if isinstance(items, str):
            items = [items]
        if isinstance(items, list):
            strings = [str(i).strip() for i in items if str(i).strip()]
            if strings:
                cleaned[str(key).lower()] = strings
    return cleaned
