"""
application.routing.structural - Fast, rule-based intent scoring.

Scores the five routable intents (greeting, command, memory_store,
memory_retrieve, question) from surface features of the utterance and the
extracted entities. Returns None (abstains) when the evidence is weak or
ambiguous so the router can escalate to the model classifier.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from domain.models import Intent, RoutingDecision, RoutingMethod
from domain.thresholds import RoutingThresholds

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"\b[\w']+\b")

_WH_WORDS = {"what", "when", "where", "who", "how", "why", "which"}
_WH_CONTRACTIONS = re.compile(r"^(what's|when's|where's|who's|how's|why's)$")

_GREETING_START = re.compile(r"^(hi|hello|hey|greetings|good (morning|afternoon|evening))\b")
_IMPERATIVE_VERBS = (
    "save", "remember", "note", "record", "open", "search", "email", "message",
    "call", "schedule", "remind", "create", "delete", "update", "screenshot", "capture",
)
_IMPERATIVE_START = re.compile(rf"^({'|'.join(_IMPERATIVE_VERBS)})\b")
_ACTION_VERBS = set(_IMPERATIVE_VERBS) | {"start", "stop", "run", "execute"}

_FIRST_PERSON = re.compile(r"\b(i|i'm|im|i've|i'd|i'll|me|my)\b")
_GROUP = re.compile(r"\b(we|our|us)\b")
_FUTURE_CUE = re.compile(
    r"\b(tonight|tomorrow|next|upcoming|later|soon|in \d+ (min|mins|minutes|hours|days|weeks))\b"
)
_PAST_CUE = re.compile(r"\b(yesterday|last|earlier|ago)\b")
_NEGATION_WORDS = {"don't", "dont", "do", "not", "no", "never", "stop", "cancel"}
_NEGATION_WINDOW = 3

_MODAL_REQUEST = re.compile(r"^(can|could|would|will)\s+you\b")
_DECLARATIVE_ABILITY = re.compile(r"\bi can\b")

_STORE_VERBS = ("save", "remember", "note", "record", "log", "track", "journal", "add")
_STORE_VERB = re.compile(rf"\b({'|'.join(_STORE_VERBS)})\b")
_SPECULATIVE_STORE = re.compile(r"\b(should|can|could)\s+i\s+(save|log|record|remember)\b")

_RETRIEVE_PHRASES = [
    re.compile(
        r"(remind me|recall|what did (i|we) (say|tell you|plan|discuss|talk about)|"
        r"what about|show me (what|the)|pull up|find (what|when|where) (i|we))"
    ),
    re.compile(r"\b(show|find|search)\b.*\b(my|our|previous|past|last)\b"),
    re.compile(r"what (did|have) we (plan|discuss|say|talk about|decide)"),
    re.compile(
        r"what('s|s)?\s+(the\s+)?(first|last|earliest|latest|initial|previous)\s+"
        r"(message|thing|question|ask)"
    ),
    re.compile(r"\b(first|last|earliest|latest|initial|previous)\s+(message|thing|question|ask|conversation)"),
]

_ORCHESTRATED = {Intent.COMMAND, Intent.MEMORY_STORE, Intent.QUESTION}
_SEARCHED = {Intent.MEMORY_RETRIEVE, Intent.QUESTION}


@dataclass(frozen=True)
class StructuralFeatures:
    """Surface features of one utterance; all booleans are lowercase-based."""
    tokens: tuple[str, ...]
    has_wh: bool
    has_question_mark: bool
    greeting_start: bool
    imperative_start: bool
    action_indices: tuple[int, ...]
    first_person: bool
    first_or_group: bool
    future_cue: bool
    past_cue: bool
    negated: bool
    modal_request: bool
    declarative_ability: bool
    store_verb: bool
    speculative_store: bool
    retrieve_phrase: bool

    @property
    def has_action(self) -> bool:
        return bool(self.action_indices)


def extract_features(text: str) -> StructuralFeatures:
    lowered = text.lower().strip()
    tokens = tuple(_TOKEN.findall(lowered))

    has_wh = any(t in _WH_WORDS or _WH_CONTRACTIONS.match(t) for t in tokens)
    action_indices = tuple(i for i, t in enumerate(tokens) if t in _ACTION_VERBS)

    negated = False
    for idx in action_indices:
        window = tokens[max(0, idx - _NEGATION_WINDOW): idx + _NEGATION_WINDOW + 1]
        if any(t in _NEGATION_WORDS and t != tokens[idx] for t in window):
            negated = True
            break

    first_person = bool(_FIRST_PERSON.search(lowered))
    return StructuralFeatures(
        tokens=tokens,
        has_wh=has_wh,
        has_question_mark=lowered.endswith("?"),
        greeting_start=bool(_GREETING_START.search(lowered)),
        imperative_start=bool(_IMPERATIVE_START.search(lowered)),
        action_indices=action_indices,
        first_person=first_person,
        first_or_group=first_person or bool(_GROUP.search(lowered)),
        future_cue=bool(_FUTURE_CUE.search(lowered)),
        past_cue=bool(_PAST_CUE.search(lowered)),
        negated=negated,
        modal_request=bool(_MODAL_REQUEST.search(lowered)) and bool(action_indices),
        declarative_ability=bool(_DECLARATIVE_ABILITY.search(lowered)),
        store_verb=bool(_STORE_VERB.search(lowered)),
        speculative_store=bool(_SPECULATIVE_STORE.search(lowered)),
        retrieve_phrase=any(p.search(lowered) for p in _RETRIEVE_PHRASES),
    )


class StructuralClassifier:
    """Weighted feature scoring with abstention.

    Weights are part of the classifier; the abstain, margin and tie-break
    thresholds come from RoutingThresholds.
    """

    def __init__(self, thresholds: RoutingThresholds):
        self._t = thresholds

    def classify(
        self,
        text: str,
        entities: dict[str, list[str]],
        storage_confidence: float = 0.0,
    ) -> Optional[RoutingDecision]:
        """Score the utterance; None means "not sure, ask someone else"."""
        f = extract_features(text)
        if not f.tokens:
            return None

        # Only a positive storage pre-check may boost memory_store
        if storage_confidence < self._t.storage_intent_threshold:
            storage_confidence = 0.0
        scores = self._score(f, entities, storage_confidence)
        ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
        top_intent, top_score = ranked[0]
        second_score = ranked[1][1] if len(ranked) > 1 else 0.0
        margin = top_score - second_score

        abstain_below = (
            self._t.abstain_short
            if len(f.tokens) < self._t.short_utterance_tokens
            else self._t.abstain_default
        )
        reasoning = _reasoning(ranked, f.negated, entities, margin)

        store_score = scores[Intent.MEMORY_STORE]
        if (
            top_intent != Intent.MEMORY_STORE
            and abs(store_score - top_score) <= self._t.tiebreak_window
            and store_score > self._t.tiebreak_min_score
        ):
            logger.debug("Structural tie-break to memory_store (%s)", reasoning)
            return RoutingDecision(
                primary_intent=Intent.MEMORY_STORE,
                confidence=store_score,
                reasoning=reasoning,
                entities=entities,
                needs_semantic_search=False,
                needs_orchestration=True,
                method=RoutingMethod.STRUCTURAL_TIEBREAK,
            )

        if top_score < abstain_below or margin < self._t.min_margin:
            logger.debug("Structural classifier abstained: %s", reasoning)
            return None

        return RoutingDecision(
            primary_intent=top_intent,
            confidence=top_score,
            reasoning=reasoning,
            entities=entities,
            needs_semantic_search=top_intent in _SEARCHED,
            needs_orchestration=top_intent in _ORCHESTRATED or f.modal_request,
            method=RoutingMethod.STRUCTURAL,
        )

    def _score(
        self,
        f: StructuralFeatures,
        entities: dict[str, list[str]],
        storage_confidence: float,
    ) -> dict[Intent, float]:
        scores = {
            Intent.GREETING: 0.0,
            Intent.COMMAND: 0.0,
            Intent.MEMORY_STORE: 0.0,
            Intent.MEMORY_RETRIEVE: 0.0,
            Intent.QUESTION: 0.0,
        }
        has = {kind: bool(entities.get(kind)) for kind in (
            "datetime", "person", "location", "event", "capability",
        )}
        entity_count = sum(len(v) for v in entities.values())
        is_request = f.has_wh or f.has_question_mark or f.has_action or f.imperative_start

        # Greeting
        if (
            f.greeting_start and len(f.tokens) <= 6 and not f.imperative_start
            and not f.has_wh and not f.has_question_mark and not f.has_action
        ):
            scores[Intent.GREETING] += 0.85
        if f.greeting_start and is_request:
            scores[Intent.GREETING] = min(scores[Intent.GREETING], 0.1)

        # Command
        if (f.imperative_start or f.has_action or f.modal_request) and not f.negated:
            scores[Intent.COMMAND] += 0.75
            if entity_count:
                scores[Intent.COMMAND] += 0.05
            if has["capability"]:
                scores[Intent.COMMAND] += 0.10
        if f.modal_request and not f.negated:
            scores[Intent.COMMAND] += 0.15
        if f.declarative_ability:
            scores[Intent.COMMAND] -= 0.35
            scores[Intent.MEMORY_STORE] += 0.25
            scores[Intent.QUESTION] += 0.15

        # Memory store
        personal_context = f.first_person and (
            f.future_cue or f.past_cue or has["event"] or has["person"]
            or has["location"] or has["datetime"]
        )
        store_cues = (
            personal_context or f.store_verb or f.declarative_ability
            or storage_confidence > 0.0
        )
        question_not_storage = (f.has_wh or f.has_question_mark) and not f.store_verb
        if store_cues and not f.negated and not question_not_storage:
            scores[Intent.MEMORY_STORE] += 0.70 + storage_confidence * 0.3
            if f.speculative_store:
                scores[Intent.MEMORY_STORE] -= 0.15
                scores[Intent.QUESTION] += 0.25
            if has["datetime"]:
                scores[Intent.MEMORY_STORE] += 0.08
            if has["person"] or has["event"] or has["location"]:
                scores[Intent.MEMORY_STORE] += 0.06

        # Memory retrieve
        if (f.retrieve_phrase or (f.has_wh and f.first_or_group)) and not f.negated:
            scores[Intent.MEMORY_RETRIEVE] += 0.75
            if has["datetime"]:
                scores[Intent.MEMORY_RETRIEVE] += 0.06
            if entity_count:
                scores[Intent.MEMORY_RETRIEVE] += 0.04

        # Question
        if f.has_wh or f.has_question_mark:
            scores[Intent.QUESTION] += 0.65
            if entity_count:
                scores[Intent.QUESTION] += 0.05

        if f.negated:
            scores[Intent.COMMAND] -= 0.25
            scores[Intent.MEMORY_STORE] -= 0.25

        return {intent: max(0.0, score) for intent, score in scores.items()}


def _reasoning(
    ranked: list[tuple[Intent, float]],
    negated: bool,
    entities: dict[str, list[str]],
    margin: float,
) -> str:
    shown = ", ".join(f"{intent.value}:{score:.2f}" for intent, score in ranked if score > 0)
    kinds = ",".join(sorted(entities)) or "none"
    return (
        f"scores={shown or 'none'}; negated={str(negated).lower()}; "
        f"entities={kinds}; margin={margin:.2f}"
    )
