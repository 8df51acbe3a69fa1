"""
domain.models - Value objects for the orchestration core.

These are immutable data containers with no dependencies on infrastructure
(no LangChain, no SQLite, no FastAPI). Everything that crosses a layer
boundary during a request is one of these types.

Groups:
    - Utterance, RequestOptions, ConversationContext   (request input)
    - Intent, RoutingDecision, IntentClassificationPayload (understanding)
    - ExecutionPlan, AgentInvocation, StepResult, ChainContext (execution)
    - ResponseEnvelope                                  (agent output)
    - Capability, AgentDefinition                       (dynamic agents)
    - NotificationEvent                                 (background results)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional
from uuid import uuid4


# ---------------------------------------------------------------------------
# Intent
# ---------------------------------------------------------------------------

class Intent(str, Enum):
    """Closed set of intents the router may produce."""
    MEMORY_STORE = "memory_store"
    MEMORY_RETRIEVE = "memory_retrieve"
    MEMORY_UPDATE = "memory_update"
    MEMORY_DELETE = "memory_delete"
    GREETING = "greeting"
    QUESTION = "question"
    COMMAND = "command"

    @classmethod
    def coerce(cls, value: object) -> tuple[Intent, bool]:
        """Map any value onto the closed set.

        Returns (intent, coerced). Unknown values become QUESTION with
        coerced=True so callers can record why.
        """
        if isinstance(value, Intent):
            return value, False
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member, False
        return cls.QUESTION, True

    @property
    def is_memory(self) -> bool:
        return self in _MEMORY_INTENTS


_MEMORY_INTENTS = frozenset({
    Intent.MEMORY_STORE,
    Intent.MEMORY_RETRIEVE,
    Intent.MEMORY_UPDATE,
    Intent.MEMORY_DELETE,
})


class RoutingMethod(str, Enum):
    """Which tier of the router produced a decision."""
    STRUCTURAL = "structural"
    STRUCTURAL_TIEBREAK = "structural_tiebreak"
    MODEL = "model"
    KEYWORD = "keyword"
    FALLBACK = "fallback"
    OVERRIDE = "override"


# ---------------------------------------------------------------------------
# Request input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RequestOptions:
    """Per-request switches supplied by the presentation layer."""
    prefer_semantic_search: bool = True
    enable_intent_classification: bool = True
    use_agent_orchestration: bool = True


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    content: str


@dataclass(frozen=True)
class ConversationContext:
    """Bounded, ordered window of the prior exchange.

    The core only reads it; adapters own the window and append turns.
    """
    turns: tuple[ConversationTurn, ...] = ()
    max_turns: int = 8

    def __post_init__(self) -> None:
        if len(self.turns) > self.max_turns:
            object.__setattr__(self, "turns", tuple(self.turns[-self.max_turns:]))

    @classmethod
    def from_messages(
        cls, messages: list[dict[str, str]], max_turns: int = 8,
    ) -> ConversationContext:
        turns = tuple(
            ConversationTurn(role=m.get("role", "user"), content=m.get("content", ""))
            for m in messages
            if m.get("content")
        )
        return cls(turns=turns, max_turns=max_turns)

    def append(self, role: str, content: str) -> ConversationContext:
        return ConversationContext(
            turns=self.turns + (ConversationTurn(role, content),),
            max_turns=self.max_turns,
        )

    def as_text(self) -> str:
        return "\n".join(f"{t.role}: {t.content}" for t in self.turns)

    def __len__(self) -> int:
        return len(self.turns)


@dataclass(frozen=True)
class Utterance:
    """One raw user input plus its request-scoped options."""
    text: str
    options: RequestOptions = field(default_factory=RequestOptions)
    session_id: Optional[str] = None
    context: ConversationContext = field(default_factory=ConversationContext)


# ---------------------------------------------------------------------------
# Understanding
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RoutingDecision:
    """The router's conclusion about a single utterance.

    entities maps entity type (datetime, person, ...) to the matched strings.
    Confidence is clamped into [0, 1] on construction.
    """
    primary_intent: Intent
    confidence: float
    reasoning: str = ""
    entities: dict[str, list[str]] = field(default_factory=dict)
    needs_semantic_search: bool = False
    needs_orchestration: bool = False
    method: RoutingMethod = RoutingMethod.STRUCTURAL

    def __post_init__(self) -> None:
        intent, coerced = Intent.coerce(self.primary_intent)
        object.__setattr__(self, "primary_intent", intent)
        if coerced:
            object.__setattr__(
                self, "reasoning",
                _join_reason(self.reasoning, "invalid intent coerced to question"),
            )
        confidence = float(self.confidence)
        object.__setattr__(self, "confidence", min(1.0, max(0.0, confidence)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_intent": self.primary_intent.value,
            "confidence": round(self.confidence, 4),
            "reasoning": self.reasoning,
            "entities": self.entities,
            "needs_semantic_search": self.needs_semantic_search,
            "needs_orchestration": self.needs_orchestration,
            "method": self.method.value,
        }


def _join_reason(existing: str, extra: str) -> str:
    return f"{existing}; {extra}" if existing else extra


@dataclass(frozen=True)
class IntentScore:
    intent: Intent
    confidence: float
    reasoning: str = ""


@dataclass(frozen=True)
class IntentClassificationPayload:
    """Canonical record of what was understood about an utterance.

    Built from a RoutingDecision, or from the fixed fallback template when
    routing fails. Persisted independently of whether execution succeeds.
    """
    primary_intent: Intent
    intents: tuple[IntentScore, ...] = ()
    entities: dict[str, list[str]] = field(default_factory=dict)
    requires_memory_access: bool = False
    requires_external_data: bool = False
    capture_screen: bool = False
    suggested_response: Optional[str] = None
    source_text: str = ""
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    context_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def confidence(self) -> float:
        for score in self.intents:
            if score.intent == self.primary_intent:
                return score.confidence
        return 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_intent": self.primary_intent.value,
            "intents": [
                {"intent": s.intent.value, "confidence": s.confidence, "reasoning": s.reasoning}
                for s in self.intents
            ],
            "entities": self.entities,
            "requires_memory_access": self.requires_memory_access,
            "requires_external_data": self.requires_external_data,
            "capture_screen": self.capture_screen,
            "suggested_response": self.suggested_response,
            "source_text": self.source_text,
            "timestamp": self.timestamp,
            "context_metadata": self.context_metadata,
        }


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class FailureStrategy(str, Enum):
    FAIL_FAST = "fail_fast"
    CONTINUE_ON_ERROR = "continue_on_error"


@dataclass(frozen=True)
class AgentInvocation:
    """One planned step: which agent, which action, with what input."""
    agent_name: str
    action: str = "execute"
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecutionPlan:
    steps: tuple[AgentInvocation, ...]
    failure_strategy: FailureStrategy = FailureStrategy.FAIL_FAST
    source: str = "routing"

    @property
    def agent_names(self) -> list[str]:
        return [step.agent_name for step in self.steps]

    def to_dict(self) -> dict[str, Any]:
        return {
            "steps": [
                {"agent": s.agent_name, "action": s.action, "input": s.input}
                for s in self.steps
            ],
            "failure_strategy": self.failure_strategy.value,
            "source": self.source,
        }


class ResponseKind(str, Enum):
    TEXT = "text"
    DATA = "data"
    EMPTY = "empty"
    ERROR = "error"


@dataclass(frozen=True)
class ResponseEnvelope:
    """The single response type every agent returns.

    kind is the tag; text/data/error carry the payload for that tag.
    A DATA envelope may also carry a display text.
    """
    kind: ResponseKind
    text: Optional[str] = None
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def of_text(cls, text: str, data: Any = None) -> ResponseEnvelope:
        return cls(kind=ResponseKind.TEXT, text=text, data=data)

    @classmethod
    def of_data(cls, data: Any, text: Optional[str] = None) -> ResponseEnvelope:
        return cls(kind=ResponseKind.DATA, data=data, text=text)

    @classmethod
    def empty(cls) -> ResponseEnvelope:
        return cls(kind=ResponseKind.EMPTY)

    @classmethod
    def failure(cls, error: str, data: Any = None) -> ResponseEnvelope:
        return cls(kind=ResponseKind.ERROR, error=error, data=data)

    @property
    def ok(self) -> bool:
        return self.kind != ResponseKind.ERROR

    def display_text(self) -> Optional[str]:
        """Text meant for the user, or None if the envelope has none."""
        if self.kind in (ResponseKind.TEXT, ResponseKind.DATA):
            return self.text
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "text": self.text,
            "data": self.data,
            "error": self.error,
        }


@dataclass(frozen=True)
class StepResult:
    index: int
    agent: str
    action: str
    success: bool
    result: Optional[ResponseEnvelope] = None
    error: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "index": self.index,
            "agent": self.agent,
            "action": self.action,
            "success": self.success,
            "timestamp": self.timestamp,
        }
        if self.success and self.result is not None:
            out["result"] = self.result.to_dict()
        else:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class ChainContext:
    """Typed accumulator threaded through one plan execution.

    Never mutated: with_result() returns a new context that also exposes the
    step's envelope under the agent's name. One instance per ask() call.
    """
    request_id: str = field(default_factory=lambda: uuid4().hex)
    utterance: str = ""
    session_id: Optional[str] = None
    payload: Optional[IntentClassificationPayload] = None
    results: tuple[StepResult, ...] = ()
    outputs: Mapping[str, ResponseEnvelope] = field(
        default_factory=lambda: MappingProxyType({}),
    )

    def with_result(self, step: StepResult) -> ChainContext:
        outputs = dict(self.outputs)
        if step.success and step.result is not None:
            outputs[step.agent] = step.result
        return replace(
            self,
            results=self.results + (step,),
            outputs=MappingProxyType(outputs),
        )

    def output_of(self, agent_name: str) -> Optional[ResponseEnvelope]:
        return self.outputs.get(agent_name)

    @property
    def last_result(self) -> Optional[StepResult]:
        return self.results[-1] if self.results else None

    def summary(self) -> dict[str, Any]:
        """JSON-safe view, small enough to hand to a sandboxed agent."""
        return {
            "request_id": self.request_id,
            "utterance": self.utterance,
            "session_id": self.session_id,
            "primary_intent": (
                self.payload.primary_intent.value if self.payload else None
            ),
            "previous": [r.to_dict() for r in self.results],
        }


# ---------------------------------------------------------------------------
# Dynamic agents
# ---------------------------------------------------------------------------

class Capability(str, Enum):
    """Everything a dynamic agent may be granted. Nothing else exists."""
    FILESYSTEM = "filesystem"
    PATHS = "paths"
    STORE = "store"
    CLOCK = "clock"
    INFERENCE = "inference"


@dataclass(frozen=True)
class AgentDefinition:
    """Trusted description of a late-bound agent.

    entrypoint is "package.module:ClassName" of a DynamicAgent subclass.
    declared_capabilities are raw names; the loader checks them against the
    sandbox grant, so an unknown name simply fails the subset check.
    """
    name: str
    entrypoint: str
    description: str = ""
    input_schema: dict[str, Any] = field(default_factory=dict)
    declared_capabilities: tuple[str, ...] = ()
    version: str = "1.0.0"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "entrypoint": self.entrypoint,
            "description": self.description,
            "input_schema": self.input_schema,
            "declared_capabilities": list(self.declared_capabilities),
            "version": self.version,
        }


# ---------------------------------------------------------------------------
# Staged search
# ---------------------------------------------------------------------------

class SearchStage(str, Enum):
    CURRENT = "current_scope"
    SESSION = "session_scope"
    CROSS_SESSION = "cross_session"


@dataclass(frozen=True)
class StageResult:
    stage: SearchStage
    success: bool
    response: Optional[str] = None
    detail: str = ""


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NotificationEvent:
    response: str
    handled_by: str
    method: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    type: str = "orchestration-complete"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "response": self.response,
            "handledBy": self.handled_by,
            "method": self.method,
            "timestamp": self.timestamp,
        }


def looks_like_serialized_structure(text: str) -> bool:
    """True when text is a JSON object/array rather than natural language."""
    stripped = text.strip()
    if not stripped or stripped[0] not in "{[":
        return False
    try:
        parsed = json.loads(stripped)
    except ValueError:
        return False
    return isinstance(parsed, (dict, list))


# ---------------------------------------------------------------------------
# Inference
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GenerationOptions:
    """Knobs for a single inference call. timeout_ms bounds the whole call."""
    temperature: float = 0.2
    max_tokens: int = 256
    timeout_ms: int = 10_000
    json_mode: bool = False

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0
