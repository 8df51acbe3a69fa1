"""
domain.ports - Abstract interfaces (Protocols) for all system boundaries.

These define WHAT the core needs without specifying HOW. Infrastructure
modules provide concrete implementations; application services and agents
depend only on these protocols, never on concrete classes.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Protocol, runtime_checkable

from domain.models import (
    AgentDefinition,
    ChainContext,
    GenerationOptions,
    IntentClassificationPayload,
    NotificationEvent,
    ResponseEnvelope,
    RoutingDecision,
)
from domain.entities import MemoryRecord, ClassificationRecord, InteractionRecord


# ---------------------------------------------------------------------------
# Model Ports
# ---------------------------------------------------------------------------

@runtime_checkable
class InferenceServicePort(Protocol):
    """Prompt in, text out. Raises InferenceError subclasses on failure."""

    async def generate(self, prompt: str, options: GenerationOptions) -> str: ...


@runtime_checkable
class EmbedderPort(Protocol):
    """Turn text into a dense vector. Raises EmbeddingError on failure."""

    async def embed(self, text: str) -> list[float]: ...


@runtime_checkable
class IntentClassifierPort(Protocol):
    """Slow, model-based intent classification.

    Raises ClassificationError when output cannot be parsed.
    """

    async def classify(self, text: str) -> RoutingDecision: ...


@runtime_checkable
class ConversationalClassifierPort(Protocol):
    """Binary check: is this utterance a question about the conversation?"""

    async def is_conversational(self, text: str) -> tuple[bool, float]: ...


# ---------------------------------------------------------------------------
# Repository Ports
# ---------------------------------------------------------------------------

@runtime_checkable
class MemoryStorePort(Protocol):
    """Record store for long-term memory."""

    async def insert(self, record: MemoryRecord) -> int: ...
    async def get(self, memory_id: int) -> MemoryRecord | None: ...
    async def query(
        self,
        text: Optional[str] = None,
        session_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[MemoryRecord]: ...
    async def search_similar(
        self,
        embedding: list[float],
        limit: int = 20,
        min_similarity: float = 0.0,
        session_id: Optional[str] = None,
    ) -> list[tuple[MemoryRecord, float]]: ...
    async def update(self, memory_id: int, fields: dict[str, Any]) -> bool: ...
    async def delete(self, memory_id: int) -> bool: ...


@runtime_checkable
class ClassificationRepository(Protocol):
    """Stores what was understood about each utterance."""

    async def save(self, record: ClassificationRecord) -> int: ...
    async def recent(self, limit: int = 20) -> list[ClassificationRecord]: ...


@runtime_checkable
class InteractionRepository(Protocol):
    """Stores one row per orchestrated request, success or not."""

    async def save(self, record: InteractionRecord) -> int: ...
    async def recent(self, limit: int = 20) -> list[InteractionRecord]: ...


@runtime_checkable
class AgentDefinitionRepository(Protocol):
    """Trusted registry of dynamic agent definitions."""

    async def get_by_name(self, name: str) -> AgentDefinition | None: ...
    async def save(self, definition: AgentDefinition) -> None: ...
    async def list_all(self) -> list[AgentDefinition]: ...


# ---------------------------------------------------------------------------
# Agent / Presentation Ports
# ---------------------------------------------------------------------------

@runtime_checkable
class AgentPort(Protocol):
    """Anything the plan executor can invoke."""

    name: str

    async def execute(
        self, action: str, params: dict[str, Any], ctx: ChainContext,
    ) -> ResponseEnvelope: ...


@runtime_checkable
class ScreenCapturePort(Protocol):
    """Screenshot utility owned by the presentation layer.

    Returns base64 image data and any extracted text.
    """

    async def capture(self) -> dict[str, Any]: ...


NotificationSurface = Callable[[dict[str, Any]], Awaitable[None]]


@runtime_checkable
class NotificationChannel(Protocol):
    """One-way push of background results to live presentation surfaces."""

    async def broadcast(self, event: NotificationEvent) -> int: ...


@runtime_checkable
class BackgroundSchedulerPort(Protocol):
    """Starts detached orchestration for a classified utterance."""

    def schedule(
        self, payload: IntentClassificationPayload, session_id: Optional[str] = None,
    ) -> None: ...


@runtime_checkable
class AgentResolverPort(Protocol):
    """Finds an executable agent by name (static, cached or dynamic).

    Raises AgentNotFoundError or AgentLoadError.
    """

    async def resolve(self, name: str) -> AgentPort: ...
    def available(self) -> list[str]: ...
    async def catalog(self) -> list[dict[str, Any]]: ...
