"""
Pytest configuration and shared fakes for the desk assistant core.

Nothing here talks to a model or the network: inference is scripted,
embeddings are a deterministic bag of words, and the memory store lives in
a dict unless a test asks for the SQLite one.
"""

import asyncio
import re
import sys
import zlib
from pathlib import Path
from typing import Any, Callable, Optional, Union

import pytest

# Add src/ to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from domain.entities import MemoryRecord
from domain.exceptions import AgentNotFoundError, EmbeddingError
from domain.models import (
    AgentDefinition,
    Intent,
    IntentClassificationPayload,
    RoutingDecision,
    RoutingMethod,
)
from domain.similarity import cosine_similarity
from domain.thresholds import RoutingThresholds, SearchThresholds
from application.routing.router import build_payload


# =============================================================================
# Model fakes
# =============================================================================

class ScriptedInference:
    """InferenceServicePort that replays canned answers.

    responses may be a list (consumed in order, the last one repeats) or a
    callable prompt -> str. error is raised on every call when set.
    """

    def __init__(
        self,
        responses: Union[list[str], Callable[[str], str], None] = None,
        *,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self._script = responses if callable(responses) else list(responses or [])
        self.error = error
        self.delay = delay
        self.prompts: list[str] = []

    async def generate(self, prompt: str, options=None) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if callable(self._script):
            return self._script(prompt)
        if not self._script:
            return ""
        return self._script.pop(0) if len(self._script) > 1 else self._script[0]


_WORD = re.compile(r"[a-z0-9']+")
_STOP = {
    "a", "an", "the", "i", "my", "me", "is", "at", "to", "of", "on", "in",
    "for", "with", "and", "what", "when", "you", "that", "this", "it", "did",
}


class BagOfWordsEmbedder:
    """EmbedderPort that hashes content words into a fixed-size vector."""

    def __init__(self, dim: int = 512, fail: bool = False):
        self.dim = dim
        self.fail = fail
        self.calls = 0

    async def embed(self, text: str) -> list[float]:
        self.calls += 1
        if self.fail:
            raise EmbeddingError("embedder offline")
        vector = [0.0] * self.dim
        for word in _WORD.findall(text.lower()):
            if word not in _STOP:
                vector[zlib.crc32(word.encode("utf-8")) % self.dim] += 1.0
        return vector


class FakeConversationalClassifier:

    def __init__(self, answer: bool = False, confidence: float = 0.9, delay: float = 0.0):
        self.answer = answer
        self.confidence = confidence
        self.delay = delay
        self.calls = 0

    async def is_conversational(self, text: str) -> tuple[bool, float]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.answer, self.confidence


# =============================================================================
# Storage fakes
# =============================================================================

class InMemoryMemoryStore:
    """MemoryStorePort over a dict; mirrors SQLiteMemoryStore semantics."""

    def __init__(self):
        self.records: dict[int, MemoryRecord] = {}
        self.search_calls = 0
        self._next_id = 1

    async def insert(self, record: MemoryRecord) -> int:
        record.id = self._next_id
        record.created_at = record.updated_at = f"2025-01-01T00:00:{self._next_id:02d}"
        self.records[record.id] = record
        self._next_id += 1
        return record.id

    async def get(self, memory_id: int) -> Optional[MemoryRecord]:
        return self.records.get(memory_id)

    async def query(self, text=None, session_id=None, limit=20, offset=0) -> list[MemoryRecord]:
        rows = [
            r for r in sorted(self.records.values(), key=lambda r: r.id, reverse=True)
            if (not text or text.lower() in r.source_text.lower())
            and (not session_id or r.session_id == session_id)
        ]
        return rows[offset:offset + limit]

    async def search_similar(self, embedding, limit=20, min_similarity=0.0, session_id=None):
        self.search_calls += 1
        scored = []
        for record in self.records.values():
            if not record.embedding or (session_id and record.session_id != session_id):
                continue
            similarity = cosine_similarity(embedding, record.embedding)
            if similarity >= min_similarity:
                scored.append((record, similarity))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]

    async def update(self, memory_id: int, fields: dict[str, Any]) -> bool:
        record = self.records.get(memory_id)
        if record is None:
            return False
        for key, value in fields.items():
            setattr(record, key, value)
        return True

    async def delete(self, memory_id: int) -> bool:
        return self.records.pop(memory_id, None) is not None


class InMemoryDefinitions:
    """AgentDefinitionRepository over a dict."""

    def __init__(self, *definitions: AgentDefinition):
        self.items = {d.name: d for d in definitions}

    async def get_by_name(self, name: str) -> Optional[AgentDefinition]:
        return self.items.get(name)

    async def save(self, definition: AgentDefinition) -> None:
        self.items[definition.name] = definition

    async def list_all(self) -> list[AgentDefinition]:
        return list(self.items.values())


class DictResolver:
    """AgentResolverPort over a plain dict of agents."""

    def __init__(self, *agents):
        self.agents = {a.name: a for a in agents}

    async def resolve(self, name: str):
        if name not in self.agents:
            raise AgentNotFoundError(f"No agent named '{name}'")
        return self.agents[name]

    def available(self) -> list[str]:
        return list(self.agents)

    async def catalog(self) -> list[dict[str, Any]]:
        return [
            {"name": a.name, "description": getattr(a, "description", ""), "actions": ["execute"]}
            for a in self.agents.values()
        ]


class RecordingChannel:
    """NotificationChannel that keeps every event it was asked to send."""

    def __init__(self):
        self.events = []

    async def broadcast(self, event) -> int:
        self.events.append(event)
        return 1


# =============================================================================
# Helpers
# =============================================================================

def make_payload(
    intent: Intent,
    text: str,
    confidence: float = 0.9,
    session_id: Optional[str] = "s1",
    entities: Optional[dict[str, list[str]]] = None,
) -> IntentClassificationPayload:
    decision = RoutingDecision(
        primary_intent=intent,
        confidence=confidence,
        reasoning="test",
        entities=entities or {},
        needs_orchestration=True,
        method=RoutingMethod.STRUCTURAL,
    )
    return build_payload(decision, text, session_id)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def routing_thresholds():
    return RoutingThresholds(classifier_timeout_ms=200, override_timeout_ms=200)


@pytest.fixture
def search_thresholds():
    return SearchThresholds(current_timeout_ms=500, session_timeout_ms=500, cross_timeout_ms=500)


@pytest.fixture
def embedder():
    return BagOfWordsEmbedder()


@pytest.fixture
def memory_store():
    return InMemoryMemoryStore()
