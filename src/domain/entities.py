"""
domain.entities - Persistence-aware types (have IDs, timestamps).

Decoupled from any persistence strategy: no SQL concerns, no DB imports.
Timestamps are set by the repository implementations, not by the entities
themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class MemoryRecord:
    """One stored memory: something the user said, plus what was understood."""
    id: Optional[int] = None
    source_text: str = ""
    suggested_response: str = ""
    primary_intent: str = ""
    entities: dict[str, list[str]] = field(default_factory=dict)
    session_id: Optional[str] = None
    embedding: Optional[list[float]] = None
    screenshot: Optional[str] = None
    extracted_text: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class ClassificationRecord:
    """Persisted IntentClassificationPayload, stored as JSON."""
    id: Optional[int] = None
    request_id: str = ""
    session_id: Optional[str] = None
    primary_intent: str = ""
    confidence: float = 0.0
    source_text: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""


@dataclass
class InteractionRecord:
    """One orchestrated request: utterance, plan, and what came of it."""
    id: Optional[int] = None
    request_id: str = ""
    session_id: Optional[str] = None
    utterance: str = ""
    intent: str = ""
    plan: dict[str, Any] = field(default_factory=dict)
    result: list[dict[str, Any]] = field(default_factory=list)
    success: bool = False
    execution_time_ms: int = 0
    created_at: str = ""
