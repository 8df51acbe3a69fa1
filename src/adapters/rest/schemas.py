"""Pydantic models for REST API request/response validation."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


# --- Assistant ---

class HistoryTurn(BaseModel):
    role: str = "user"
    content: str


class AskOptions(BaseModel):
    prefer_semantic_search: bool = True
    enable_intent_classification: bool = True
    use_agent_orchestration: bool = True


class AskBody(BaseModel):
    utterance: str = Field(..., min_length=1, max_length=4000)
    session_id: Optional[str] = None
    history: list[HistoryTurn] = Field(default_factory=list)
    options: AskOptions = Field(default_factory=AskOptions)


class AskOut(BaseModel):
    success: bool
    data: Optional[str] = None
    intent_classification_payload: Optional[dict[str, Any]] = None
    error: Optional[str] = None


# --- Agents ---

class AgentDefinitionBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    entrypoint: str = Field(..., description="package.module:ClassName under a trusted prefix")
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)
    declared_capabilities: list[str] = Field(default_factory=list)
    version: str = "1.0.0"


class AgentOut(BaseModel):
    name: str
    entrypoint: str
    description: str
    input_schema: dict[str, Any]
    declared_capabilities: list[str]
    version: str


# --- Memories ---

class MemoryOut(BaseModel):
    id: int | None
    source_text: str
    primary_intent: str
    session_id: str | None
    created_at: str
