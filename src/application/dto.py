"""
application.dto - Data Transfer Objects for service input/output.

These are the structured results that services return to callers
(background orchestration, REST endpoints, CLI adapters).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from domain.models import (
    ExecutionPlan,
    Intent,
    IntentClassificationPayload,
    ResponseEnvelope,
    StepResult,
)

FALLBACK_REPLY = "I encountered an error processing your request. Please try again."


@dataclass(frozen=True)
class AssistantResponse:
    """Synchronous reply to one utterance.

    data carries the immediate text; the payload is present whenever the
    utterance went through routing (absent on a staged-search answer).
    """
    success: bool
    data: Optional[str] = None
    intent_classification_payload: Optional[IntentClassificationPayload] = None
    error: Optional[str] = None
    answered_by: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"success": self.success, "data": self.data}
        if self.intent_classification_payload is not None:
            out["intent_classification_payload"] = self.intent_classification_payload.to_dict()
        if self.error:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class OrchestrationOutcome:
    """Result of AgentOrchestrator.ask()."""
    success: bool
    intent: Intent
    plan: Optional[ExecutionPlan] = None
    results: tuple[StepResult, ...] = ()
    response: Optional[ResponseEnvelope] = None
    execution_time_ms: int = 0
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def agents_used(self) -> list[str]:
        return [r.agent for r in self.results]

    @classmethod
    def failed(
        cls, intent: Intent, error: str, execution_time_ms: int = 0,
        plan: Optional[ExecutionPlan] = None,
    ) -> OrchestrationOutcome:
        return cls(
            success=False,
            intent=intent,
            plan=plan,
            response=ResponseEnvelope.of_text(FALLBACK_REPLY),
            execution_time_ms=execution_time_ms,
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "intent": self.intent.value,
            "plan": self.plan.to_dict() if self.plan else None,
            "results": [r.to_dict() for r in self.results],
            "response": self.response.to_dict() if self.response else None,
            "error": self.error,
            "metadata": {
                "execution_time_ms": self.execution_time_ms,
                "agents_used": self.agents_used,
                **self.metadata,
            },
        }
