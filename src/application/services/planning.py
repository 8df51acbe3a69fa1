"""
application.services.planning - Build ExecutionPlans.

Two sources:
    from_payload()  the fixed intent -> agent map (confident routing)
    from_steps()    steps proposed by the planner agent, validated against
                    the agents that actually exist

A payload that wants the screen gets a screen_capture step first; such plans
continue past failures (the rest of the plan is still useful without an
image). Every other plan fails fast.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Optional

from domain.exceptions import PlanError
from domain.models import (
    AgentInvocation,
    ExecutionPlan,
    FailureStrategy,
    Intent,
    IntentClassificationPayload,
)

MEMORY_AGENT = "memory"
ANSWER_AGENT = "answer"
SCREEN_AGENT = "screen_capture"
PLANNER_AGENT = "planner"

_MEMORY_ID = re.compile(r"(?:\bmemory\s*#?|\bid\s*#?|#)(\d+)\b", re.I)


def memory_id_from(text: str) -> Optional[int]:
    match = _MEMORY_ID.search(text)
    return int(match.group(1)) if match else None


class PlanBuilder:

    def __init__(self, retrieve_limit: int = 5):
        self._retrieve_limit = retrieve_limit

    def from_payload(
        self, payload: IntentClassificationPayload, session_id: Optional[str] = None,
    ) -> ExecutionPlan:
        text = payload.source_text
        intent = payload.primary_intent
        steps: list[AgentInvocation] = []

        if intent == Intent.MEMORY_STORE:
            steps.append(AgentInvocation(MEMORY_AGENT, "store", {
                "text": text, "payload": payload.to_dict(), "session_id": session_id,
            }))
        elif intent == Intent.MEMORY_RETRIEVE:
            steps.append(AgentInvocation(MEMORY_AGENT, "retrieve", {
                "query": text, "limit": self._retrieve_limit, "offset": 0,
            }))
        elif intent == Intent.MEMORY_UPDATE:
            steps.append(AgentInvocation(MEMORY_AGENT, "update", {
                "memory_id": memory_id_from(text), "text": text, "session_id": session_id,
            }))
        elif intent == Intent.MEMORY_DELETE:
            steps.append(AgentInvocation(MEMORY_AGENT, "delete", {
                "memory_id": memory_id_from(text), "query": text, "session_id": session_id,
            }))
        elif intent == Intent.QUESTION:
            steps.append(AgentInvocation(MEMORY_AGENT, "search", {
                "query": text, "limit": self._retrieve_limit,
            }))
            steps.append(AgentInvocation(ANSWER_AGENT, "answer", {"question": text}))
        else:
            steps.append(AgentInvocation(MEMORY_AGENT, "store_context", {
                "text": text, "payload": payload.to_dict(), "session_id": session_id,
            }))

        return self._finish(steps, payload, source="routing")

    def from_steps(
        self,
        raw_steps: Any,
        payload: IntentClassificationPayload,
        available: Iterable[str],
    ) -> ExecutionPlan:
        """Validate planner output; raises PlanError on anything unusable."""
        if not isinstance(raw_steps, list) or not raw_steps:
            raise PlanError("Plan has no steps")
        known = set(available)
        steps: list[AgentInvocation] = []
        for i, raw in enumerate(raw_steps):
            if not isinstance(raw, dict):
                raise PlanError(f"Step {i} is not an object")
            agent = raw.get("agent") or raw.get("agent_name")
            if not isinstance(agent, str) or agent not in known:
                raise PlanError(f"Step {i} names unknown agent {agent!r}")
            if agent == PLANNER_AGENT:
                raise PlanError("A plan may not call the planner")
            action = raw.get("action") or "execute"
            params = raw.get("input") or raw.get("params") or {}
            if not isinstance(action, str) or not isinstance(params, dict):
                raise PlanError(f"Step {i} has a malformed action or input")
            steps.append(AgentInvocation(agent, action, params))
        return self._finish(steps, payload, source="planner")

    @staticmethod
    def _finish(
        steps: list[AgentInvocation], payload: IntentClassificationPayload, source: str,
    ) -> ExecutionPlan:
        if payload.capture_screen and not any(s.agent_name == SCREEN_AGENT for s in steps):
            steps.insert(0, AgentInvocation(SCREEN_AGENT, "capture", {}))
        has_capture = any(s.agent_name == SCREEN_AGENT for s in steps)
        return ExecutionPlan(
            steps=tuple(steps),
            failure_strategy=(
                FailureStrategy.CONTINUE_ON_ERROR if has_capture else FailureStrategy.FAIL_FAST
            ),
            source=source,
        )
