"""
agent.planner - LLM planning over the registered agents.

Used by the orchestrator when routing confidence is too low to trust the
intent->agent map. Returns the proposed steps as data; validating them
against the agents that actually exist is the PlanBuilder's job.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import JsonOutputParser
from langchain_core.prompts import PromptTemplate

from agent.base import BaseAgent
from domain.exceptions import InferenceError
from domain.models import ChainContext, GenerationOptions, ResponseEnvelope
from domain.ports import InferenceServicePort

logger = logging.getLogger(__name__)

_PLAN_PROMPT = PromptTemplate.from_template(
    """You plan work for a desktop assistant. Pick the agents needed to handle
the user's message, in order. Use ONLY these agents and actions:

{agents}

User message: "{message}"
Detected intent: {intent}

Return ONLY JSON:
{{"steps": [{{"agent": "<name>", "action": "<action>", "input": {{}}}}]}}"""
)


class PlannerAgent(BaseAgent):
    name = "planner"
    description = "Plans which agents to run for an ambiguous request."

    def __init__(self, inference: InferenceServicePort, timeout_ms: int = 10_000):
        self._inference = inference
        self._parser = JsonOutputParser()
        self._options = GenerationOptions(
            temperature=0.0, max_tokens=300, timeout_ms=timeout_ms, json_mode=True,
        )

    async def execute(
        self, action: str, params: dict[str, Any], ctx: ChainContext,
    ) -> ResponseEnvelope:
        agents = params.get("agents") or []
        if not agents:
            return ResponseEnvelope.failure("No agents available to plan over")

        catalog = "\n".join(
            f"- {a['name']} (actions: {', '.join(a.get('actions', ['execute']))}): "
            f"{a.get('description', '')}"
            for a in agents
        )
        intent = ctx.payload.primary_intent.value if ctx.payload else "unknown"
        prompt = _PLAN_PROMPT.format(
            agents=catalog, message=ctx.utterance.replace('"', "'"), intent=intent,
        )

        try:
            raw = await self._inference.generate(prompt, self._options)
            data = self._parser.parse(raw)
        except InferenceError as e:
            return ResponseEnvelope.failure(f"Planner unavailable: {e}")
        except OutputParserException:
            logger.warning("Planner returned unparseable output")
            return ResponseEnvelope.failure("Planner returned unparseable output")

        steps = data.get("steps") if isinstance(data, dict) else data
        if not isinstance(steps, list) or not steps:
            return ResponseEnvelope.failure("Planner returned no steps")
        logger.info("Planner proposed: %s", json.dumps(steps)[:200])
        return ResponseEnvelope.of_data({"steps": steps})
