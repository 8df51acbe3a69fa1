"""
agent.answer_agent - Answer a question with whatever the plan found.

Reads retrieved memories (and any screen text) from the chain context and
asks the inference service for a short answer.
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.prompts import PromptTemplate

from agent.base import BaseAgent
from domain.exceptions import InferenceError
from domain.models import ChainContext, GenerationOptions, ResponseEnvelope
from domain.ports import InferenceServicePort

logger = logging.getLogger(__name__)

_ANSWER_PROMPT = PromptTemplate.from_template(
    """You are a helpful desktop assistant. Answer the user's question.
Use the notes below when they are relevant; ignore them otherwise.

NOTES:
{notes}

QUESTION: {question}

Answer in 1-3 sentences."""
)


class AnswerAgent(BaseAgent):
    name = "answer"
    description = "Answers a question using memories and screen text found earlier in the plan."

    def __init__(self, inference: InferenceServicePort, timeout_ms: int = 15_000):
        self._inference = inference
        self._options = GenerationOptions(temperature=0.3, max_tokens=200, timeout_ms=timeout_ms)

    async def execute(
        self, action: str, params: dict[str, Any], ctx: ChainContext,
    ) -> ResponseEnvelope:
        question = (params.get("question") or ctx.utterance).strip()
        if not question:
            return ResponseEnvelope.failure("No question to answer")

        prompt = _ANSWER_PROMPT.format(notes=_notes(ctx) or "(none)", question=question)
        try:
            text = await self._inference.generate(prompt, self._options)
        except InferenceError as e:
            logger.warning("Answer generation failed: %s", e)
            return ResponseEnvelope.failure(f"Could not generate an answer: {e}")

        text = (text or "").strip()
        return ResponseEnvelope.of_text(text) if text else ResponseEnvelope.empty()


def _notes(ctx: ChainContext) -> str:
    lines: list[str] = []
    memory = ctx.output_of("memory")
    if memory is not None and isinstance(memory.data, list):
        lines.extend(f"- {m.get('source_text', '')}" for m in memory.data if isinstance(m, dict))
    screen = ctx.output_of("screen_capture")
    if screen is not None and isinstance(screen.data, dict) and screen.data.get("extracted_text"):
        lines.append(f"- On screen: {screen.data['extracted_text'][:500]}")
    return "\n".join(lines)
