"""
application.routing.keywords - Last-resort keyword routing.

Used only when both the structural and the model classifier have failed.
A negated action ("don't save that") never routes to an action intent.
"""

from __future__ import annotations

import re

from application.routing.structural import extract_features
from domain.models import Intent, RoutingDecision, RoutingMethod

_RULES: list[tuple[re.Pattern, Intent]] = [
    (re.compile(r"\b(screenshot|capture|screen)\b"), Intent.COMMAND),
    (re.compile(r"\b(remember|store|save)\b"), Intent.MEMORY_STORE),
    (re.compile(r"\b(recall|retrieve)\b|\bwhat did\b"), Intent.MEMORY_RETRIEVE),
    (re.compile(r"^(hello|hi|hey)\b"), Intent.GREETING),
]

_ACTIONS = {Intent.COMMAND, Intent.MEMORY_STORE}


def keyword_decision(text: str, confidence: float) -> RoutingDecision:
    lowered = text.lower().strip()
    intent = Intent.QUESTION
    for pattern, candidate in _RULES:
        if pattern.search(lowered):
            intent = candidate
            break

    reasoning = f"keyword match: {intent.value}"
    if intent in _ACTIONS and extract_features(lowered).negated:
        reasoning = f"negated keyword {intent.value}: question"
        intent = Intent.QUESTION

    return RoutingDecision(
        primary_intent=intent,
        confidence=confidence,
        reasoning=reasoning,
        needs_semantic_search=intent in (Intent.MEMORY_RETRIEVE, Intent.QUESTION),
        needs_orchestration=intent in (Intent.COMMAND, Intent.MEMORY_STORE, Intent.QUESTION),
        method=RoutingMethod.KEYWORD,
    )
