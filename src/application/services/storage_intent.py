"""
application.services.storage_intent - "Is the user telling me something to keep?"

Runs before staged search: a statement meant for storage must never be
answered from memory. Similarity against a fixed set of storage examples
decides; when the embedder is unavailable a pair of regex rules does.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from domain.exceptions import EmbeddingError
from domain.ports import EmbedderPort
from domain.similarity import cosine_similarity, mean_of_top

logger = logging.getLogger(__name__)

STORAGE_EXAMPLES = (
    "I have a dentist appointment next Tuesday at 3pm",
    "Remember that my sister's birthday is on March 12",
    "My flight to Denver leaves Friday morning",
    "I need to start studying for the certification exam",
    "Save this: the wifi password at the office is on the fridge",
    "I'm meeting Sarah for lunch tomorrow",
    "Note that I parked on level 3",
    "I want to learn Spanish this year",
    "My new phone number ends in 4521",
    "I'm going to practice guitar every evening",
    "Dinner with my parents on Sunday at 7",
    "Keep in mind that I'm allergic to peanuts",
)

_LEARNING_GOAL = re.compile(
    r"\b(need|want|plan|going)\s+to\s+(learn|study|start|begin|work on|practice)\b", re.I,
)
_STORE_VERB_START = re.compile(
    r"^(remember|save|note|record|log|track|journal|add|keep in mind)\b", re.I,
)


@dataclass(frozen=True)
class StorageCheck:
    is_storage: bool
    confidence: float
    method: str


class StorageIntentDetector:

    def __init__(self, embedder: Optional[EmbedderPort], threshold: float = 0.65):
        self._embedder = embedder
        self._threshold = threshold
        self._example_vectors: list[list[float]] | None = None

    async def check(self, text: str) -> StorageCheck:
        """Score the utterance; confidence = 0.7 * max + 0.3 * mean(top 3)."""
        if self._embedder is not None:
            try:
                vector = await self._embedder.embed(text)
                examples = await self._examples()
                sims = [cosine_similarity(vector, ex) for ex in examples]
                if sims:
                    confidence = 0.7 * max(sims) + 0.3 * mean_of_top(sims, 3)
                    logger.debug("Storage intent confidence %.3f for '%s'", confidence, text[:60])
                    return StorageCheck(confidence >= self._threshold, confidence, "semantic")
            except EmbeddingError as e:
                logger.warning("Storage pre-check falling back to rules: %s", e)
        return self._rule_check(text)

    async def _examples(self) -> list[list[float]]:
        if self._example_vectors is None:
            self._example_vectors = [await self._embedder.embed(e) for e in STORAGE_EXAMPLES]
        return self._example_vectors

    @staticmethod
    def _rule_check(text: str) -> StorageCheck:
        stripped = text.strip()
        if _LEARNING_GOAL.search(stripped) or _STORE_VERB_START.search(stripped):
            return StorageCheck(True, 0.6, "rules")
        return StorageCheck(False, 0.1, "rules")
