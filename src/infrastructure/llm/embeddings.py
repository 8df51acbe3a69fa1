"""
infrastructure.llm.embeddings - Local sentence embeddings for vector search.

Implements EmbedderPort with langchain_huggingface. The model is loaded on
first use (it takes a few seconds and pulls weights on a fresh machine), and
embed_query runs in the thread pool so the event loop is never blocked.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from domain.exceptions import EmbeddingError

logger = logging.getLogger(__name__)


class HuggingFaceEmbedder:
    """EmbedderPort backed by a sentence-transformers model."""

    def __init__(self, model_name: str, timeout: float = 15.0):
        self._model_name = model_name
        self._timeout = timeout
        self._embeddings = None
        self._load_lock = asyncio.Lock()
        self._cache: dict[str, list[float]] = {}

    def _load(self):
        from langchain_huggingface import HuggingFaceEmbeddings

        logger.info("Loading embedding model %s", self._model_name)
        return HuggingFaceEmbeddings(
            model_name=self._model_name,
            encode_kwargs={"normalize_embeddings": True},
        )

    async def _ensure_loaded(self):
        if self._embeddings is not None:
            return self._embeddings
        async with self._load_lock:
            if self._embeddings is None:
                loop = asyncio.get_event_loop()
                try:
                    self._embeddings = await loop.run_in_executor(None, self._load)
                except Exception as e:
                    raise EmbeddingError(f"Cannot load embedding model: {e}") from e
        return self._embeddings

    async def embed(self, text: str) -> list[float]:
        """Embed text; repeated texts (training examples, context) hit a cache."""
        cached: Optional[list[float]] = self._cache.get(text)
        if cached is not None:
            return cached

        embeddings = await self._ensure_loaded()
        loop = asyncio.get_event_loop()
        try:
            vector = await asyncio.wait_for(
                loop.run_in_executor(None, embeddings.embed_query, text),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise EmbeddingError("Embedding timed out") from e
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}") from e

        vector = [float(v) for v in vector]
        if len(self._cache) < 512:
            self._cache[text] = vector
        return vector
