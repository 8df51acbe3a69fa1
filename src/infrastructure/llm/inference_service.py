"""
infrastructure.llm.inference_service - InferenceServicePort over LangChain.

Every call is bounded by the caller's timeout. LangChain's invoke() is
synchronous, so it runs in the default thread pool and the await is wrapped
in asyncio.wait_for; an expired timeout means "no answer", not a retry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from langchain_core.language_models import BaseChatModel

from domain.exceptions import InferenceTimeoutError, InferenceUnavailableError
from domain.models import GenerationOptions
from infrastructure.llm.llm_builder import build_llm

logger = logging.getLogger(__name__)


class LangChainInferenceService:
    """Implements InferenceServicePort with one chat model per option set.

    Models are cached by (temperature, max_tokens, json_mode) since those are
    fixed at construction time for every provider.
    """

    def __init__(
        self,
        *,
        provider: str = "ollama",
        model: str = "llama3.2",
        ollama_base_url: str = "http://localhost:11434/",
        openai_api_key: str = "",
        groq_api_key: str = "",
        llm_factory: Callable[..., BaseChatModel] = build_llm,
    ):
        self._provider = provider
        self._model = model
        self._ollama_base_url = ollama_base_url
        self._openai_api_key = openai_api_key
        self._groq_api_key = groq_api_key
        self._llm_factory = llm_factory
        self._models: dict[tuple[float, int, bool], BaseChatModel] = {}

    def _model_for(self, options: GenerationOptions) -> BaseChatModel:
        key = (options.temperature, options.max_tokens, options.json_mode)
        if key not in self._models:
            self._models[key] = self._llm_factory(
                provider=self._provider,
                model=self._model,
                temperature=options.temperature,
                max_tokens=options.max_tokens,
                json_mode=options.json_mode,
                ollama_base_url=self._ollama_base_url,
                openai_api_key=self._openai_api_key,
                groq_api_key=self._groq_api_key,
            )
        return self._models[key]

    async def generate(self, prompt: str, options: Optional[GenerationOptions] = None) -> str:
        """Return the model's text for prompt.

        Raises:
            InferenceTimeoutError: the call exceeded options.timeout_ms.
            InferenceUnavailableError: the provider is misconfigured or failed.
        """
        options = options or GenerationOptions()
        try:
            llm = self._model_for(options)
        except (ValueError, ImportError) as e:
            raise InferenceUnavailableError(f"Cannot build model: {e}") from e

        loop = asyncio.get_event_loop()
        try:
            message = await asyncio.wait_for(
                loop.run_in_executor(None, llm.invoke, prompt),
                timeout=options.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                "Inference timed out after %d ms (%s/%s)",
                options.timeout_ms, self._provider, self._model,
            )
            raise InferenceTimeoutError(
                f"Inference exceeded {options.timeout_ms} ms"
            ) from e
        except Exception as e:
            logger.warning("Inference failed (%s/%s): %s", self._provider, self._model, e)
            raise InferenceUnavailableError(f"Inference failed: {e}") from e

        return _message_text(message)


def _message_text(message: object) -> str:
    """Extract plain text from an AIMessage (content may be str or parts)."""
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts = [
            p.get("text", "") if isinstance(p, dict) else str(p)
            for p in content
        ]
        content = "".join(parts)
    return str(content).strip()
