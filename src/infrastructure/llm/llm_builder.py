"""
infrastructure.llm.llm_builder - Centralized chat model construction.

Single source of truth for building LangChain chat models. Every model call
in the core (staged-search answers, classifiers, planner, answer agent) goes
through a model built here. The provider is controlled by LLM_PROVIDER.

Supported providers:
    - "openai"  → langchain_openai.ChatOpenAI
    - "groq"    → langchain_groq.ChatGroq
    - "ollama"  → langchain_ollama.ChatOllama
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)


def build_llm(
    *,
    provider: str,
    model: str,
    temperature: float = 0,
    ollama_base_url: str = "http://localhost:11434/",
    openai_api_key: str = "",
    groq_api_key: str = "",
    json_mode: bool = False,
    max_tokens: Optional[int] = None,
) -> BaseChatModel:
    """Build a chat model for the given provider.

    Args:
        provider: One of "openai", "groq", "ollama".
        model: Model name for the selected provider.
        temperature: Sampling temperature.
        ollama_base_url: Ollama server URL (only used when provider="ollama").
        openai_api_key: API key for OpenAI.
        groq_api_key: API key for Groq.
        json_mode: Ask the provider for a JSON object response.
        max_tokens: Output token budget (num_predict for Ollama).

    Raises:
        ValueError: If the provider is unknown or required credentials are missing.
    """
    key = provider.lower().strip()
    builder = _BUILDERS.get(key)
    if builder is None:
        raise ValueError(
            f"Unsupported LLM_PROVIDER: '{provider}'. "
            "Must be 'openai', 'groq', or 'ollama'."
        )
    logger.info(
        "Building %s chat model (model=%s, json_mode=%s, max_tokens=%s)",
        key, model, json_mode, max_tokens,
    )
    return builder(
        model=model,
        temperature=temperature,
        json_mode=json_mode,
        max_tokens=max_tokens,
        ollama_base_url=ollama_base_url,
        openai_api_key=openai_api_key,
        groq_api_key=groq_api_key,
    )


def _build_openai(
    *, model: str, temperature: float, json_mode: bool,
    max_tokens: Optional[int], openai_api_key: str, **_: Any,
) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    if not openai_api_key:
        raise ValueError("OPENAI_API_KEY is required when LLM_PROVIDER='openai'")

    kwargs: Dict[str, Any] = {
        "model": model,
        "temperature": temperature,
        "openai_api_key": openai_api_key,
    }
    if json_mode:
        kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens
    return ChatOpenAI(**kwargs)


def _build_groq(
    *, model: str, temperature: float, json_mode: bool,
    max_tokens: Optional[int], groq_api_key: str, **_: Any,
) -> BaseChatModel:
    from langchain_groq import ChatGroq

    if not groq_api_key:
        raise ValueError("GROQ_API_KEY is required when LLM_PROVIDER='groq'")

    kwargs: Dict[str, Any] = {
        "model": model,
        "temperature": temperature,
        "groq_api_key": groq_api_key,
        "max_tokens": max_tokens if max_tokens is not None else 512,
    }
    if json_mode:
        kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}
    return ChatGroq(**kwargs)


def _build_ollama(
    *, model: str, temperature: float, json_mode: bool,
    max_tokens: Optional[int], ollama_base_url: str, **_: Any,
) -> BaseChatModel:
    from langchain_ollama import ChatOllama

    kwargs: Dict[str, Any] = {
        "model": model,
        "temperature": temperature,
        "base_url": ollama_base_url,
    }
    if json_mode:
        kwargs["format"] = "json"
    if max_tokens is not None:
        kwargs["num_predict"] = max_tokens
    return ChatOllama(**kwargs)


_BUILDERS: Dict[str, Callable[..., BaseChatModel]] = {
    "openai": _build_openai,
    "groq": _build_groq,
    "ollama": _build_ollama,
}
