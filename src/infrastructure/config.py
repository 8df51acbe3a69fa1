"""
infrastructure.config - Typed, injectable configuration.

A frozen dataclass that can be constructed from environment or passed
explicitly. Routing and staged-search thresholds are read here into the
domain threshold dataclasses.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from domain.models import Capability
from domain.thresholds import RoutingThresholds, SearchThresholds


def routing_from_env() -> RoutingThresholds:
    return RoutingThresholds(
        abstain_short=_env_float("ROUTER_ABSTAIN_SHORT", 0.55),
        abstain_default=_env_float("ROUTER_ABSTAIN_DEFAULT", 0.45),
        min_margin=_env_float("ROUTER_MIN_MARGIN", 0.05),
        tiebreak_window=_env_float("ROUTER_TIEBREAK_WINDOW", 0.05),
        tiebreak_min_score=_env_float("ROUTER_TIEBREAK_MIN_SCORE", 0.6),
        keyword_confidence=_env_float("ROUTER_KEYWORD_CONFIDENCE", 0.6),
        fallback_confidence=_env_float("ROUTER_FALLBACK_CONFIDENCE", 0.7),
        planner_confidence=_env_float("PLANNER_CONFIDENCE", 0.5),
        classifier_timeout_ms=_env_int("CLASSIFIER_TIMEOUT_MS", 10_000),
        override_timeout_ms=_env_int("OVERRIDE_TIMEOUT_MS", 5_000),
        storage_intent_threshold=_env_float("STORAGE_INTENT_THRESHOLD", 0.65),
    )


def search_from_env() -> SearchThresholds:
    return SearchThresholds(
        current_min_similarity=_env_float("SEARCH_CURRENT_MIN_SIMILARITY", 0.18),
        current_timeout_ms=_env_int("SEARCH_CURRENT_TIMEOUT_MS", 10_000),
        session_min_similarity=_env_float("SEARCH_SESSION_MIN_SIMILARITY", 0.26),
        session_top_sufficient=_env_float("SEARCH_SESSION_TOP", 0.28),
        session_avg_sufficient=_env_float("SEARCH_SESSION_AVG", 0.25),
        session_timeout_ms=_env_int("SEARCH_SESSION_TIMEOUT_MS", 12_000),
        cross_min_similarity=_env_float("SEARCH_CROSS_MIN_SIMILARITY", 0.32),
        cross_top_sufficient=_env_float("SEARCH_CROSS_TOP", 0.34),
        cross_avg_sufficient=_env_float("SEARCH_CROSS_AVG", 0.30),
        cross_timeout_ms=_env_int("SEARCH_CROSS_TIMEOUT_MS", 13_000),
    )


@dataclass(frozen=True)
class Settings:
    """Centralized configuration for the assistant core.

    All paths are absolute. No module-level globals; construct via from_env()
    or pass explicitly in tests.
    """
    project_root: Path

    # ── Centralized LLM Provider ────────────────────────────────
    # One setting controls every model call (generation, classifiers,
    # planner). Allowed: "openai", "groq", "ollama"
    llm_provider: str = "ollama"

    # Model names: only the one matching llm_provider is used.
    llm_model_ollama: str = "llama3.2"
    llm_model_openai: str = "gpt-4.1-mini"
    llm_model_groq: str = "llama-3.3-70b-versatile"

    # Embeddings (always local HuggingFace, not affected by llm_provider)
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    # Connection details
    ollama_base_url: str = "http://localhost:11434/"
    groq_api_key: str = ""
    openai_api_key: str = ""

    # Database
    db_path: str = "assistant.db"

    # Conversation window handed to the core
    context_window_turns: int = 8

    # Dynamic agents
    agent_data_dir: str = "./agent_data"
    trusted_agent_modules: tuple[str, ...] = ("agent.plugins",)
    sandbox_capabilities: tuple[Capability, ...] = (
        Capability.FILESYSTEM,
        Capability.PATHS,
        Capability.STORE,
        Capability.CLOCK,
    )
    sandbox_execution_timeout: float = 30.0
    sandbox_max_input_bytes: int = 10 * 1024

    routing: RoutingThresholds = field(default_factory=RoutingThresholds)
    search: SearchThresholds = field(default_factory=SearchThresholds)

    @property
    def active_llm_model(self) -> str:
        """Return the model name for the currently active LLM provider."""
        if self.llm_provider == "openai":
            return self.llm_model_openai
        elif self.llm_provider == "groq":
            return self.llm_model_groq
        return self.llm_model_ollama

    @classmethod
    def from_env(cls, project_root: Optional[Path] = None) -> Settings:
        """Build Settings from environment variables (and a .env file)."""
        from dotenv import load_dotenv
        load_dotenv()

        root = project_root or Path(__file__).resolve().parent.parent.parent

        return cls(
            project_root=root,

            llm_provider=os.getenv("LLM_PROVIDER", "ollama"),
            llm_model_ollama=os.getenv("LLM_MODEL_OLLAMA", "llama3.2"),
            llm_model_openai=os.getenv("LLM_MODEL_OPENAI", "gpt-4.1-mini"),
            llm_model_groq=os.getenv("LLM_MODEL_GROQ", "llama-3.3-70b-versatile"),
            embedding_model=os.getenv(
                "EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2",
            ),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/"),
            groq_api_key=os.getenv("GROQ_API_KEY", ""),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),

            db_path=os.getenv("DB_PATH", str(root / "assistant.db")),
            context_window_turns=_env_int("CONTEXT_WINDOW_TURNS", 8),

            agent_data_dir=os.getenv("AGENT_DATA_DIR", str(root / "agent_data")),
            trusted_agent_modules=_env_list("TRUSTED_AGENT_MODULES", ("agent.plugins",)),
            sandbox_capabilities=tuple(
                Capability(c) for c in _env_list(
                    "SANDBOX_CAPABILITIES", ("filesystem", "paths", "store", "clock"),
                )
            ),
            sandbox_execution_timeout=_env_float("SANDBOX_EXECUTION_TIMEOUT", 30.0),

            routing=routing_from_env(),
            search=search_from_env(),
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())
