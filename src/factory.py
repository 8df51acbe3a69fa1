"""
factory - Composition root for the desk assistant core.

ALL dependency wiring happens here. No other module constructs its own
dependencies. Adapters (CLI, REST, WebSocket) call this factory to get
fully configured services.

Usage:
    from factory import ServiceFactory
    from infrastructure.config import Settings

    config = Settings.from_env()
    factory = ServiceFactory(config)
    await factory.initialize()  # one-time startup

    service = factory.create_assistant_service()
    response = await service.handle(utterance)

    await factory.shutdown()    # waits for background orchestration
"""

from __future__ import annotations

import logging
from typing import Optional

from infrastructure.config import Settings
from infrastructure.llm.embeddings import HuggingFaceEmbedder
from infrastructure.llm.inference_service import LangChainInferenceService
from infrastructure.llm.intent_classifier import ConversationalQueryClassifier, ModelIntentClassifier
from infrastructure.notifications.hub import NotificationHub
from infrastructure.persistence.agent_definition_repo import SQLiteAgentDefinitionRepository
from infrastructure.persistence.classification_repo import SQLiteClassificationRepository
from infrastructure.persistence.connection import AsyncSQLiteConnection
from infrastructure.persistence.interaction_repo import SQLiteInteractionRepository
from infrastructure.persistence.memory_repo import SQLiteMemoryStore
from infrastructure.persistence.migrations import run_migrations
from application.routing.entities import EntityExtractor
from application.routing.override import ConversationalOverride
from application.routing.router import IntentRouter
from application.routing.structural import StructuralClassifier
from application.services.assistant import AssistantService
from application.services.background import BackgroundOrchestrator
from application.services.orchestrator import AgentOrchestrator
from application.services.planning import PlanBuilder
from application.services.staged_search import StagedSemanticSearch
from application.services.storage_intent import StorageIntentDetector
from agent.answer_agent import AnswerAgent
from agent.dynamic import AgentDefinitionSchema
from agent.loader import DynamicAgentLoader
from agent.memory_agent import MemoryAgent
from agent.planner import PlannerAgent
from agent.plugins import memory_digest
from agent.registry import AgentRegistry
from agent.screen_capture import ScreenCaptureAgent
from domain.models import AgentDefinition
from domain.ports import EmbedderPort, InferenceServicePort, ScreenCapturePort

logger = logging.getLogger(__name__)


class ServiceFactory:
    """Composition root: wires all dependencies together.

    Call initialize() once at startup, then create services as needed.
    The model-backed ports can be injected (tests pass fakes); otherwise
    they are built from the configured provider.
    """

    def __init__(
        self,
        config: Settings,
        *,
        inference: Optional[InferenceServicePort] = None,
        embedder: Optional[EmbedderPort] = None,
        screen_capture: Optional[ScreenCapturePort] = None,
    ):
        self._config = config
        self._connection = AsyncSQLiteConnection(config.db_path)

        self._inference = inference or LangChainInferenceService(
            provider=config.llm_provider,
            model=config.active_llm_model,
            ollama_base_url=config.ollama_base_url,
            openai_api_key=config.openai_api_key,
            groq_api_key=config.groq_api_key,
        )
        self._embedder = embedder or HuggingFaceEmbedder(config.embedding_model)
        self._screen_capture = screen_capture

        self._memory_store = SQLiteMemoryStore(self._connection)
        self._definitions = SQLiteAgentDefinitionRepository(self._connection)
        self._notifications = NotificationHub()

        self._registry = AgentRegistry()
        self._loader = DynamicAgentLoader(
            self._registry,
            self._definitions,
            granted=config.sandbox_capabilities,
            trusted_modules=config.trusted_agent_modules,
            data_dir=config.agent_data_dir,
            store=self._memory_store,
            inference=self._inference,
            execution_timeout=config.sandbox_execution_timeout,
            max_input_bytes=config.sandbox_max_input_bytes,
        )

        self._background: Optional[BackgroundOrchestrator] = None
        self._assistant: Optional[AssistantService] = None
        self._initialized = False

    async def initialize(self) -> None:
        """One-time startup: run migrations, register agents.

        Must be called before creating services.
        """
        logger.info("Initializing ServiceFactory...")

        await run_migrations(self._connection)
        logger.info("Database migrations complete")

        self._registry.register(MemoryAgent(self._memory_store, self._embedder))
        self._registry.register(ScreenCaptureAgent(self._screen_capture))
        self._registry.register(AnswerAgent(self._inference))
        self._registry.register(
            PlannerAgent(self._inference, timeout_ms=self._config.routing.classifier_timeout_ms),
        )
        logger.info("Registered agents: %s", ", ".join(self._registry.names()))

        await self.register_agent_definition(
            AgentDefinitionSchema.model_validate(memory_digest.DEFINITION).to_definition(),
        )

        self._initialized = True
        logger.info("ServiceFactory ready")

    async def shutdown(self) -> None:
        if self._background is not None:
            await self._background.drain()
        logger.info("ServiceFactory shut down")

    # ------------------------------------------------------------------
    # Service creation
    # ------------------------------------------------------------------

    def create_router(self) -> IntentRouter:
        thresholds = self._config.routing
        return IntentRouter(
            thresholds=thresholds,
            structural=StructuralClassifier(thresholds),
            extractor=EntityExtractor(),
            model_classifier=ModelIntentClassifier(
                self._inference, timeout_ms=thresholds.classifier_timeout_ms,
            ),
            override=ConversationalOverride(
                ConversationalQueryClassifier(
                    self._inference, timeout_ms=thresholds.override_timeout_ms,
                ),
                timeout_ms=thresholds.override_timeout_ms,
            ),
        )

    def create_orchestrator(self) -> AgentOrchestrator:
        self._ensure_initialized()
        return AgentOrchestrator(
            resolver=self._loader,
            plans=PlanBuilder(),
            interactions=SQLiteInteractionRepository(self._connection),
            planner_confidence=self._config.routing.planner_confidence,
        )

    def create_background_orchestrator(self) -> BackgroundOrchestrator:
        """Shared instance: in-flight tasks must be drainable at shutdown."""
        if self._background is None:
            self._background = BackgroundOrchestrator(
                self.create_orchestrator(), self._notifications,
            )
        return self._background

    def create_assistant_service(self) -> AssistantService:
        self._ensure_initialized()
        if self._assistant is None:
            self._assistant = AssistantService(
                router=self.create_router(),
                storage_detector=StorageIntentDetector(
                    self._embedder, self._config.routing.storage_intent_threshold,
                ),
                staged_search=StagedSemanticSearch(
                    self._inference, self._embedder, self._memory_store, self._config.search,
                ),
                scheduler=self.create_background_orchestrator(),
                classifications=SQLiteClassificationRepository(self._connection),
                fallback_confidence=self._config.routing.fallback_confidence,
            )
        return self._assistant

    async def register_agent_definition(self, definition: AgentDefinition) -> AgentDefinition:
        """Validate (no import) and store a trusted definition.

        Raises AgentLoadError / CapabilityError for definitions the sandbox
        would refuse to load. A re-registration evicts the cached instance.
        """
        checked = self._loader.check_definition(definition)
        await self._definitions.save(checked)
        self._loader.evict(checked.name)
        return checked

    # ------------------------------------------------------------------
    # Shared resources for adapters
    # ------------------------------------------------------------------

    @property
    def config(self) -> Settings:
        return self._config

    @property
    def notifications(self) -> NotificationHub:
        return self._notifications

    @property
    def memory_store(self) -> SQLiteMemoryStore:
        return self._memory_store

    @property
    def agent_definitions(self) -> SQLiteAgentDefinitionRepository:
        return self._definitions

    @property
    def agent_loader(self) -> DynamicAgentLoader:
        return self._loader

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError("ServiceFactory.initialize() must be called first")
