"""
agent.loader - Resolve agent names to executable agents.

Resolution order:
    1. static registry (built-in agents)
    2. cached dynamic instance
    3. trusted AgentDefinition -> shape check -> capability check ->
       trusted-module check -> import plugin class -> construct with its
       CapabilityBundle -> bootstrap -> cache

Every check in step 3 runs before the plugin module is imported, so a
definition asking for more than the sandbox grants never gets to run any
code. A bootstrap failure is not cached; the next resolve() tries again.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from agent.dynamic import AgentDefinitionSchema, DynamicAgent, SandboxedAgent, plugin_config
from agent.registry import AgentRegistry
from agent.sandbox import build_bundle
from domain.exceptions import AgentLoadError, AgentNotFoundError, CapabilityError
from domain.models import AgentDefinition, Capability
from domain.ports import AgentDefinitionRepository, AgentPort, InferenceServicePort, MemoryStorePort

logger = logging.getLogger(__name__)


class DynamicAgentLoader:
    """AgentResolverPort implementation with a per-name load lock."""

    def __init__(
        self,
        registry: AgentRegistry,
        definitions: AgentDefinitionRepository,
        *,
        granted: tuple[Capability, ...],
        trusted_modules: tuple[str, ...],
        data_dir: str,
        store: Optional[MemoryStorePort] = None,
        inference: Optional[InferenceServicePort] = None,
        execution_timeout: float = 30.0,
        max_input_bytes: int = 10 * 1024,
    ):
        self._registry = registry
        self._definitions = definitions
        self._granted = frozenset(granted)
        self._trusted_modules = trusted_modules
        self._data_dir = Path(data_dir)
        self._store = store
        self._inference = inference
        self._execution_timeout = execution_timeout
        self._max_input_bytes = max_input_bytes

        self._cache: dict[str, SandboxedAgent] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def resolve(self, name: str) -> AgentPort:
        static = self._registry.find(name)
        if static is not None:
            return static
        if name in self._cache:
            return self._cache[name]

        lock = self._locks.setdefault(name, asyncio.Lock())
        async with lock:
            # Another caller may have finished the load while we waited
            if name in self._cache:
                return self._cache[name]

            definition = await self._definitions.get_by_name(name)
            if definition is None:
                raise AgentNotFoundError(f"No agent named '{name}'")

            agent = await self._load(definition)
            self._cache[name] = agent
            logger.info("Loaded dynamic agent '%s' (%s)", name, definition.entrypoint)
            return agent

    def evict(self, name: str) -> bool:
        evicted = self._cache.pop(name, None) is not None
        if evicted:
            logger.info("Evicted dynamic agent '%s'", name)
        return evicted

    async def catalog(self) -> list[dict[str, Any]]:
        """Describe every agent a plan may name: built-ins plus definitions."""
        described = [a.describe() for a in self._registry.all()]
        for definition in await self._definitions.list_all():
            if definition.name not in self._registry:
                described.append({
                    "name": definition.name,
                    "description": definition.description,
                    "actions": ["execute"],
                })
        return described

    def check_definition(self, definition: AgentDefinition) -> AgentDefinition:
        """Validate shape, grant and entrypoint without importing anything."""
        try:
            validated = AgentDefinitionSchema.model_validate(definition.to_dict()).to_definition()
        except ValidationError as e:
            raise AgentLoadError(f"Invalid definition for '{definition.name}': {e}") from e

        granted_names = {c.value for c in self._granted}
        denied = [c for c in validated.declared_capabilities if c not in granted_names]
        if denied:
            raise CapabilityError(
                f"Agent '{validated.name}' requests capabilities outside the sandbox: {denied}"
            )

        module_path = validated.entrypoint.split(":", 1)[0]
        if not any(
            module_path == prefix or module_path.startswith(prefix + ".")
            for prefix in self._trusted_modules
        ):
            raise AgentLoadError(
                f"Entrypoint module '{module_path}' is not under a trusted prefix"
            )
        return validated

    async def _load(self, definition: AgentDefinition) -> SandboxedAgent:
        definition = self.check_definition(definition)
        module_path, class_name = definition.entrypoint.split(":", 1)

        try:
            module = importlib.import_module(module_path)
            plugin_cls = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise AgentLoadError(f"Cannot import '{definition.entrypoint}': {e}") from e
        if not isinstance(plugin_cls, type) or not issubclass(plugin_cls, DynamicAgent):
            raise AgentLoadError(f"'{definition.entrypoint}' is not a DynamicAgent")

        granted = [Capability(c) for c in definition.declared_capabilities]
        data_dir = self._data_dir / definition.name
        bundle = build_bundle(
            granted, data_dir=data_dir, store=self._store, inference=self._inference,
        )
        plugin = plugin_cls(bundle)
        try:
            await plugin.bootstrap(plugin_config(definition, str(data_dir)), bundle)
        except Exception as e:
            logger.exception("Bootstrap failed for dynamic agent '%s'", definition.name)
            raise AgentLoadError(f"Bootstrap failed for '{definition.name}': {e}") from e

        return SandboxedAgent(
            definition, plugin,
            timeout=self._execution_timeout,
            max_input_bytes=self._max_input_bytes,
        )
