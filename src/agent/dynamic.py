"""
agent.dynamic - Plugin interface for late-bound agents.

A dynamic agent is a trusted Python class (subclass of DynamicAgent) that
lives under one of the configured trusted module prefixes and is named by an
AgentDefinition entrypoint "package.module:ClassName". It is constructed
with its CapabilityBundle, bootstrapped once, then executed through
SandboxedAgent, which sanitizes input and bounds every call.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from agent.sandbox import CapabilityBundle, sanitize_input
from domain.exceptions import AgentExecutionError
from domain.models import AgentDefinition, ChainContext, ResponseEnvelope

logger = logging.getLogger(__name__)

_ENTRYPOINT = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$")


class DynamicAgent(ABC):
    """Base class every plugin agent subclasses."""

    def __init__(self, capabilities: CapabilityBundle):
        self.capabilities = capabilities

    async def bootstrap(self, config: dict[str, Any], capabilities: CapabilityBundle) -> None:
        """One-time setup after construction. Raising here prevents caching."""

    @abstractmethod
    async def execute(self, input: dict[str, Any], context: dict[str, Any]) -> Any:
        """Return a ResponseEnvelope, a dict (data), a str (text) or None."""
        ...


class AgentDefinitionSchema(BaseModel):
    """Shape check for definitions before anything is imported."""

    name: str = Field(min_length=1, max_length=64, pattern=r"^[a-z][a-z0-9_\-]*$")
    entrypoint: str
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=dict)
    declared_capabilities: list[str] = Field(default_factory=list)
    version: str = "1.0.0"

    @field_validator("entrypoint")
    @classmethod
    def check_entrypoint(cls, v: str) -> str:
        if not _ENTRYPOINT.match(v):
            raise ValueError("entrypoint must look like 'package.module:ClassName'")
        return v

    def to_definition(self) -> AgentDefinition:
        return AgentDefinition(
            name=self.name,
            entrypoint=self.entrypoint,
            description=self.description,
            input_schema=self.input_schema,
            declared_capabilities=tuple(self.declared_capabilities),
            version=self.version,
        )


def to_envelope(result: Any) -> ResponseEnvelope:
    if isinstance(result, ResponseEnvelope):
        return result
    if result is None:
        return ResponseEnvelope.empty()
    if isinstance(result, str):
        return ResponseEnvelope.of_text(result)
    return ResponseEnvelope.of_data(result)


class SandboxedAgent:
    """AgentPort wrapper around a bootstrapped DynamicAgent."""

    def __init__(
        self,
        definition: AgentDefinition,
        plugin: DynamicAgent,
        timeout: float = 30.0,
        max_input_bytes: int = 10 * 1024,
    ):
        self.name = definition.name
        self.definition = definition
        self._plugin = plugin
        self._timeout = timeout
        self._max_input_bytes = max_input_bytes

    async def execute(
        self, action: str, params: dict[str, Any], ctx: ChainContext,
    ) -> ResponseEnvelope:
        try:
            cleaned = sanitize_input({**params, "action": action}, self._max_input_bytes)
        except AgentExecutionError as e:
            return ResponseEnvelope.failure(str(e))

        try:
            result = await asyncio.wait_for(
                self._plugin.execute(cleaned, ctx.summary()), timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Dynamic agent '%s' timed out after %.0fs", self.name, self._timeout)
            return ResponseEnvelope.failure(f"Agent '{self.name}' timed out")
        except Exception as e:
            logger.exception("Dynamic agent '%s' failed", self.name)
            return ResponseEnvelope.failure(f"Agent '{self.name}' failed: {e}")
        return to_envelope(result)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.definition.description,
            "actions": ["execute"],
        }


def plugin_config(definition: AgentDefinition, data_dir: Optional[str] = None) -> dict[str, Any]:
    return {
        "name": definition.name,
        "version": definition.version,
        "input_schema": definition.input_schema,
        "data_dir": data_dir,
    }
