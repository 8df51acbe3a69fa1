"""
agent.base - Base agent interface.

All statically registered agents inherit from BaseAgent and return a
ResponseEnvelope. Input is validated against the agent's Pydantic schema.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from domain.exceptions import AgentExecutionError
from domain.models import ChainContext, ResponseEnvelope


class BaseAgent(ABC):
    """Abstract base for all built-in agents."""

    name: str
    description: str
    actions: tuple[str, ...] = ("execute",)

    @abstractmethod
    async def execute(
        self, action: str, params: dict[str, Any], ctx: ChainContext,
    ) -> ResponseEnvelope:
        """Run one action with the accumulated chain context."""
        ...

    def get_schema(self) -> Optional[type[BaseModel]]:
        """Return the Pydantic schema for this agent's input, if any."""
        return None

    def parse(self, params: dict[str, Any]) -> Any:
        """Validate params against get_schema(); raises AgentExecutionError."""
        schema = self.get_schema()
        if schema is None:
            return params
        try:
            return schema.model_validate(params)
        except ValidationError as e:
            raise AgentExecutionError(f"Invalid input for '{self.name}': {e}") from e

    def describe(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "actions": list(self.actions)}
