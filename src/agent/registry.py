"""
agent.registry - Static agent registration and lookup.

Built-in agents are registered once by the factory; the dynamic loader
always consults this registry first.
"""

from __future__ import annotations

import logging

from agent.base import BaseAgent
from domain.exceptions import AgentNotFoundError

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Manages built-in agent registration."""

    def __init__(self):
        self._agents: dict[str, BaseAgent] = {}

    def register(self, agent: BaseAgent) -> None:
        """Register an agent by its name."""
        self._agents[agent.name] = agent
        logger.debug("Registered agent: %s", agent.name)

    def get(self, name: str) -> BaseAgent:
        if name not in self._agents:
            raise AgentNotFoundError(f"Agent '{name}' not registered")
        return self._agents[name]

    def find(self, name: str) -> BaseAgent | None:
        return self._agents.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._agents

    def all(self) -> list[BaseAgent]:
        return list(self._agents.values())

    def names(self) -> list[str]:
        return list(self._agents.keys())
