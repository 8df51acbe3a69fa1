"""
agent.plugins.memory_digest - Summarise recent memories into a digest file.

Ships as the reference dynamic agent. Declares store, clock and filesystem;
the digest is written inside the agent's own data directory.
"""

from __future__ import annotations

import logging
from typing import Any

from agent.dynamic import DynamicAgent
from agent.sandbox import CapabilityBundle
from domain.models import ResponseEnvelope

logger = logging.getLogger(__name__)

DEFINITION = {
    "name": "memory_digest",
    "entrypoint": "agent.plugins.memory_digest:MemoryDigestAgent",
    "description": "Writes a short digest of the most recent memories.",
    "input_schema": {"limit": "int (1-50, default 10)", "session_only": "bool"},
    "declared_capabilities": ["store", "clock", "filesystem"],
    "version": "1.0.0",
}


class MemoryDigestAgent(DynamicAgent):

    async def bootstrap(self, config: dict[str, Any], capabilities: CapabilityBundle) -> None:
        self._name = config.get("name", "memory_digest")
        capabilities.filesystem.write_text("digests/.keep", "")

    async def execute(self, input: dict[str, Any], context: dict[str, Any]) -> ResponseEnvelope:
        try:
            limit = max(1, min(50, int(input.get("limit", 10))))
        except (TypeError, ValueError):
            limit = 10
        session_id = context.get("session_id") if input.get("session_only") else None

        records = await self.capabilities.store.query(session_id=session_id, limit=limit)
        if not records:
            return ResponseEnvelope.of_text("There is nothing to summarise yet.", data={"count": 0})

        clock = self.capabilities.clock
        lines = [f"# Memory digest ({clock.iso()})", ""]
        lines.extend(f"- {r.source_text}" for r in records)
        filename = f"digests/{clock.now():%Y%m%d-%H%M%S}.md"
        self.capabilities.filesystem.write_text(filename, "\n".join(lines) + "\n")
        logger.info("%s wrote %d memories to %s", self._name, len(records), filename)

        return ResponseEnvelope.of_data(
            {"count": len(records), "file": filename},
            text=f"Summarised your last {len(records)} memories.",
        )
