"""
infrastructure.persistence.agent_definition_repo - Trusted agent definitions.

Definitions only name a plugin entrypoint and its declared capabilities;
no agent code is ever stored here.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

from domain.models import AgentDefinition
from infrastructure.persistence.connection import AsyncSQLiteConnection

logger = logging.getLogger(__name__)


class SQLiteAgentDefinitionRepository:
    """Async SQLite implementation of AgentDefinitionRepository."""

    def __init__(self, connection: AsyncSQLiteConnection):
        self._conn = connection

    async def get_by_name(self, name: str) -> AgentDefinition | None:
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT * FROM agent_definitions WHERE name = ?", (name,),
            )
            return self._row_to_entity(rows[0]) if rows else None

    async def save(self, definition: AgentDefinition) -> None:
        """Insert or replace a definition by name."""
        now = datetime.now().isoformat()
        async with self._conn.acquire() as conn:
            await conn.execute(
                """INSERT INTO agent_definitions
                   (name, entrypoint, description, input_schema, capabilities,
                    version, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(name) DO UPDATE SET
                     entrypoint = excluded.entrypoint,
                     description = excluded.description,
                     input_schema = excluded.input_schema,
                     capabilities = excluded.capabilities,
                     version = excluded.version,
                     updated_at = excluded.updated_at""",
                (
                    definition.name,
                    definition.entrypoint,
                    definition.description,
                    json.dumps(definition.input_schema),
                    json.dumps(list(definition.declared_capabilities)),
                    definition.version,
                    now,
                    now,
                ),
            )
        logger.info("Saved agent definition '%s' (%s)", definition.name, definition.entrypoint)

    async def list_all(self) -> list[AgentDefinition]:
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT * FROM agent_definitions ORDER BY name",
            )
            return [self._row_to_entity(r) for r in rows]

    def _row_to_entity(self, row) -> AgentDefinition:
        return AgentDefinition(
            name=row["name"],
            entrypoint=row["entrypoint"],
            description=row["description"] or "",
            input_schema=json.loads(row["input_schema"] or "{}"),
            declared_capabilities=tuple(json.loads(row["capabilities"] or "[]")),
            version=row["version"] or "1.0.0",
        )
