"""
infrastructure.persistence.migrations - Database schema creation.

Called once at startup by the factory. Every statement is idempotent.
"""

from __future__ import annotations

import logging

from infrastructure.persistence.connection import AsyncSQLiteConnection

logger = logging.getLogger(__name__)

_TABLES = [
    """CREATE TABLE IF NOT EXISTS memories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_text TEXT NOT NULL,
        suggested_response TEXT,
        primary_intent TEXT,
        entities TEXT,
        session_id TEXT,
        embedding TEXT,
        screenshot TEXT,
        extracted_text TEXT,
        created_at TEXT,
        updated_at TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS intent_classifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id TEXT,
        session_id TEXT,
        primary_intent TEXT,
        confidence REAL,
        source_text TEXT,
        payload TEXT,
        created_at TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS orchestration_interactions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        request_id TEXT,
        session_id TEXT,
        utterance TEXT,
        intent TEXT,
        plan TEXT,
        result TEXT,
        success INTEGER,
        execution_time_ms INTEGER,
        created_at TEXT
    )""",
    """CREATE TABLE IF NOT EXISTS agent_definitions (
        name TEXT PRIMARY KEY,
        entrypoint TEXT NOT NULL,
        description TEXT,
        input_schema TEXT,
        capabilities TEXT,
        version TEXT,
        created_at TEXT,
        updated_at TEXT
    )""",
]

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_memories_session ON memories(session_id)",
    "CREATE INDEX IF NOT EXISTS idx_memories_created ON memories(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_interactions_created ON orchestration_interactions(created_at)",
]


async def run_migrations(connection: AsyncSQLiteConnection) -> None:
    """Create all tables and indexes if they do not exist yet."""
    async with connection.acquire() as conn:
        for ddl in _TABLES + _INDEXES:
            await conn.execute(ddl)
    logger.info("Migrations applied (%d tables)", len(_TABLES))
