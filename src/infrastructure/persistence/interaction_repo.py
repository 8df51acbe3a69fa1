"""
infrastructure.persistence.interaction_repo - SQLite orchestration log.

Written after every AgentOrchestrator.ask(), successful or not, so failed
plans remain diagnosable.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

from domain.entities import InteractionRecord
from infrastructure.persistence.connection import AsyncSQLiteConnection

logger = logging.getLogger(__name__)


class SQLiteInteractionRepository:
    """Async SQLite implementation of InteractionRepository."""

    def __init__(self, connection: AsyncSQLiteConnection):
        self._conn = connection

    async def save(self, record: InteractionRecord) -> int:
        now = datetime.now().isoformat()
        async with self._conn.acquire() as conn:
            cursor = await conn.execute(
                """INSERT INTO orchestration_interactions
                   (request_id, session_id, utterance, intent, plan, result,
                    success, execution_time_ms, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.request_id,
                    record.session_id,
                    record.utterance,
                    record.intent,
                    json.dumps(record.plan, default=str),
                    json.dumps(record.result, default=str),
                    1 if record.success else 0,
                    record.execution_time_ms,
                    now,
                ),
            )
            return cursor.lastrowid

    async def recent(self, limit: int = 20) -> list[InteractionRecord]:
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(
                """SELECT * FROM orchestration_interactions
                   ORDER BY id DESC LIMIT ?""",
                (limit,),
            )
            return [self._row_to_entity(r) for r in rows]

    def _row_to_entity(self, row) -> InteractionRecord:
        return InteractionRecord(
            id=row["id"],
            request_id=row["request_id"] or "",
            session_id=row["session_id"],
            utterance=row["utterance"] or "",
            intent=row["intent"] or "",
            plan=json.loads(row["plan"]) if row["plan"] else {},
            result=json.loads(row["result"]) if row["result"] else [],
            success=bool(row["success"]),
            execution_time_ms=row["execution_time_ms"] or 0,
            created_at=row["created_at"] or "",
        )
