"""
infrastructure.persistence.classification_repo - SQLite record of what was understood.

One row per routed utterance, holding the full IntentClassificationPayload as
JSON, so routing can be audited independently of execution.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime

from domain.entities import ClassificationRecord
from infrastructure.persistence.connection import AsyncSQLiteConnection

logger = logging.getLogger(__name__)


class SQLiteClassificationRepository:
    """Async SQLite implementation of ClassificationRepository."""

    def __init__(self, connection: AsyncSQLiteConnection):
        self._conn = connection

    async def save(self, record: ClassificationRecord) -> int:
        now = datetime.now().isoformat()
        async with self._conn.acquire() as conn:
            cursor = await conn.execute(
                """INSERT INTO intent_classifications
                   (request_id, session_id, primary_intent, confidence,
                    source_text, payload, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (record.request_id, record.session_id, record.primary_intent,
                 record.confidence, record.source_text,
                 json.dumps(record.payload), now),
            )
            return cursor.lastrowid

    async def recent(self, limit: int = 20) -> list[ClassificationRecord]:
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(
                """SELECT * FROM intent_classifications
                   ORDER BY id DESC LIMIT ?""",
                (limit,),
            )
            return [self._row_to_entity(r) for r in rows]

    def _row_to_entity(self, row) -> ClassificationRecord:
        return ClassificationRecord(
            id=row["id"],
            request_id=row["request_id"] or "",
            session_id=row["session_id"],
            primary_intent=row["primary_intent"] or "",
            confidence=row["confidence"] or 0.0,
            source_text=row["source_text"] or "",
            payload=json.loads(row["payload"]) if row["payload"] else {},
            created_at=row["created_at"] or "",
        )
