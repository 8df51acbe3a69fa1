"""
infrastructure.persistence.memory_repo - SQLite memory store.

Implements MemoryStorePort. Embeddings are stored as JSON text next to each
record; similarity search loads the candidate rows (optionally scoped to a
session) and ranks them in Python with cosine similarity.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

from domain.entities import MemoryRecord
from domain.similarity import cosine_similarity
from infrastructure.persistence.connection import AsyncSQLiteConnection

logger = logging.getLogger(__name__)

# Columns update() may touch; anything else is ignored
_UPDATABLE = {
    "source_text", "suggested_response", "primary_intent", "entities",
    "embedding", "screenshot", "extracted_text",
}
_JSON_COLUMNS = {"entities", "embedding"}


class SQLiteMemoryStore:
    """Async SQLite implementation of MemoryStorePort."""

    def __init__(self, connection: AsyncSQLiteConnection):
        self._conn = connection

    async def insert(self, record: MemoryRecord) -> int:
        now = datetime.now().isoformat()
        async with self._conn.acquire() as conn:
            cursor = await conn.execute(
                """INSERT INTO memories
                   (source_text, suggested_response, primary_intent, entities,
                    session_id, embedding, screenshot, extracted_text,
                    created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    record.source_text,
                    record.suggested_response,
                    record.primary_intent,
                    json.dumps(record.entities),
                    record.session_id,
                    json.dumps(record.embedding) if record.embedding else None,
                    record.screenshot,
                    record.extracted_text,
                    now,
                    now,
                ),
            )
            record.id = cursor.lastrowid
            record.created_at = record.updated_at = now
            return cursor.lastrowid

    async def get(self, memory_id: int) -> MemoryRecord | None:
        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(
                "SELECT * FROM memories WHERE id = ?", (memory_id,),
            )
            return self._row_to_entity(rows[0]) if rows else None

    async def query(
        self,
        text: Optional[str] = None,
        session_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[MemoryRecord]:
        """Substring search over source/extracted text, newest first."""
        clauses: list[str] = []
        params: list[Any] = []
        if text:
            clauses.append("(source_text LIKE ? OR extracted_text LIKE ?)")
            like = f"%{text}%"
            params.extend([like, like])
        if session_id:
            clauses.append("session_id = ?")
            params.append(session_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([limit, offset])

        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(
                f"""SELECT * FROM memories {where}
                    ORDER BY created_at DESC, id DESC
                    LIMIT ? OFFSET ?""",
                tuple(params),
            )
            return [self._row_to_entity(r) for r in rows]

    async def search_similar(
        self,
        embedding: list[float],
        limit: int = 20,
        min_similarity: float = 0.0,
        session_id: Optional[str] = None,
    ) -> list[tuple[MemoryRecord, float]]:
        """Rank embedded records by cosine similarity, best first."""
        sql = "SELECT * FROM memories WHERE embedding IS NOT NULL"
        params: tuple[Any, ...] = ()
        if session_id:
            sql += " AND session_id = ?"
            params = (session_id,)

        async with self._conn.acquire() as conn:
            rows = await conn.execute_fetchall(sql, params)

        scored: list[tuple[MemoryRecord, float]] = []
        for row in rows:
            record = self._row_to_entity(row)
            if not record.embedding:
                continue
            similarity = cosine_similarity(embedding, record.embedding)
            if similarity >= min_similarity:
                scored.append((record, similarity))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:limit]

    async def update(self, memory_id: int, fields: dict[str, Any]) -> bool:
        """Update whitelisted columns; returns False when the id is unknown."""
        changes = {k: v for k, v in fields.items() if k in _UPDATABLE}
        if not changes:
            return await self.get(memory_id) is not None

        assignments = []
        values: list[Any] = []
        for column, value in changes.items():
            assignments.append(f"{column} = ?")
            values.append(json.dumps(value) if column in _JSON_COLUMNS and value is not None else value)
        assignments.append("updated_at = ?")
        values.append(datetime.now().isoformat())
        values.append(memory_id)

        async with self._conn.acquire() as conn:
            cursor = await conn.execute(
                f"UPDATE memories SET {', '.join(assignments)} WHERE id = ?",
                tuple(values),
            )
            return cursor.rowcount > 0

    async def delete(self, memory_id: int) -> bool:
        """Hard delete; returns False (never raises) when nothing matched."""
        async with self._conn.acquire() as conn:
            cursor = await conn.execute(
                "DELETE FROM memories WHERE id = ?", (memory_id,),
            )
            deleted = cursor.rowcount > 0
        if not deleted:
            logger.debug("Delete of unknown memory id %s", memory_id)
        return deleted

    @staticmethod
    def _row_to_entity(row) -> MemoryRecord:
        return MemoryRecord(
            id=row["id"],
            source_text=row["source_text"] or "",
            suggested_response=row["suggested_response"] or "",
            primary_intent=row["primary_intent"] or "",
            entities=_loads(row["entities"], {}),
            session_id=row["session_id"],
            embedding=_loads(row["embedding"], None),
            screenshot=row["screenshot"],
            extracted_text=row["extracted_text"],
            created_at=row["created_at"] or "",
            updated_at=row["updated_at"] or "",
        )


def _loads(raw: Optional[str], default):
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Corrupt JSON column value ignored")
        return default
