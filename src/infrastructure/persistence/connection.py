"""
infrastructure.persistence.connection - Async SQLite connection manager.

The store connection is one of the two pieces of shared mutable state in the
core (the other is the dynamic-agent cache). Each operation acquires its own
short-lived aiosqlite connection, so concurrent requests never share a
cursor or a transaction. Background tasks may write while a request reads,
so every connection waits on a locked database instead of failing at once.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from domain.exceptions import RepositoryError

logger = logging.getLogger(__name__)


class AsyncSQLiteConnection:
    """Async SQLite connection provider with auto-commit/rollback."""

    def __init__(self, db_path: str, busy_timeout: float = 5.0):
        self._db_path = db_path
        self._busy_timeout = busy_timeout
        if db_path != ":memory:":
            Path(db_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)

    @property
    def db_path(self) -> str:
        return self._db_path

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Yield a connection with Row access.

        Commits on success, rolls back on exception. Driver errors surface
        as RepositoryError; anything else raised by the caller propagates
        unchanged.
        """
        try:
            async with aiosqlite.connect(self._db_path, timeout=self._busy_timeout) as conn:
                conn.row_factory = aiosqlite.Row
                try:
                    yield conn
                    await conn.commit()
                except Exception:
                    await conn.rollback()
                    logger.exception("Database operation failed, transaction rolled back.")
                    raise
        except aiosqlite.Error as e:
            raise RepositoryError(f"SQLite operation failed: {e}") from e
