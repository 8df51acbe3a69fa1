"""
Memory agent tests against the real SQLite store.

Covers:
- store / retrieve / search round trip through aiosqlite
- malformed (serialized) content is rejected
- delete is idempotent and never raises
- update by id and by best match
- session scoping
- driver errors surface as RepositoryError
"""

import pytest

from conftest import BagOfWordsEmbedder
from agent.memory_agent import MemoryAgent
from domain.exceptions import AgentExecutionError, RepositoryError
from domain.models import ChainContext, ResponseKind
from infrastructure.persistence.connection import AsyncSQLiteConnection
from infrastructure.persistence.memory_repo import SQLiteMemoryStore
from infrastructure.persistence.migrations import run_migrations


async def _setup(tmp_path):
    connection = AsyncSQLiteConnection(str(tmp_path / "memories.db"))
    await run_migrations(connection)
    store = SQLiteMemoryStore(connection)
    return store, MemoryAgent(store, BagOfWordsEmbedder())


def _ctx(session_id="s1", utterance=""):
    return ChainContext(utterance=utterance, session_id=session_id)


class TestMemoryAgent:

    @pytest.mark.asyncio
    async def test_store_then_retrieve(self, tmp_path):
        store, agent = await _setup(tmp_path)

        stored = await agent.execute("store", {"text": "Gym locker code is 4521"}, _ctx())
        assert stored.ok
        memory_id = stored.data["memory_id"]

        found = await agent.execute("retrieve", {"query": "gym locker code"}, _ctx())
        assert found.kind == ResponseKind.DATA
        assert found.data[0]["id"] == memory_id
        assert "Gym locker code is 4521" in found.text

        record = await store.get(memory_id)
        assert record.session_id == "s1"
        assert record.embedding

    @pytest.mark.asyncio
    async def test_store_uses_utterance_when_no_text(self, tmp_path):
        store, agent = await _setup(tmp_path)
        await agent.execute("store", {}, _ctx(utterance="Parked on level 3"))
        records = await store.query()
        assert [r.source_text for r in records] == ["Parked on level 3"]

    @pytest.mark.asyncio
    async def test_serialized_structure_rejected(self, tmp_path):
        store, agent = await _setup(tmp_path)
        envelope = await agent.execute(
            "store", {"text": '{"primary_intent": "memory_store", "confidence": 0.9}'}, _ctx(),
        )
        assert envelope.kind == ResponseKind.ERROR
        assert await store.query() == []

    @pytest.mark.asyncio
    async def test_delete_twice(self, tmp_path):
        store, agent = await _setup(tmp_path)
        stored = await agent.execute("store", {"text": "temporary note"}, _ctx())
        memory_id = stored.data["memory_id"]

        first = await agent.execute("delete", {"memory_id": memory_id}, _ctx())
        second = await agent.execute("delete", {"memory_id": memory_id}, _ctx())

        assert first.ok and first.data["deleted"]
        assert second.kind == ResponseKind.ERROR
        assert second.error == "Memory not found"
        assert await store.get(memory_id) is None

    @pytest.mark.asyncio
    async def test_delete_by_best_match(self, tmp_path):
        store, agent = await _setup(tmp_path)
        await agent.execute("store", {"text": "dentist appointment friday"}, _ctx())
        await agent.execute("store", {"text": "buy oat milk"}, _ctx())

        envelope = await agent.execute("delete", {"query": "forget the dentist appointment"}, _ctx())

        assert envelope.ok
        assert [r.source_text for r in await store.query()] == ["buy oat milk"]

    @pytest.mark.asyncio
    async def test_delete_without_match_is_not_found(self, tmp_path):
        _, agent = await _setup(tmp_path)
        envelope = await agent.execute("delete", {"query": "zebra"}, _ctx())
        assert envelope.error == "Memory not found"

    @pytest.mark.asyncio
    async def test_update_by_id(self, tmp_path):
        store, agent = await _setup(tmp_path)
        stored = await agent.execute("store", {"text": "meeting on monday"}, _ctx())
        memory_id = stored.data["memory_id"]

        updated = await agent.execute(
            "update", {"memory_id": memory_id, "text": "meeting on friday"}, _ctx(),
        )

        assert updated.ok
        assert (await store.get(memory_id)).source_text == "meeting on friday"

    @pytest.mark.asyncio
    async def test_update_unknown_id(self, tmp_path):
        _, agent = await _setup(tmp_path)
        envelope = await agent.execute("update", {"memory_id": 999, "text": "x"}, _ctx())
        assert envelope.error == "Memory not found"

    @pytest.mark.asyncio
    async def test_search_nothing_is_empty(self, tmp_path):
        _, agent = await _setup(tmp_path)
        envelope = await agent.execute("search", {"query": "anything"}, _ctx())
        assert envelope.kind == ResponseKind.EMPTY

    @pytest.mark.asyncio
    async def test_session_scope(self, tmp_path):
        _, agent = await _setup(tmp_path)
        await agent.execute("store", {"text": "project deadline friday"}, _ctx("s1"))
        await agent.execute("store", {"text": "project deadline monday"}, _ctx("s2"))

        scoped = await agent.execute(
            "search", {"query": "project deadline", "scope": "session"}, _ctx("s2"),
        )
        everywhere = await agent.execute("search", {"query": "project deadline"}, _ctx("s2"))

        assert [m["source_text"] for m in scoped.data] == ["project deadline monday"]
        assert len(everywhere.data) == 2

    @pytest.mark.asyncio
    async def test_unknown_action_and_invalid_input(self, tmp_path):
        _, agent = await _setup(tmp_path)
        unknown = await agent.execute("teleport", {}, _ctx())
        assert unknown.kind == ResponseKind.ERROR
        with pytest.raises(AgentExecutionError):
            await agent.execute("search", {"limit": 0}, _ctx())

    @pytest.mark.asyncio
    async def test_store_query_pagination(self, tmp_path):
        store, agent = await _setup(tmp_path)
        for i in range(5):
            await agent.execute("store", {"text": f"note number {i}"}, _ctx())

        page = await store.query(limit=2, offset=1)
        assert [r.source_text for r in page] == ["note number 3", "note number 2"]
        assert [r.source_text for r in await store.query(text="number 4")] == ["note number 4"]

    @pytest.mark.asyncio
    async def test_driver_error_is_repository_error(self, tmp_path):
        store = SQLiteMemoryStore(AsyncSQLiteConnection(str(tmp_path / "unmigrated.db")))
        with pytest.raises(RepositoryError, match="no such table"):
            await store.query()
