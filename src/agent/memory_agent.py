"""
agent.memory_agent - Long-term memory agent.

Owns every read and write of MemoryRecords that happens during plan
execution. Actions:

    store          persist an utterance the user wants remembered
    store_context  persist any other routed utterance (plus a screenshot
                   captured earlier in the same plan, if there is one)
    retrieve       semantic (or substring) lookup, formatted for display
    search         same lookup, data only
    update         replace the text of one memory
    delete         remove one memory; a missing id yields a "not found"
                   envelope instead of raising

Text that is actually serialized structure (a JSON object or array) is
rejected on store, so classifier output never ends up in memory.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from agent.base import BaseAgent
from domain.entities import MemoryRecord
from domain.exceptions import EmbeddingError, MalformedContentError
from domain.models import ChainContext, ResponseEnvelope, looks_like_serialized_structure
from domain.ports import EmbedderPort, MemoryStorePort

logger = logging.getLogger(__name__)

# Below this similarity an update/delete without an id refuses to guess
_MATCH_FLOOR = 0.35


class MemoryAgentInput(BaseModel):
    """Input schema for the memory agent."""

    text: Optional[str] = Field(default=None, description="Text to store, or the new text on update.")
    query: Optional[str] = Field(default=None, description="What to look for on retrieve/search.")
    memory_id: Optional[int] = Field(default=None, description="Target record for update/delete.")
    session_id: Optional[str] = Field(default=None, description="Session that owns the memory.")
    payload: dict[str, Any] = Field(
        default_factory=dict, description="IntentClassificationPayload as a dict.",
    )
    limit: int = Field(default=5, ge=1, le=50)
    offset: int = Field(default=0, ge=0)
    min_similarity: float = Field(default=0.2, ge=0.0, le=1.0)
    scope: str = Field(default="all", description="\"session\" limits reads to session_id.")


class MemoryAgent(BaseAgent):
    name = "memory"
    description = "Stores, finds, updates and deletes the user's memories."
    actions = ("store", "store_context", "retrieve", "search", "update", "delete")

    def __init__(self, store: MemoryStorePort, embedder: Optional[EmbedderPort] = None):
        self._store = store
        self._embedder = embedder

    def get_schema(self) -> type[BaseModel]:
        return MemoryAgentInput

    async def execute(
        self, action: str, params: dict[str, Any], ctx: ChainContext,
    ) -> ResponseEnvelope:
        args: MemoryAgentInput = self.parse(params)
        if args.session_id is None:
            args.session_id = ctx.session_id

        handlers = {
            "store": self._store_memory,
            "store_context": self._store_context,
            "retrieve": self._retrieve,
            "search": self._search,
            "update": self._update,
            "delete": self._delete,
        }
        handler = handlers.get(action)
        if handler is None:
            return ResponseEnvelope.failure(f"Unknown memory action '{action}'")

        try:
            return await handler(args, ctx)
        except MalformedContentError as e:
            logger.warning("Rejected memory write: %s", e)
            return ResponseEnvelope.failure(str(e))

    # -- writes ---------------------------------------------------------------

    async def _store_memory(self, args: MemoryAgentInput, ctx: ChainContext) -> ResponseEnvelope:
        text = (args.text or ctx.utterance).strip()
        if not text:
            return ResponseEnvelope.failure("Nothing to store")
        record = await self._insert(text, args, ctx)
        logger.info("Stored memory %s: %s", record.id, text[:60])
        return ResponseEnvelope.of_data(
            {"memory_id": record.id, "source_text": record.source_text},
            text="Got it, I'll remember that.",
        )

    async def _store_context(self, args: MemoryAgentInput, ctx: ChainContext) -> ResponseEnvelope:
        text = (args.text or ctx.utterance).strip()
        capture = ctx.output_of("screen_capture")
        capture_data = capture.data if capture is not None and isinstance(capture.data, dict) else {}
        if not text and not capture_data:
            return ResponseEnvelope.empty()

        record = await self._insert(
            text, args, ctx,
            screenshot=capture_data.get("image_base64"),
            extracted_text=capture_data.get("extracted_text"),
        )
        logger.debug("Stored context memory %s", record.id)
        if capture_data:
            return ResponseEnvelope.of_data(
                {"memory_id": record.id, "screenshot": True}, text="Screenshot saved.",
            )
        return ResponseEnvelope.of_data({"memory_id": record.id})

    async def _insert(
        self,
        text: str,
        args: MemoryAgentInput,
        ctx: ChainContext,
        screenshot: Optional[str] = None,
        extracted_text: Optional[str] = None,
    ) -> MemoryRecord:
        if looks_like_serialized_structure(text):
            raise MalformedContentError("Refusing to store serialized structure as a memory")

        payload = args.payload or (ctx.payload.to_dict() if ctx.payload else {})
        record = MemoryRecord(
            source_text=text,
            suggested_response=payload.get("suggested_response") or "",
            primary_intent=payload.get("primary_intent") or "",
            entities=payload.get("entities") or {},
            session_id=args.session_id,
            embedding=await self._embed(text) if text else None,
            screenshot=screenshot,
            extracted_text=extracted_text,
        )
        await self._store.insert(record)
        return record

    async def _update(self, args: MemoryAgentInput, ctx: ChainContext) -> ResponseEnvelope:
        text = (args.text or "").strip()
        if not text:
            return ResponseEnvelope.failure("No new text given for update")
        if looks_like_serialized_structure(text):
            raise MalformedContentError("Refusing to store serialized structure as a memory")

        memory_id = args.memory_id or await self._best_match_id(args.query or text, args.session_id)
        if memory_id is None:
            return ResponseEnvelope.failure("Memory not found")

        fields: dict[str, Any] = {"source_text": text}
        embedding = await self._embed(text)
        if embedding is not None:
            fields["embedding"] = embedding
        if not await self._store.update(memory_id, fields):
            return ResponseEnvelope.failure("Memory not found", data={"memory_id": memory_id})
        return ResponseEnvelope.of_data({"memory_id": memory_id}, text="Updated.")

    async def _delete(self, args: MemoryAgentInput, ctx: ChainContext) -> ResponseEnvelope:
        memory_id = args.memory_id
        if memory_id is None and (args.query or args.text):
            memory_id = await self._best_match_id(args.query or args.text, args.session_id)
        if memory_id is None:
            return ResponseEnvelope.failure("Memory not found")

        if not await self._store.delete(memory_id):
            return ResponseEnvelope.failure("Memory not found", data={"memory_id": memory_id})
        logger.info("Deleted memory %s", memory_id)
        return ResponseEnvelope.of_data({"memory_id": memory_id, "deleted": True}, text="Forgotten.")

    # -- reads ----------------------------------------------------------------

    async def _search(self, args: MemoryAgentInput, ctx: ChainContext) -> ResponseEnvelope:
        matches = await self._find(args, ctx)
        if not matches:
            return ResponseEnvelope.empty()
        return ResponseEnvelope.of_data([_as_dict(r, s) for r, s in matches])

    async def _retrieve(self, args: MemoryAgentInput, ctx: ChainContext) -> ResponseEnvelope:
        matches = await self._find(args, ctx)
        if not matches:
            return ResponseEnvelope.of_text("I couldn't find anything about that.", data=[])
        lines = [f"- {record.source_text}" for record, _ in matches]
        return ResponseEnvelope.of_data(
            [_as_dict(r, s) for r, s in matches],
            text="Here's what I found:\n" + "\n".join(lines),
        )

    async def _find(
        self, args: MemoryAgentInput, ctx: ChainContext,
    ) -> list[tuple[MemoryRecord, float]]:
        query = (args.query or args.text or ctx.utterance).strip()
        vector = await self._embed(query) if query else None
        if vector is not None:
            matches = await self._store.search_similar(
                vector,
                limit=args.limit + args.offset,
                min_similarity=args.min_similarity,
                session_id=args.session_id if args.scope == "session" else None,
            )
            return matches[args.offset:]
        records = await self._store.query(
            text=query or None, limit=args.limit, offset=args.offset,
        )
        return [(r, 1.0) for r in records]

    async def _best_match_id(self, text: Optional[str], session_id: Optional[str]) -> Optional[int]:
        if not text:
            return None
        vector = await self._embed(text)
        if vector is None:
            records = await self._store.query(text=text, session_id=session_id, limit=1)
            return records[0].id if records else None
        matches = await self._store.search_similar(
            vector, limit=1, min_similarity=_MATCH_FLOOR, session_id=session_id,
        )
        return matches[0][0].id if matches else None

    async def _embed(self, text: str) -> Optional[list[float]]:
        if self._embedder is None:
            return None
        try:
            return await self._embedder.embed(text)
        except EmbeddingError as e:
            logger.warning("Storing/searching without embedding: %s", e)
            return None


def _as_dict(record: MemoryRecord, similarity: float) -> dict[str, Any]:
    return {
        "id": record.id,
        "source_text": record.source_text,
        "primary_intent": record.primary_intent,
        "entities": record.entities,
        "session_id": record.session_id,
        "similarity": round(similarity, 4),
        "created_at": record.created_at,
    }
