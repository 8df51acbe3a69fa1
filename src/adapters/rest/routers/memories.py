"""Browse and delete stored memories."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from adapters.rest.dependencies import get_memory_store
from adapters.rest.schemas import MemoryOut
from domain.ports import MemoryStorePort

router = APIRouter(prefix="/memories", tags=["memories"])


@router.get("", response_model=list[MemoryOut])
async def list_memories(
    q: Optional[str] = None,
    session_id: Optional[str] = None,
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    store: MemoryStorePort = Depends(get_memory_store),
):
    records = await store.query(
        text=q, session_id=session_id, limit=limit, offset=offset,
    )
    return [
        MemoryOut(
            id=r.id,
            source_text=r.source_text,
            primary_intent=r.primary_intent,
            session_id=r.session_id,
            created_at=r.created_at,
        )
        for r in records
    ]


@router.delete("/{memory_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_memory(
    memory_id: int,
    store: MemoryStorePort = Depends(get_memory_store),
):
    if not await store.delete(memory_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Memory not found.")
