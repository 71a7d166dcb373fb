"""History log endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from ..services.history import HistoryStore
from ..services.session import GenerationSession
from .generation import get_session

router = APIRouter(prefix="/api/history", tags=["history"])


def get_history(session: GenerationSession = Depends(get_session)) -> HistoryStore:
    return session.history


@router.get("")
async def list_history(history: HistoryStore = Depends(get_history)) -> dict[str, Any]:
    """Return stored entries, newest first."""

    items = await history.list_items()
    return {
        "items": [item.to_storage() for item in items],
        "maxItems": history.max_items,
    }


@router.get("/{item_id}")
async def get_history_item(
    item_id: str, history: HistoryStore = Depends(get_history)
) -> dict[str, Any]:
    item = await history.get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="History item not found")
    return item.to_storage()


@router.delete("/{item_id}")
async def delete_history_item(
    item_id: str, history: HistoryStore = Depends(get_history)
) -> dict[str, Any]:
    if await history.get(item_id) is None:
        raise HTTPException(status_code=404, detail="History item not found")
    remaining = await history.remove(item_id)
    return {"success": True, "items": [item.to_storage() for item in remaining]}


@router.delete("")
async def clear_history(history: HistoryStore = Depends(get_history)) -> dict[str, bool]:
    await history.clear()
    return {"success": True}


__all__ = ["router"]
