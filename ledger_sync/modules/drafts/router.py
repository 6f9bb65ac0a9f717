"""
Drafts Router - local drafts left behind by auto-save sessions
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ledger_sync.core.context import SyncContext, get_context
from ledger_sync.core.exceptions import NotFoundError
from .schemas import ClearResponse, DraftResponse

router = APIRouter(prefix="/drafts", tags=["drafts"])


@router.get("", response_model=List[DraftResponse])
async def get_all_drafts(
    type: Optional[str] = Query(None, description="Filter by draft type, e.g. invoice"),
    ctx: SyncContext = Depends(get_context),
):
    """
    Get all local drafts, newest first.
    Optionally filter by type.
    """
    return await ctx.store.get_all_drafts(type)


@router.get("/{draft_id}", response_model=DraftResponse)
async def get_draft(draft_id: str, ctx: SyncContext = Depends(get_context)):
    """Get a specific draft by ID."""
    draft = await ctx.store.get_draft(draft_id)
    if draft is None:
        raise NotFoundError("Draft", draft_id)
    return draft


@router.delete("/{draft_id}")
async def delete_draft(draft_id: str, ctx: SyncContext = Depends(get_context)):
    """Delete a draft. Deleting an absent draft succeeds."""
    await ctx.store.delete_draft(draft_id)
    return {"message": "Draft deleted successfully"}


@router.delete("", response_model=ClearResponse)
async def clear_drafts_by_type(
    type: str = Query(..., description="Draft type to clear"),
    ctx: SyncContext = Depends(get_context),
):
    """Delete every draft of one type."""
    removed = await ctx.store.clear_drafts_by_type(type)
    return ClearResponse(removed=removed, collection="drafts")
