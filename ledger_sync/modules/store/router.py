"""
Storage Router - local store housekeeping
"""

from fastapi import APIRouter, Depends

from ledger_sync.core.context import SyncContext, get_context
from .schemas import ClearResponse, StorageStats

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get("/stats", response_model=StorageStats)
async def get_storage_stats(ctx: SyncContext = Depends(get_context)):
    """Record counts per local collection."""
    return await ctx.store.get_storage_stats()


@router.delete("")
async def clear_storage(ctx: SyncContext = Depends(get_context)):
    """
    Empty drafts, sync queue and cache.
    Used on logout; pending mutations are discarded.
    """
    await ctx.store.clear_all()
    await ctx.engine.refresh_pending_count()
    return {"message": "Local storage cleared"}


@router.delete("/cache/expired", response_model=ClearResponse)
async def clean_expired_cache(ctx: SyncContext = Depends(get_context)):
    """Evict cache entries past their expiry."""
    removed = await ctx.store.clean_expired_cache()
    return ClearResponse(removed=removed, collection="cache")
