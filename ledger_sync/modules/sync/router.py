"""
Sync Router - sync status boundary for the UI shell
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ledger_sync.core.context import SyncContext, get_context
from ledger_sync.modules.store.schemas import SyncQueueItem
from .schemas import (
    ConnectivityDto,
    EnqueueMutationDto,
    EnqueueResponse,
    Notification,
    SyncStatus,
    SyncSummary,
)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status", response_model=SyncStatus)
async def get_status(ctx: SyncContext = Depends(get_context)):
    """Online state, whether a pass is running, and the pending count."""
    return ctx.engine.status()


@router.post("/force", response_model=SyncSummary)
async def force_sync(ctx: SyncContext = Depends(get_context)):
    """Run a sync pass now, skipping the debounce window."""
    return await ctx.engine.force_sync()


@router.get("/queue", response_model=List[SyncQueueItem])
async def get_queue(ctx: SyncContext = Depends(get_context)):
    """Pending mutations in enqueue order."""
    return await ctx.store.get_sync_queue()


@router.post("/queue", response_model=EnqueueResponse, status_code=201)
async def enqueue_mutation(
    dto: EnqueueMutationDto,
    ctx: SyncContext = Depends(get_context),
):
    """Queue a remote mutation for the next sync pass."""
    item_id = await ctx.engine.enqueue(dto.operation, dto.table, dto.data)
    return EnqueueResponse(id=item_id, pending_count=ctx.engine.pending_count)


@router.post("/connectivity", response_model=SyncStatus)
async def set_connectivity(
    dto: ConnectivityDto,
    ctx: SyncContext = Depends(get_context),
):
    """Forward a platform online/offline event."""
    ctx.connectivity.set_online(dto.online)
    return ctx.engine.status()


@router.get("/notifications", response_model=List[Notification])
async def get_notifications(
    limit: Optional[int] = Query(None, ge=1, le=50),
    ctx: SyncContext = Depends(get_context),
):
    """Recent user-facing notifications, oldest first."""
    return ctx.feed.recent(limit)
