"""
Sync DTOs
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ledger_sync.modules.store.schemas import SyncOperation


class Notification(BaseModel):
    """A user-facing notification"""

    title: str
    message: str
    severity: str = "info"
    created_at: float


class SyncStatus(BaseModel):
    """Sync state exposed to the UI"""

    is_online: bool
    is_syncing: bool
    pending_count: int


class SyncSummary(BaseModel):
    """Aggregate outcome of one sync pass"""

    synced: int = 0
    failed: int = 0
    dropped: int = 0
    pending: int = 0
    skipped: Optional[str] = Field(
        None, description="Reason the pass did not run (offline, already_syncing, ...)"
    )


class EnqueueMutationDto(BaseModel):
    """DTO for queueing a remote mutation"""

    operation: SyncOperation
    table: str = Field(..., min_length=1, max_length=100)
    data: Dict[str, Any] = Field(default_factory=dict)


class EnqueueResponse(BaseModel):
    id: str
    pending_count: int


class ConnectivityDto(BaseModel):
    """Platform online/offline signal forwarded by the UI shell"""

    online: bool
