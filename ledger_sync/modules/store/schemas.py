"""
Local Store DTOs
"""

import enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Collection(str, enum.Enum):
    """Named collections of the local durable store"""

    DRAFTS = "drafts"
    SYNC_QUEUE = "sync_queue"
    CACHE = "cache"


class SyncOperation(str, enum.Enum):
    """Remote mutation kinds replayed by the sync engine"""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Draft(BaseModel):
    """Locally persisted snapshot of an entity being edited"""

    id: str
    type: str
    payload: Any
    saved_at: int
    synced: bool = False

    class Config:
        from_attributes = True


class SyncQueueItem(BaseModel):
    """Durable record of one pending remote mutation"""

    id: str
    operation: SyncOperation
    table: str
    data: dict[str, Any]
    enqueued_at: int
    retries: int = 0

    class Config:
        from_attributes = True


class CacheEntry(BaseModel):
    """Keyed, time-boxed cached value"""

    key: str
    value: Any = None
    cached_at: int
    expires_at: int

    class Config:
        from_attributes = True

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at


class StorageStats(BaseModel):
    """Record counts per collection"""

    drafts: int
    sync_queue: int
    cache: int


class ClearResponse(BaseModel):
    """Number of records removed by a bulk delete"""

    removed: int = Field(..., ge=0)
    collection: Optional[str] = None
