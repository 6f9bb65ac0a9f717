"""Local durable store module"""

from .schemas import CacheEntry, Collection, Draft, StorageStats, SyncOperation, SyncQueueItem
from .service import BaseStore, LocalDurableStore, MemoryStore, open_store

__all__ = [
    "BaseStore",
    "CacheEntry",
    "Collection",
    "Draft",
    "LocalDurableStore",
    "MemoryStore",
    "StorageStats",
    "SyncOperation",
    "SyncQueueItem",
    "open_store",
]
