"""Sync module"""

from .connectivity import ConnectivityMonitor, ConnectivityPolicy
from .notifications import LoggingSink, NotificationFeed, ThrottledNotifier
from .remote import RemoteResult, RemoteStore
from .service import SyncEngine

__all__ = [
    "ConnectivityMonitor",
    "ConnectivityPolicy",
    "LoggingSink",
    "NotificationFeed",
    "RemoteResult",
    "RemoteStore",
    "SyncEngine",
    "ThrottledNotifier",
]
