from ledger_sync.core.db.base import Base

__all__ = ["Base"]
