"""
Drafts DTOs
"""

from ledger_sync.modules.store.schemas import ClearResponse, Draft

# Drafts are returned exactly as stored
DraftResponse = Draft

__all__ = ["DraftResponse", "ClearResponse"]
