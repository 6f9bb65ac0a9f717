"""Drafts module"""

from .service import AutoSaveController

__all__ = ["AutoSaveController"]
