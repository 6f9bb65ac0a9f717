"""
Cache DTOs
"""

from typing import Any, Optional

from pydantic import BaseModel


class CacheResult(BaseModel):
    """Value served by the offline cache and where it came from"""

    data: Any = None
    is_cached: bool = False
    is_stale: bool = False
    cached_at: Optional[int] = None
    error: Optional[str] = None
