"""Core utility functions for the sync core"""

import json
import time
import uuid
from typing import Any


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def short_token(length: int = 9) -> str:
    """Random lowercase token used to disambiguate ids created in the same millisecond."""
    return uuid.uuid4().hex[:length]


def serialize_snapshot(data: Any) -> str:
    """
    Serialize a form snapshot deterministically.

    Keys are sorted so two equal dicts always produce the same string,
    which is what change detection compares.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def chunked(items: list, size: int) -> list[list]:
    """Split a list into consecutive chunks of at most `size` items."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [items[i : i + size] for i in range(0, len(items), size)]
