"""
User-facing notifications: sinks and the throttle policy in front of them.
"""

import enum
import logging
import time
from collections import deque
from typing import Callable, Dict, List, Optional, Protocol

from .schemas import Notification

logger = logging.getLogger(__name__)


class Severity(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class NotificationSink(Protocol):
    """Fire-and-forget notification target rendered by the UI."""

    def notify(self, title: str, message: str, severity: str = "info") -> None: ...


class LoggingSink:
    """Writes every notification to the log."""

    def notify(self, title: str, message: str, severity: str = "info") -> None:
        level = logging.WARNING if severity in ("warning", "error") else logging.INFO
        logger.log(level, "[notify:%s] %s - %s", severity, title, message)


class NotificationFeed:
    """
    Bounded history of recent notifications that the UI polls.
    Optionally forwards each notification to another sink.
    """

    def __init__(self, maxlen: int = 50, forward: Optional[NotificationSink] = None):
        self._items: deque[Notification] = deque(maxlen=maxlen)
        self._forward = forward

    def notify(self, title: str, message: str, severity: str = "info") -> None:
        self._items.append(
            Notification(
                title=title,
                message=message,
                severity=severity,
                created_at=time.time(),
            )
        )
        if self._forward is not None:
            self._forward.notify(title, message, severity)

    def recent(self, limit: Optional[int] = None) -> List[Notification]:
        items = list(self._items)
        return items[-limit:] if limit else items

    def clear(self) -> None:
        self._items.clear()


class ThrottledNotifier:
    """
    At most one notification per window and channel.

    The first notification of a window wins; later ones in the same window
    are dropped, not queued or merged.
    """

    def __init__(
        self,
        sink: NotificationSink,
        window_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sink = sink
        self.window_seconds = window_seconds
        self._clock = clock
        self._last_emitted: Dict[str, float] = {}

    def notify(
        self,
        title: str,
        message: str,
        severity: str = "info",
        channel: str = "default",
    ) -> bool:
        """
        Emit through the sink unless the channel's window is still open.

        Returns:
            True if the notification was emitted
        """
        now = self._clock()
        last = self._last_emitted.get(channel)
        if last is not None and now - last < self.window_seconds:
            logger.debug("Throttled notification on %s: %s", channel, title)
            return False
        self._last_emitted[channel] = now
        self.sink.notify(title, message, severity)
        return True

    def notify_now(self, title: str, message: str, severity: str = "info") -> None:
        """Bypass the throttle."""
        self.sink.notify(title, message, severity)
