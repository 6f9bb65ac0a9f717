"""
Connectivity tracking and the notification policy for online/offline
transitions.

The monitor is fed by platform events through set_online(); it can also
probe the remote store on an interval when no platform signal exists.
"""

import asyncio
import logging
from typing import Callable, List, Optional

import requests

from .notifications import Severity, ThrottledNotifier

logger = logging.getLogger(__name__)

ConnectivityHandler = Callable[[bool], None]

CONNECTIVITY_CHANNEL = "connectivity"


class ConnectivityMonitor:
    """
    Current online/offline state plus change subscriptions.

    Handlers are called with the new state on transitions only; setting the
    state it already has is a no-op.
    """

    def __init__(
        self,
        initial_online: bool = True,
        probe_url: Optional[str] = None,
        probe_interval: float = 0.0,
        probe_timeout: float = 5.0,
    ):
        self._online = initial_online
        self._handlers: List[ConnectivityHandler] = []
        self.probe_url = probe_url
        self.probe_interval = probe_interval
        self.probe_timeout = probe_timeout
        self._probe_task: Optional[asyncio.Task] = None

    @property
    def is_online(self) -> bool:
        return self._online

    def on_change(self, handler: ConnectivityHandler) -> Callable[[], None]:
        """
        Register a transition handler.

        Returns:
            A callable that unregisters the handler
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def set_online(self, online: bool) -> bool:
        """
        Record the platform connectivity state.

        Returns:
            True if this was a transition
        """
        if online == self._online:
            return False
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for handler in list(self._handlers):
            try:
                handler(online)
            except Exception:
                logger.exception("Connectivity handler %r failed", handler)
        return True

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the background probe when a probe URL and interval are configured."""
        if self._probe_task is not None or not self.probe_url or self.probe_interval <= 0:
            return
        self._probe_task = asyncio.create_task(self._probe_loop(), name="connectivity-probe")
        logger.info("Connectivity probe started (interval=%.0fs)", self.probe_interval)

    async def stop(self) -> None:
        if self._probe_task is None:
            return
        self._probe_task.cancel()
        try:
            await self._probe_task
        except asyncio.CancelledError:
            pass
        self._probe_task = None

    async def probe(self) -> bool:
        """Probe the remote endpoint once and record the result."""
        online = await asyncio.to_thread(self._probe_once)
        self.set_online(online)
        return online

    def _probe_once(self) -> bool:
        try:
            # Any HTTP answer means the network path works
            requests.head(self.probe_url, timeout=self.probe_timeout)
            return True
        except requests.RequestException as exc:
            logger.debug("Connectivity probe failed: %s", exc)
            return False

    async def _probe_loop(self) -> None:
        while True:
            await self.probe()
            await asyncio.sleep(self.probe_interval)


class ConnectivityPolicy:
    """
    Tells the user about online/offline transitions through the throttled
    notifier. Sync triggering is registered separately by the sync engine.
    """

    def __init__(self, monitor: ConnectivityMonitor, notifier: ThrottledNotifier):
        self.monitor = monitor
        self.notifier = notifier
        self._unsubscribe = monitor.on_change(self._handle_change)

    def _handle_change(self, online: bool) -> None:
        if online:
            self.notifier.notify(
                "Back Online",
                "Your data will sync automatically",
                Severity.SUCCESS.value,
                channel=CONNECTIVITY_CHANNEL,
            )
        else:
            self.notifier.notify(
                "Offline Mode",
                "You can continue working. Changes will sync when online.",
                Severity.WARNING.value,
                channel=CONNECTIVITY_CHANNEL,
            )

    def close(self) -> None:
        self._unsubscribe()
