"""Publish/subscribe channel for client notifications.

Listeners are called synchronously on the publishing thread. A failing
listener is logged and skipped so it cannot break the session.
"""

import logging
import threading
from typing import Callable, Generic, List, TypeVar


T = TypeVar("T")

logger = logging.getLogger("inews.events")


class StatusChannel(Generic[T]):
    """
    Thread-safe publish/subscribe channel for one event type.

    Usage:
        channel = StatusChannel()
        unsubscribe = channel.subscribe(lambda event: print(event))
        channel.publish(event)
        unsubscribe()
    """

    def __init__(self):
        """Initialize an empty channel."""
        self._listeners: List[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """
        Register a listener.

        Args:
            listener: Called with every published event

        Returns:
            Callable that removes the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            self.unsubscribe(listener)

        return unsubscribe

    def unsubscribe(self, listener: Callable[[T], None]) -> None:
        """Remove a listener; unknown listeners are ignored."""
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: T) -> None:
        """Deliver an event to every current listener."""
        with self._lock:
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Status listener {listener!r} failed: {e}")

    @property
    def listener_count(self) -> int:
        """Number of registered listeners."""
        with self._lock:
            return len(self._listeners)
