"""Callback fan-out for unsolicited module events.

Each event kind keeps its own registration list. Dispatch iterates over a
snapshot, so a callback may unsubscribe itself (or others) mid-dispatch.
"""

import logging
from threading import Lock
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

ADVERTISEMENT = "advertisement"
DISCONNECT = "disconnect"
NOTIFICATION = "notification"
INTERFACE_DISCONNECTED = "interface_disconnected"

EVENT_KINDS = (ADVERTISEMENT, DISCONNECT, NOTIFICATION, INTERFACE_DISCONNECTED)


class EventHub:
    """Registration lists of callbacks, one list per event kind.

    Callbacks run on the dispatching thread (normally the reader thread).
    A callback that raises is logged and does not prevent the remaining
    callbacks from running.

    Example:
        >>> hub = EventHub()
        >>> hub.subscribe(DISCONNECT, lambda event: print(event.handle))
        >>> hub.dispatch(DISCONNECT, DisconnectEvent(5, 84))
        5
    """

    def __init__(self):
        self._lock = Lock()
        self._callbacks: Dict[str, List[Callable[..., None]]] = {
            kind: [] for kind in EVENT_KINDS
        }

    def subscribe(self, kind: str, callback: Callable[..., None]) -> None:
        """Register ``callback`` for ``kind``.

        Raises:
            ValueError: Unknown event kind
        """
        with self._lock:
            self._list_for(kind).append(callback)

    def unsubscribe(self, kind: str, callback: Callable[..., None]) -> bool:
        """Remove one registration of ``callback``. Returns False if absent."""
        with self._lock:
            callbacks = self._list_for(kind)
            if callback in callbacks:
                callbacks.remove(callback)
                return True
            return False

    def subscriber_count(self, kind: str) -> int:
        with self._lock:
            return len(self._list_for(kind))

    def dispatch(self, kind: str, *args: Any) -> None:
        """Invoke every callback registered for ``kind`` with ``args``."""
        with self._lock:
            snapshot = list(self._list_for(kind))

        for callback in snapshot:
            try:
                callback(*args)
            except Exception:
                logger.exception("Unhandled exception in %s callback %r", kind, callback)

    def _list_for(self, kind: str) -> List[Callable[..., None]]:
        try:
            return self._callbacks[kind]
        except KeyError:
            raise ValueError(f"Unknown event kind: {kind!r}")
