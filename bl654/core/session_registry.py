"""Thread-safe map of connection handle to session metadata."""

import logging
from dataclasses import replace
from threading import Lock
from typing import Dict, List, Optional

from bl654.core.models import ConnectionSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Connection sessions keyed by handle.

    Written by the reader thread (MTU reports, disconnects) and by the
    connect command; read by callers. Every access holds the registry lock,
    and readers get copies so they never observe a half-updated session.
    """

    def __init__(self):
        self._sessions: Dict[int, ConnectionSession] = {}
        self._lock = Lock()

    def open(self, session: ConnectionSession) -> ConnectionSession:
        """Register a newly connected session.

        An MTU reported before the session was opened is carried over.
        """
        with self._lock:
            existing = self._sessions.get(session.handle)
            if existing is not None:
                if not existing.is_placeholder:
                    logger.warning(
                        "Handle %d reopened without a disconnect; replacing session",
                        session.handle
                    )
                if session.mtu is None:
                    session.mtu = existing.mtu
            self._sessions[session.handle] = session
            return replace(session)

    def update_mtu(self, handle: int, mtu: int) -> None:
        """Record a negotiated MTU, creating a placeholder entry if needed."""
        with self._lock:
            session = self._sessions.get(handle)
            if session is None:
                session = ConnectionSession(handle=handle)
                self._sessions[handle] = session
            session.mtu = mtu

    def remove(self, handle: int) -> Optional[ConnectionSession]:
        """Drop the session for ``handle``. Returns the removed session, if any."""
        with self._lock:
            return self._sessions.pop(handle, None)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def get(self, handle: int) -> Optional[ConnectionSession]:
        """Return a copy of the session for ``handle``."""
        with self._lock:
            session = self._sessions.get(handle)
            return replace(session) if session else None

    def get_mtu(self, handle: int) -> Optional[int]:
        """Negotiated MTU for ``handle``, or None if unknown."""
        with self._lock:
            session = self._sessions.get(handle)
            return session.mtu if session else None

    def handles(self) -> List[int]:
        with self._lock:
            return sorted(self._sessions)

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __repr__(self) -> str:
        return f"SessionRegistry(handles={self.handles()})"
