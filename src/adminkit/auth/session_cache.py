"""
In-memory session cache.

Thread-safe mapping from session token to Session. The cache is the source of
truth for sessions while the process runs.
"""

import threading
from typing import Dict, List, Optional

from .models import Session


class SessionCache:
    """
    Thread-safe session cache.

    Every operation is atomic per key and protected by an internal
    threading.RLock, so callers never lock around it. Sessions are immutable
    values; updating one means setting the replacement.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()

    def get(self, token: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(token)

    def set(self, session: Session) -> None:
        """Insert or replace the session keyed by its token."""
        with self._lock:
            self._sessions[session.token] = session

    def set_if_absent(self, session: Session) -> bool:
        """
        Insert session only if its token is unused.

        Returns:
            True if the session was inserted
        """
        with self._lock:
            if session.token in self._sessions:
                return False
            self._sessions[session.token] = session
            return True

    def replace(self, expected: Session, session: Session) -> bool:
        """
        Swap in session if the cached entry is still expected.

        Returns:
            True if the swap happened
        """
        with self._lock:
            if self._sessions.get(expected.token) != expected:
                return False
            self._sessions[session.token] = session
            return True

    def remove(self, token: str) -> Optional[Session]:
        """Remove and return the session for token, if any."""
        with self._lock:
            return self._sessions.pop(token, None)

    def has(self, token: str) -> bool:
        with self._lock:
            return token in self._sessions

    def tokens(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def snapshot(self) -> List[Session]:
        """Point-in-time copy of every cached session."""
        with self._lock:
            return list(self._sessions.values())

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __contains__(self, token: str) -> bool:
        return self.has(token)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
