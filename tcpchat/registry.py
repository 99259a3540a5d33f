"""Directory of joined sessions, keyed by username.

This is the only structure shared between connection threads.  One mutex
guards the map; fan-out iterates a snapshot taken under that mutex and does
the (possibly blocking) enqueues after releasing it, so a slow peer never
holds up registration or lookups.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional

from .errors import DuplicateUsername
from .protocol import Message
from .session import Session


class SessionRegistry:
    """Thread-safe ``username -> Session`` map.

    Usernames are case-sensitive.  Dicts keep insertion order, so
    :meth:`snapshot` lists users in the order they joined.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        # Serializes fan-outs so every recipient sees broadcasts in one order.
        # Reentrant so a join can hold it across register + greeting + broadcast.
        self._fanout = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, username: object) -> bool:
        with self._lock:
            return username in self._sessions

    # ---------------------------------------------------------------- writes
    def register(self, username: str, session: Session) -> None:
        """Insert ``session`` under ``username`` and mark it Active.

        Raises :class:`DuplicateUsername` if an Active session already holds
        the name.  A stale entry that is no longer Active is replaced.
        """
        with self._lock:
            current = self._sessions.get(username)
            if current is not None and current.is_active:
                raise DuplicateUsername(username)
            # Drop the stale entry first so the newcomer is listed last.
            self._sessions.pop(username, None)
            session.activate(username)
            self._sessions[username] = session

    def unregister(self, username: str, session: Optional[Session] = None) -> bool:
        """Remove ``username``; no-op when absent.

        With ``session`` given, only that exact session is removed, so a late
        cleanup cannot evict a newer holder of the same name.
        """
        with self._lock:
            current = self._sessions.get(username)
            if current is None or (session is not None and current is not session):
                return False
            del self._sessions[username]
            return True

    # ---------------------------------------------------------------- reads
    def lookup(self, username: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(username)

    def snapshot(self) -> List[str]:
        """Usernames of Active sessions, in join order."""
        with self._lock:
            return [name for name, s in self._sessions.items() if s.is_active]

    def serialized(self) -> threading.RLock:
        """Hold off every broadcast while the caller runs a multi-step update.

        Use as ``with registry.serialized(): ...``.
        """
        return self._fanout

    # ---------------------------------------------------------------- delivery
    def broadcast(self, message: Message, exclude: Optional[str] = None) -> int:
        """Queue ``message`` on every Active session except ``exclude``.

        Returns how many sessions accepted it.  Every target has been offered
        the message by the time this returns.
        """
        with self._fanout:
            with self._lock:
                targets = [
                    s for name, s in self._sessions.items()
                    if name != exclude and s.is_active
                ]
            return sum(1 for s in targets if s.deliver(message))
