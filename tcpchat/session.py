"""Server-side state for one connected peer."""

from __future__ import annotations

import enum
import queue
import socket
import threading
from typing import Optional, Tuple

from .protocol import DEFAULT_QUEUE_SIZE, DEFAULT_SEND_TIMEOUT, Message
from .util import LOG


class SessionState(enum.Enum):
    CONNECTING = "connecting"   # socket accepted, no successful JOIN yet
    ACTIVE = "active"           # registered under its username
    CLOSING = "closing"         # leaving; no new deliveries accepted
    CLOSED = "closed"           # terminal


# Pushed onto the outbound queue to tell the writer thread to stop.
CLOSE = object()


class Session:
    """One peer: identity, socket, bounded outbound queue and lifecycle state.

    Only the session's own writer thread consumes :attr:`outbox`; everybody
    else goes through :meth:`deliver`.  ``sock`` may be ``None`` for sessions
    that are driven without a network (tests, embedding).
    """

    def __init__(
        self,
        sock: Optional[socket.socket] = None,
        addr: Optional[Tuple[str, int]] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
    ) -> None:
        self.sock = sock
        self.addr = addr
        self.send_timeout = send_timeout
        self.outbox: "queue.Queue[object]" = queue.Queue(maxsize=queue_size)

        self._username: Optional[str] = None
        self._state = SessionState.CONNECTING
        self._lock = threading.Lock()        # guards state + username
        self._released = False
        self._stalled = False                # set once a bounded wait timed out

    def __repr__(self) -> str:
        return f"<Session {self._username or self.addr} {self._state.value}>"

    # ------------------------------------------------------------ identity
    @property
    def username(self) -> Optional[str]:
        return self._username

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def is_open(self) -> bool:
        return self._state in (SessionState.CONNECTING, SessionState.ACTIVE)

    def activate(self, username: str) -> None:
        """Connecting -> Active.  The username can be set only once."""
        with self._lock:
            if self._state is not SessionState.CONNECTING:
                raise RuntimeError(f"cannot activate session in state {self._state.value}")
            self._username = username
            self._state = SessionState.ACTIVE

    # ------------------------------------------------------------ lifecycle
    def begin_closing(self) -> bool:
        """Move to Closing.  Returns True only for the first caller."""
        with self._lock:
            if self._state in (SessionState.CLOSING, SessionState.CLOSED):
                return False
            self._state = SessionState.CLOSING
            return True

    def close(self) -> None:
        """Mark Closed and tell the writer to finish once the queue drains."""
        with self._lock:
            if self._state is SessionState.CLOSED:
                return
            self._state = SessionState.CLOSED
        try:
            self.outbox.put_nowait(CLOSE)
        except queue.Full:
            # Writer is wedged on a dead peer; unblock it.
            self.abort()

    def abort(self) -> None:
        """Shut the transport down so both connection threads unblock."""
        if self.sock is None:
            return
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass                              # already disconnected

    def release(self) -> None:
        """Close the socket.  Safe to call repeatedly; acts only once."""
        with self._lock:
            if self._released:
                return
            self._released = True
        if self.sock is not None:
            self.sock.close()

    # ------------------------------------------------------------ delivery
    def deliver(self, message: Message, timeout: Optional[float] = None) -> bool:
        """Queue ``message`` for this peer.

        Waits at most ``timeout`` (default :attr:`send_timeout`) for room in
        the queue.  A peer that stays full for that long is considered stalled
        and is disconnected; the message is dropped for it.
        """
        if self._stalled or self._state in (SessionState.CLOSING, SessionState.CLOSED):
            return False
        wait = self.send_timeout if timeout is None else timeout
        try:
            self.outbox.put(message, timeout=wait)
        except queue.Full:
            LOG.warning("Outbound queue of %s full for %.1fs, disconnecting", self, wait)
            self._stalled = True
            self.abort()
            return False
        return True

