"""Chat business logic: what a decoded message means for its sender.

The :class:`Dispatcher` keeps no state of its own.  It reads and mutates the
:class:`~tcpchat.registry.SessionRegistry` and queues replies on sessions.
Monitoring goes through a :class:`ChatObserver` instead of printing.
"""

from __future__ import annotations

from typing import Optional

from .errors import DuplicateUsername, InvalidUsername, SemanticError
from .protocol import (
    MAX_USERNAME_LEN, SEPARATOR, LIST_SEPARATOR,
    Chat, Error, Join, ListRequest, ListResponse, Message, Quit, SystemNotice, Whisper,
)
from .registry import SessionRegistry
from .session import Session
from .util import LOG

# Error texts sent back to clients
NOT_JOINED = "not joined"
ALREADY_JOINED = "already joined"
USER_NOT_FOUND = "user not found"
USERNAME_TAKEN = "username already taken"
INVALID_USERNAME = "invalid username"
UNEXPECTED = "unexpected message"


def validate_username(username: str) -> str:
    """Return ``username`` unchanged or raise :class:`InvalidUsername`."""
    if (
        not username
        or len(username) > MAX_USERNAME_LEN
        or SEPARATOR in username
        or LIST_SEPARATOR in username
        or any(ch.isspace() for ch in username)
    ):
        raise InvalidUsername(username)
    return username


class ChatObserver:
    """Callbacks for accepted chat events.  Every hook is a no-op here."""

    def on_join(self, username: str) -> None:
        pass

    def on_leave(self, username: str) -> None:
        pass

    def on_chat(self, sender: str, body: str) -> None:
        pass

    def on_whisper(self, sender: str, recipient: str, body: str) -> None:
        pass

    def on_rejected(self, session: Session, reason: str) -> None:
        pass


class LoggingObserver(ChatObserver):
    """Writes every event to the ``tcpchat`` logger."""

    def on_join(self, username: str) -> None:
        LOG.info("%s joined the chat", username)

    def on_leave(self, username: str) -> None:
        LOG.info("%s left the chat", username)

    def on_chat(self, sender: str, body: str) -> None:
        LOG.info("<%s> %s", sender, body)

    def on_whisper(self, sender: str, recipient: str, body: str) -> None:
        LOG.info("<%s -> %s> %s", sender, recipient, body)

    def on_rejected(self, session: Session, reason: str) -> None:
        LOG.warning("Rejected request from %s: %s", session, reason)


class Dispatcher:
    """Routes one decoded message from one session."""

    def __init__(self, registry: SessionRegistry, observer: Optional[ChatObserver] = None) -> None:
        self.registry = registry
        self.observer = observer or LoggingObserver()

    # ================================================================ entry
    def dispatch(self, session: Session, message: Message) -> None:
        if not session.is_open:
            return                                      # Closing/Closed: ignore

        if not session.is_active:
            if isinstance(message, Join):
                self._handle_join(session, message)
            else:
                self.reject(session, NOT_JOINED)
            return

        if isinstance(message, Join):
            self.reject(session, ALREADY_JOINED)
        elif isinstance(message, Chat):
            self._handle_chat(session, message)
        elif isinstance(message, Whisper):
            self._handle_whisper(session, message)
        elif isinstance(message, ListRequest):
            session.deliver(ListResponse(tuple(self.registry.snapshot())))
        elif isinstance(message, Quit):
            self.disconnect(session)
        else:
            # ListResponse / Error / SystemNotice only flow server -> client
            self.reject(session, UNEXPECTED)

    def reject(self, session: Session, reason: str) -> None:
        """Answer a bad request with ``ERROR:<reason>``; the session stays open."""
        self.observer.on_rejected(session, reason)
        session.deliver(Error(reason))

    # ================================================================ leave
    def disconnect(self, session: Session) -> None:
        """Active/Connecting -> Closing -> Closed, exactly once per session.

        Called for QUIT, for transport failure and for server shutdown alike,
        so the other peers cannot tell these apart.
        """
        if not session.begin_closing():
            return
        username = session.username
        if username is not None:
            # Announce even when a newer join already replaced this entry.
            self.registry.unregister(username, session)
            self.registry.broadcast(SystemNotice(f"{username} left"), exclude=username)
            self.observer.on_leave(username)
        session.close()

    # ================================================================ handlers
    def _handle_join(self, session: Session, message: Join) -> None:
        # Holding the fan-out lock keeps every other broadcast out of the
        # newcomer's queue until the welcome and user list are in it.
        with self.registry.serialized():
            try:
                username = validate_username(message.username)
                self.registry.register(username, session)
            except SemanticError as exc:
                reason = USERNAME_TAKEN if isinstance(exc, DuplicateUsername) else INVALID_USERNAME
                self.reject(session, reason)
                # Error is queued first; the writer flushes it before closing.
                session.begin_closing()
                session.close()
                return

            self.observer.on_join(username)
            session.deliver(SystemNotice(f"welcome {username}"))
            session.deliver(ListResponse(tuple(self.registry.snapshot())))
            self.registry.broadcast(SystemNotice(f"{username} joined"), exclude=username)

    def _handle_chat(self, session: Session, message: Chat) -> None:
        sender = session.username
        self.observer.on_chat(sender, message.body)
        self.registry.broadcast(Chat(sender, message.body), exclude=sender)

    def _handle_whisper(self, session: Session, message: Whisper) -> None:
        sender = session.username
        recipient = self.registry.lookup(message.recipient)
        if recipient is None or not recipient.is_active:
            self.reject(session, USER_NOT_FOUND)
            return
        recipient.deliver(Whisper(sender, message.recipient, message.body))
        self.observer.on_whisper(sender, message.recipient, message.body)
