"""Exception hierarchy shared by the codec, the registry and the server loops.

* :class:`ProtocolError` - a frame could not be decoded or encoded.  Answered
  with an ``ERROR`` frame, the connection stays open.
* :class:`SemanticError` - a well-formed request that cannot be honoured
  (duplicate username, command before join ...).  Also answered with ``ERROR``.
* :class:`TransportError` - the socket itself failed.  Fatal to that one
  connection only.
"""

from __future__ import annotations

__all__ = [
    "ChatError", "ProtocolError", "DecodeError", "EncodeError",
    "SemanticError", "DuplicateUsername", "InvalidUsername", "TransportError",
]


class ChatError(Exception):
    """Root of every error raised by this package."""


class ProtocolError(ChatError):
    """Malformed or unknown frame."""


class DecodeError(ProtocolError):
    """A raw line could not be turned into a message.

    ``kind`` tells the caller why; it is one of the class constants below.
    """

    UNKNOWN_TYPE = "unknown type"
    MISSING_FIELD = "missing field"
    EMPTY_FRAME = "empty frame"
    INVALID_FIELD = "invalid field"

    def __init__(self, kind: str, detail: str = "") -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(f"{kind}: {detail}" if detail else kind)


class EncodeError(ProtocolError, ValueError):
    """A message carries content that cannot be framed (e.g. a newline)."""


class SemanticError(ChatError):
    """Valid frame, invalid request in the current state."""


class DuplicateUsername(SemanticError):
    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"username already taken: {username}")


class InvalidUsername(SemanticError):
    def __init__(self, username: str) -> None:
        self.username = username
        super().__init__(f"invalid username: {username!r}")


class TransportError(ChatError):
    """Reading from or writing to a peer's socket failed."""
