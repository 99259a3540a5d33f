#!/usr/bin/env python3
"""Shared constants, message types and the line codec used by **both** client & server.

Everything that travels over the network is encoded/decoded via the utilities
here so that client & server never disagree on wire-format details.

A frame is one UTF-8 line terminated by ``\\n``::

    JOIN:<username>
    MSG:<sender>:<body>
    WHISPER:<sender>:<recipient>:<body>
    LIST_USERS                      (request)
    LIST_USERS:<user1>,<user2>,...  (response)
    QUIT:<username>
    ERROR:<message>
    SYSTEM:<text>

Fields are separated by ``:``.  The last field of a frame takes the rest of the
line verbatim, so chat bodies may contain ``:``.  Content that would break the
framing (``\\n``/``\\r`` anywhere, ``:`` in a non-final field, ``,`` in a listed
username) is rejected by :func:`encode` rather than escaped.
"""

from __future__ import annotations       # Postponed annotation evaluation (PEP 563)
from dataclasses import dataclass        # Immutable message records
from typing import ClassVar, Tuple, Union

from .errors import DecodeError, EncodeError
from .packet_spec import FIELDS_BY_TAG

# --- Network configuration -------------------------------------------------
DEFAULT_PORT: int = 5000          # Well-known port on which server listens
DEFAULT_QUEUE_SIZE: int = 256     # Outbound frames buffered per session
DEFAULT_SEND_TIMEOUT: float = 2.0 # Seconds a broadcaster waits on a full queue
MAX_LINE: int = 4096              # Longest inbound frame accepted (characters)
MAX_USERNAME_LEN: int = 32

ENCODING = "utf-8"
DELIMITER = "\n"
SEPARATOR = ":"
LIST_SEPARATOR = ","

# --- Frame tags -------------------------------------------------------------
JOIN       = "JOIN"
CHAT       = "MSG"
WHISPER    = "WHISPER"
LIST_USERS = "LIST_USERS"
QUIT       = "QUIT"
ERROR      = "ERROR"
SYSTEM     = "SYSTEM"

# --- Message model ----------------------------------------------------------

@dataclass(frozen=True, slots=True)
class Join:
    tag: ClassVar[str] = JOIN
    username: str


@dataclass(frozen=True, slots=True)
class Chat:
    tag: ClassVar[str] = CHAT
    sender: str
    body: str


@dataclass(frozen=True, slots=True)
class Whisper:
    tag: ClassVar[str] = WHISPER
    sender: str
    recipient: str
    body: str


@dataclass(frozen=True, slots=True)
class ListRequest:
    tag: ClassVar[str] = LIST_USERS


@dataclass(frozen=True, slots=True)
class ListResponse:
    tag: ClassVar[str] = LIST_USERS
    users: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Quit:
    tag: ClassVar[str] = QUIT
    username: str


@dataclass(frozen=True, slots=True)
class Error:
    tag: ClassVar[str] = ERROR
    message: str


@dataclass(frozen=True, slots=True)
class SystemNotice:
    tag: ClassVar[str] = SYSTEM
    text: str


Message = Union[Join, Chat, Whisper, ListRequest, ListResponse, Quit, Error, SystemNotice]

# Frame tag -> constructor taking the decoded fields in wire order
_BUILDERS = {
    JOIN: Join,
    CHAT: Chat,
    WHISPER: Whisper,
    QUIT: Quit,
    ERROR: Error,
    SYSTEM: SystemNotice,
}

# --- Codec ------------------------------------------------------------------

def _check_field(value: str, *, final: bool) -> str:
    if "\n" in value or "\r" in value:
        raise EncodeError(f"line break inside field: {value!r}")
    if not final and SEPARATOR in value:
        raise EncodeError(f"separator inside non-final field: {value!r}")
    return value


def _fields_of(message: Message) -> Tuple[str, ...]:
    match message:
        case Join(username):
            return (username,)
        case Chat(sender, body):
            return (sender, body)
        case Whisper(sender, recipient, body):
            return (sender, recipient, body)
        case Quit(username):
            return (username,)
        case Error(text) | SystemNotice(text):
            return (text,)
        case ListResponse(users):
            for user in users:
                if not user or LIST_SEPARATOR in user:
                    raise EncodeError(f"unlistable username: {user!r}")
            return (LIST_SEPARATOR.join(users),)
        case ListRequest():
            return ()
    raise EncodeError(f"not a message: {message!r}")


def encode(message: Message) -> str:
    """Serialize a message into one newline-terminated frame.

    Raises :class:`EncodeError` when a field would break the framing.
    """
    fields = _fields_of(message)
    last = len(fields) - 1
    checked = [_check_field(f, final=(i == last)) for i, f in enumerate(fields)]
    return SEPARATOR.join([message.tag, *checked]) + DELIMITER


def decode(raw: Union[str, bytes]) -> Message:
    """Inverse of :func:`encode`: one frame -> one message.

    Never raises anything but :class:`DecodeError`; ``err.kind`` says why.
    """
    if isinstance(raw, bytes):
        raw = raw.decode(ENCODING, errors="replace")

    # Accept both "\n" and "\r\n" terminators.
    if raw.endswith("\n"):
        raw = raw[:-1]
        if raw.endswith("\r"):
            raw = raw[:-1]

    if not raw.strip():
        raise DecodeError(DecodeError.EMPTY_FRAME)
    if "\n" in raw or "\r" in raw:
        raise DecodeError(DecodeError.INVALID_FIELD, "line break inside frame")

    tag, sep, rest = raw.partition(SEPARATOR)
    names = FIELDS_BY_TAG.get(tag)
    if names is None:
        raise DecodeError(DecodeError.UNKNOWN_TYPE, tag)

    if tag == LIST_USERS:
        if not sep:
            return ListRequest()
        users = tuple(u for u in rest.split(LIST_SEPARATOR) if u)
        return ListResponse(users)

    if not sep:
        raise DecodeError(DecodeError.MISSING_FIELD, f"{tag} needs {', '.join(names)}")

    # maxsplit keeps separators inside the final field (greedy trailing body)
    fields = rest.split(SEPARATOR, len(names) - 1)
    if len(fields) < len(names):
        raise DecodeError(DecodeError.MISSING_FIELD, f"{tag} needs {', '.join(names)}")
    return _BUILDERS[tag](*fields)
