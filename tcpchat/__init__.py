"""TCP Chat - a small threaded TCP chat library.

Importing this package exposes :class:`tcpchat.ChatServer` and
:class:`tcpchat.ChatClient`, allowing the whole stack to be embedded in
another application or launched via ``python -m tcpchat``.
"""

# ------------------------ re-exports ------------------------
from .client import ChatClient                      # noqa: F401
from .dispatcher import ChatObserver, Dispatcher    # noqa: F401
from .registry import SessionRegistry               # noqa: F401
from .server import ChatServer                      # noqa: F401

# ------------------------ public API ------------------------
__all__: list[str] = [
    "ChatClient",       # Terminal client (public chat + whispers)
    "ChatServer",       # Threaded TCP server
    "ChatObserver",     # Hook interface for chat events
    "Dispatcher",
    "SessionRegistry",
]
