#!/usr/bin/env python3
"""Command-line TCP chat *client* supporting:

* Public chat (plain lines)
* ``/whisper <user> <msg>`` private messages
* ``/list`` to see who is online, ``/quit`` to leave
* ANSI-coloured output via *colorama*.

Usage (after installing package locally):

    python -m tcpchat client 203.0.113.22  # Connect to server's IP
"""

from __future__ import annotations                # type hints forward refs OK

import argparse                                    # For CLI parsing
import logging
import queue                                       # Outbound FIFO for the sender thread
import random                                      # Random guest name
import socket                                      # TCP client socket
import sys                                         # Needed for prompt redraw
import threading                                   # Sender / receiver threads
from typing import Optional, Tuple

# ---------- Shared protocol symbols / helpers ----------
from .errors import DecodeError, EncodeError
from .protocol import (
    DEFAULT_PORT, ENCODING, SEPARATOR,
    Chat, Error, Join, ListRequest, ListResponse, Message, Quit, SystemNotice, Whisper,
    decode, encode,
)

# ---------- Local utilities ----------
from .util import LOG, configure_logging

# 3rd-party: coloured terminal output
from colorama import Fore, Style, init
init(autoreset=True)                               # Reset colour after each print

HELP = """Commands:
  /list                   show who is online
  /whisper <user> <msg>   private message
  /quit                   leave the chat
  anything else           public message"""

_STOP = object()                                   # Sender-thread sentinel


class UsageError(ValueError):
    """A slash command the user typed could not be turned into a message."""


def parse_input(line: str, name: str) -> Optional[Message]:
    """Map one line of user input to the request it stands for.

    Returns ``None`` for blank input; raises :class:`UsageError` for a
    malformed or unknown command.
    """
    text = line.rstrip("\r\n")
    if not text.strip():
        return None
    if not text.startswith("/"):
        return Chat(name, text)

    cmd, _, rest = text.partition(" ")
    match cmd.lower():
        case "/list":
            return ListRequest()
        case "/quit":
            return Quit(name)
        case "/whisper":
            parts = rest.strip().split(None, 1)
            if len(parts) != 2:
                raise UsageError("Usage: /whisper <user> <msg>")
            user, body = parts
            if SEPARATOR in user:
                raise UsageError(f"Invalid username: {user}")
            return Whisper(name, user, body)
        case _:
            raise UsageError(f"Unknown command {cmd} (try /help)")


def render(message: Message) -> str:
    """Server push -> coloured line for the terminal."""
    match message:
        case Chat(sender, body):
            return f"{Fore.GREEN}<{sender}>{Style.RESET_ALL} {body}"
        case Whisper(sender, _, body):
            return f"{Fore.MAGENTA}[whisper from {sender}]{Style.RESET_ALL} {body}"
        case SystemNotice(text):
            return f"{Fore.CYAN}[SYSTEM]{Style.RESET_ALL} {text}"
        case Error(text):
            return f"{Fore.RED}[ERROR]{Style.RESET_ALL} {text}"
        case ListResponse(users):
            return f"{Fore.YELLOW}[ONLINE]{Style.RESET_ALL} {', '.join(users) or '(nobody)'}"
    return f"{Fore.RED}[?]{Style.RESET_ALL} {message!r}"


class ChatClient:
    """Embeds the entire client state machine; can also be used programmatically."""

    def __init__(self, server_ip: str, server_port: int = DEFAULT_PORT, name: str = "") -> None:
        # -------- server endpoint --------
        self.server: Tuple[str, int] = (server_ip, server_port)
        self.name = name
        self.sock: Optional[socket.socket] = None
        self._rfile = self._wfile = None          # text streams over sock

        # -------- control flags --------
        self.running = threading.Event()  # Cooperative shutdown across threads
        self.send_q: "queue.Queue[object]" = queue.Queue()
        self._sender: Optional[threading.Thread] = None

    # ================================================================== main ===
    def start(self) -> None:
        """Blocking run-loop: interactively read stdin while background threads
        talk to the server.
        """
        self.name = self.name or input("Your name: ").strip() or f"Guest{random.randint(1000, 9999)}"
        try:
            self.connect()
        except OSError as exc:
            LOG.error("Cannot reach %s:%d: %s", *self.server, exc)
            return

        # -------- main input loop --------
        try:
            while self.running.is_set():              # until /quit or Ctrl-C
                try:
                    line = input(self._prompt())      # Blocking stdin read
                except EOFError:                      # Ctrl-D on *nix
                    self.send(Quit(self.name))
                    break
                if not self.running.is_set():         # server hung up meanwhile
                    break
                if line.strip().lower() == "/help":
                    print(HELP)
                    continue
                try:
                    message = parse_input(line, self.name)
                except UsageError as exc:
                    print(exc)
                    continue
                if message is None:
                    continue
                self.send(message)
                if isinstance(message, Quit):
                    break
        except KeyboardInterrupt:                     # Graceful Ctrl-C
            self.send(Quit(self.name))
        finally:
            self.close()

    def connect(self) -> None:
        """Open the socket, announce our name and spawn sender + receiver."""
        self.sock = socket.create_connection(self.server)
        self._rfile = self.sock.makefile("r", encoding=ENCODING, errors="replace", newline="\n")
        self._wfile = self.sock.makefile("w", encoding=ENCODING, newline="\n")
        self.running.set()
        LOG.info("Connected to %s:%d as %s", *self.server, self.name)
        self.send(Join(self.name))                    # always the first frame

        self._sender = threading.Thread(target=self._send_loop, daemon=True)
        self._sender.start()
        threading.Thread(target=self._recv_loop, daemon=True).start()

    def send(self, message: Message) -> None:
        self.send_q.put(message)

    def close(self) -> None:
        """Flush everything queued, then hang up."""
        self.send_q.put(_STOP)
        if self._sender is not None:
            self._sender.join(timeout=5)
        self.running.clear()
        if self.sock is not None:
            try:
                self.sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass                                  # server already closed it
            for stream in (self._wfile, self._rfile):
                try:
                    stream.close()
                except (OSError, ValueError):
                    pass
            self.sock.close()
        LOG.info("Disconnected")

    # ---------------------------------------------------------------- networking
    def _send_loop(self) -> None:
        """Sender thread: queue -> frame -> socket, in order."""
        while True:
            item = self.send_q.get()
            if item is _STOP:
                return
            try:
                self._wfile.write(encode(item))
                self._wfile.flush()
            except EncodeError as exc:
                print(f"Cannot send: {exc}")
            except (OSError, ValueError) as exc:
                LOG.error("Send failed: %s", exc)
                self.running.clear()
                return

    def _recv_loop(self) -> None:
        """Receiver thread: prints inbound frames then redraws the prompt."""
        while self.running.is_set():
            try:
                line = self._rfile.readline()
            except (OSError, ValueError):             # Socket closed under us
                break
            if not line:
                print(f"\r{Fore.CYAN}[SYSTEM]{Style.RESET_ALL} connection closed by server")
                break
            try:
                message = decode(line)
            except DecodeError as exc:
                LOG.warning("Ignored bad frame from server: %s", exc)
                continue
            print(f"\r{render(message)}")
            # Prompt re-paint so the user's current input line isn't lost
            sys.stdout.write(self._prompt())
            sys.stdout.flush()
        self.running.clear()

    # ---------------------------------------------------------------- helper prompt
    def _prompt(self) -> str:
        return f"{self.name}> "

# ======================================================================
#  Command-line entry point
# ======================================================================

def build_parser(parser: Optional[argparse.ArgumentParser] = None) -> argparse.ArgumentParser:
    parser = parser or argparse.ArgumentParser("TCP chat client")
    parser.add_argument("server_ip", help="IP address of chat server")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="TCP port of server")
    parser.add_argument("--name", default="", help="username (prompted when omitted)")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def run(args: argparse.Namespace) -> None:
    # Client logs go to the console only; chat text is printed, not logged.
    configure_logging(None, logging.DEBUG if args.verbose else logging.INFO)
    ChatClient(args.server_ip, args.port, args.name).start()


def main() -> None:
    """Parse CLI args then instantiate & run the chat client."""
    run(build_parser().parse_args())


if __name__ == "__main__":
    main()
