#!/usr/bin/env python3
"""Threaded TCP chat server:

* One accept loop admitting connections
* Two threads per connection: a reader feeding the dispatcher and a writer
  draining that session's outbound queue
* No persistence; everything lives in RAM until process exits.
"""

from __future__ import annotations

import argparse                       # CLI parsing
import logging
import socket                         # TCP socket operations
import threading                      # Concurrency primitives
from typing import Optional, Set, Tuple

from .dispatcher import ChatObserver, Dispatcher
from .errors import DecodeError, EncodeError, TransportError
from .protocol import (
    DEFAULT_PORT, DEFAULT_QUEUE_SIZE, DEFAULT_SEND_TIMEOUT, ENCODING, MAX_LINE,
    decode, encode,
)
from .registry import SessionRegistry
from .session import CLOSE, Session
from .util import DEFAULT_LOG_FILE, LOG, configure_logging, get_local_ip

FRAME_TOO_LONG = "frame too long"


class ConnectionHandler:
    """Reader/writer pair for one accepted socket."""

    def __init__(self, server: "ChatServer", sock: socket.socket, addr: Tuple[str, int]) -> None:
        self.server = server
        self.dispatcher = server.dispatcher
        self.addr = addr
        self.session = Session(
            sock, addr,
            queue_size=server.queue_size,
            send_timeout=server.send_timeout,
        )
        self.rfile = sock.makefile("r", encoding=ENCODING, errors="replace", newline="\n")
        self.wfile = sock.makefile("w", encoding=ENCODING, newline="\n")

    # ================================================================= main ===
    def run(self) -> None:
        """Runs on the connection's own thread; returns once the socket is closed."""
        LOG.info("Incoming connection from %s:%d", *self.addr[:2])
        writer = threading.Thread(
            target=self._outbound_loop, name=f"writer-{self.addr[1]}", daemon=True,
        )
        writer.start()
        try:
            self._inbound_loop()
        finally:
            # EOF, read error, QUIT and shutdown all end up here: implicit quit.
            self.dispatcher.disconnect(self.session)
            writer.join(self.session.send_timeout)
            if writer.is_alive():                    # peer stopped reading
                self.session.abort()
                writer.join()
            for stream in (self.rfile, self.wfile):
                try:
                    stream.close()
                except OSError:
                    pass                             # unflushed data to a dead peer
            self.session.release()
            self.server._forget(self)
            LOG.info("Connection from %s:%d closed", *self.addr[:2])

    # ---------------------------------------------------------------- transport
    def _read_line(self) -> str:
        try:
            return self.rfile.readline(MAX_LINE + 1)
        except (OSError, ValueError) as exc:         # ValueError: file closed
            raise TransportError(f"read from {self.addr} failed: {exc}") from exc

    def _write_frame(self, frame: str) -> None:
        try:
            self.wfile.write(frame)
            self.wfile.flush()
        except (OSError, ValueError) as exc:
            raise TransportError(f"write to {self.addr} failed: {exc}") from exc

    def _discard_rest_of_line(self) -> None:
        while True:
            chunk = self._read_line()
            if not chunk or chunk.endswith("\n"):
                return

    # ---------------------------------------------------------------- loops
    def _inbound_loop(self) -> None:
        """Read frames until EOF, transport failure or the session closes."""
        while self.session.is_open and self.server.running.is_set():
            try:
                line = self._read_line()
                if not line:
                    LOG.debug("EOF from %s", self.session)
                    return
                if len(line) > MAX_LINE and not line.endswith("\n"):
                    self.dispatcher.reject(self.session, FRAME_TOO_LONG)
                    self._discard_rest_of_line()
                    continue
            except TransportError as exc:
                LOG.debug("%s", exc)
                return

            try:
                message = decode(line)
            except DecodeError as exc:
                self.dispatcher.reject(self.session, f"malformed frame: {exc}")
                continue
            self.dispatcher.dispatch(self.session, message)

    def _outbound_loop(self) -> None:
        """Drain the session queue to the socket, in order, until told to stop."""
        try:
            while True:
                item = self.session.outbox.get()
                if item is CLOSE:
                    return
                try:
                    frame = encode(item)
                except EncodeError as exc:
                    LOG.warning("Dropped unencodable message for %s: %s", self.session, exc)
                    continue
                self._write_frame(frame)
        except TransportError as exc:
            LOG.debug("%s", exc)
        finally:
            # Wakes the reader if it is still blocked on the socket.
            self.session.abort()


class ChatServer:
    """Accepts connections and wires each one to the shared registry."""

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        send_timeout: float = DEFAULT_SEND_TIMEOUT,
        observer: Optional[ChatObserver] = None,
    ) -> None:
        if queue_size < 1:
            raise ValueError(f"queue_size must be at least 1, got {queue_size}")
        if not send_timeout >= 0:
            raise ValueError(f"send_timeout must not be negative, got {send_timeout}")
        self.queue_size = queue_size
        self.send_timeout = send_timeout

        # ------ bind socket ------
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((host, port))
        self.sock.listen()
        self.sock.settimeout(0.5)             # Lets the accept loop see shutdown
        self.host, self.port = self.sock.getsockname()[:2]   # port 0 -> real port

        # ------ runtime state ------
        self.registry = SessionRegistry()
        self.dispatcher = Dispatcher(self.registry, observer)
        self._handlers: Set[ConnectionHandler] = set()
        self._handlers_lock = threading.Lock()

        # Flag to shut all loops down cooperatively.
        self.running = threading.Event()
        self.running.set()

    @property
    def address(self) -> Tuple[str, int]:
        return self.host, self.port

    # ================================================================= main ===
    def start(self) -> None:
        """Accept connections until :meth:`stop` or Ctrl-C."""
        LOG.info("Server listening on %s:%d", self.host, self.port)
        try:
            self._accept_loop()
        except KeyboardInterrupt:
            LOG.info("Shutdown requested")
        finally:
            self.stop()

    def stop(self) -> None:
        """Close the listener and every connection.  Idempotent."""
        if not self.running.is_set():
            return
        self.running.clear()
        self.sock.close()
        with self._handlers_lock:
            handlers = list(self._handlers)
        for handler in handlers:
            handler.session.abort()
        LOG.info("Server stopped")

    # ---------------------------------------------------------------- internals
    def _accept_loop(self) -> None:
        while self.running.is_set():
            try:
                conn, addr = self.sock.accept()
            except socket.timeout:
                continue                          # Allow shutdown check
            except OSError:                       # Listener closed
                break
            if not self.running.is_set():          # stop() raced the accept
                conn.close()
                break
            conn.settimeout(None)
            handler = ConnectionHandler(self, conn, addr)
            with self._handlers_lock:
                self._handlers.add(handler)
            threading.Thread(
                target=handler.run, name=f"conn-{addr[1]}", daemon=True,
            ).start()

    def _forget(self, handler: ConnectionHandler) -> None:
        with self._handlers_lock:
            self._handlers.discard(handler)

# ======================================================================
#  Command-line entry point
# ======================================================================

def positive_int(text: str) -> int:
    value = int(text)
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {text}")
    return value


def non_negative_float(text: str) -> float:
    value = float(text)
    if not value >= 0:                    # also catches nan
        raise argparse.ArgumentTypeError(f"must not be negative, got {text}")
    return value


def build_parser(parser: Optional[argparse.ArgumentParser] = None) -> argparse.ArgumentParser:
    parser = parser or argparse.ArgumentParser("TCP chat server")
    parser.add_argument("--host", default=None, help="address to bind (default: primary LAN IP)")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--queue-size", type=positive_int, default=DEFAULT_QUEUE_SIZE,
                        help="outbound frames buffered per client")
    parser.add_argument("--send-timeout", type=non_negative_float, default=DEFAULT_SEND_TIMEOUT,
                        help="seconds to wait on a stalled client before dropping it")
    parser.add_argument("--log-file", default=DEFAULT_LOG_FILE)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def run(args: argparse.Namespace) -> None:
    configure_logging(args.log_file, logging.DEBUG if args.verbose else logging.INFO)
    ChatServer(
        args.host or get_local_ip(),
        args.port,
        queue_size=args.queue_size,
        send_timeout=args.send_timeout,
    ).start()


def main() -> None:
    run(build_parser().parse_args())


if __name__ == "__main__":
    main()
