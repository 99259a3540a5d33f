#!/usr/bin/env python3
"""Logging utils **and** helper that discovers our outward-facing IP address."""

from __future__ import annotations
import logging                           # Python stdlib logging framework
import socket                            # Needed for IP detection
import sys                               # For stderr/stdout handles
from logging.handlers import RotatingFileHandler
from typing import Optional

__all__ = ["LOG", "configure_logging", "get_local_ip"]

DEFAULT_LOG_FILE = "tcp_chat.log"

# Module-wide logger.  Handlers are attached by configure_logging(), which the
# command-line entry points call once, so importing the package stays silent.
LOG = logging.getLogger("tcpchat")

# ----------------------------------------------------------------------
# configure_logging() wires console + rotating file output onto LOG.
# ----------------------------------------------------------------------

def configure_logging(
    log_file: Optional[str] = DEFAULT_LOG_FILE,
    level: int = logging.INFO,
) -> logging.Logger:
    """Attach stdout and rotating-file handlers to the "tcpchat" logger.

    Calling it twice replaces the handlers instead of duplicating every line.
    Pass ``log_file=None`` to log to the console only.
    """

    LOG.setLevel(level)
    for handler in list(LOG.handlers):      # Re-configuration replaces handlers
        LOG.removeHandler(handler)
        handler.close()

    # Unified log line format.  Example: [23:59:59] INFO     alice joined
    fmt = logging.Formatter("[%(asctime)s] %(levelname)-8s %(message)s", "%H:%M:%S")

    # ----- Console handler (stdout) -----
    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)
    LOG.addHandler(sh)

    # ----- Rotating file handler -----
    # Rotates once file hits 1 MiB, keeps 3 backups.
    if log_file:
        fh = RotatingFileHandler(
            log_file,
            maxBytes=1_048_576,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setFormatter(fmt)
        LOG.addHandler(fh)

    return LOG

# ----------------------------------------------------------------------
# best-effort outward IP discovery (no external calls, works offline)
# ----------------------------------------------------------------------

def get_local_ip() -> str:
    """Return the host's primary IP, fallback to 127.0.0.1 on failure."""

    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # connect() on a UDP socket sends nothing; it only makes the OS pick
        # the source address it would route through.
        sock.connect(("8.8.8.8", 80))
        return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        sock.close()
