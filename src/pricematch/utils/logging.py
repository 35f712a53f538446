"""Logging for the pricematch package.

Every module logs through ``get_logger(__name__)``; records propagate to the
``pricematch`` logger, which owns the stderr and log-file handlers.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER = "pricematch"
_CONFIGURED = False

LOG_DIR = Path(__file__).resolve().parents[3] / "logs"
LOG_FILE = Path(os.getenv("PRICEMATCH_LOG_FILE", str(LOG_DIR / "pricematch.log")))


class SafeStreamHandler(logging.StreamHandler):
    """Falls back to backslash escapes when the stream cannot encode a
    character; scraped titles and prices carry lira signs and accents."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            stream = self.stream
            encoding = getattr(stream, "encoding", None) or "utf-8"
            line = msg + self.terminator
            try:
                stream.write(line)
            except UnicodeEncodeError:
                stream.write(line.encode(encoding, errors="backslashreplace").decode(encoding))
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
) -> None:
    """Attach the console and file handlers once per process."""
    global _CONFIGURED
    if _CONFIGURED:
        return
    _CONFIGURED = True

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)-7s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = SafeStreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(fmt)
    root.addHandler(console)

    # No log file on a read-only checkout; console logging still works.
    target = log_file or LOG_FILE
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(target, encoding="utf-8", delay=True)
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(fmt)
        root.addHandler(fh)
    except OSError:
        pass


def set_level(level: int) -> None:
    """Change the level of the ``pricematch`` logger and its console handler."""
    setup_logging()
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(level)
    for handler in root.handlers:
        if isinstance(handler, SafeStreamHandler):
            handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """Logger for a pricematch module; configures handlers on first use."""
    setup_logging()
    return logging.getLogger(name)
