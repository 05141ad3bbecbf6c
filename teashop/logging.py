"""
Logging setup shared by the storefront core and the API server.

    from teashop.logging import get_logger
    logger = get_logger(__name__)

The root handler is installed once, on first import. ``LOG_LEVEL`` picks the
level; on Vercel (``VERCEL=1``) the timestamp is left to the platform.
"""

import logging
import os
import sys
from functools import cache

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FORMAT_SIMPLE = "%(levelname)s - %(name)s - %(message)s"

# Transport libraries log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "hpack")

# Longest id fragment written to the log
MAX_LOGGED_ID_LENGTH = 24

_LOG_ESCAPES = str.maketrans({"\n": "\\n", "\r": "\\r", "\t": "\\t", "\x00": None})


def configure_logging(level: str | None = None) -> None:
    """Install the stdout handler on the root logger unless one already exists."""
    root = logging.getLogger()
    if root.handlers:
        return

    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    on_vercel = os.environ.get("VERCEL") == "1"
    handler.setFormatter(logging.Formatter(LOG_FORMAT_SIMPLE if on_vercel else LOG_FORMAT))

    root.setLevel(log_level)
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


configure_logging()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def sanitize_id_for_logging(id_value: str | int | None, max_length: int = MAX_LOGGED_ID_LENGTH) -> str:
    """
    Make a product or cart id safe to interpolate into a log line.

    Ids are client-controlled (placeholder ids like ``tmp-1712345678901``
    included): control characters are escaped so a crafted id cannot forge
    a log entry (CWE-117), and long ids are cut to ``max_length``.

    Returns:
        The cleaned id, or "N/A" for a missing one
    """
    if id_value is None or id_value == "":
        return "N/A"
    text = str(id_value).translate(_LOG_ESCAPES)
    return text if len(text) <= max_length else f"{text[:max_length]}..."


__all__ = [
    "LOG_FORMAT",
    "LOG_FORMAT_SIMPLE",
    "configure_logging",
    "get_logger",
    "sanitize_id_for_logging",
]
