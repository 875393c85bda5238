"""Logging helpers shared by every module."""

import logging
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def configure_logging(level: Union[int, str] = logging.INFO, stream: Optional[object] = None) -> None:
    """
    Install a single stream handler on the package logger.

    Safe to call more than once; later calls only change the level.

    Args:
        level: Logging level name or number
        stream: Optional stream for the handler (defaults to stderr)
    """
    global _configured
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger("ims_client")
    root.setLevel(level)
    if _configured:
        return

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True
