# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Logging helpers for pyrmq.

The SDK never configures handlers itself. Applications attach handlers to
the ``pyrmq`` logger or call :func:`enable_console_logging` in scripts.
"""

from __future__ import annotations

import logging

ROOT_LOGGER_NAME = "pyrmq"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(threadName)s] %(name)s: %(message)s"

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger inside the pyrmq hierarchy.

    Args:
        name: Usually ``__name__`` of the calling module.

    Returns:
        Logger named ``pyrmq.<suffix>``.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def enable_console_logging(level: int = logging.INFO, fmt: str = DEFAULT_FORMAT) -> logging.Handler:
    """
    Attach a stream handler to the pyrmq root logger.

    Args:
        level: Minimum level to emit.
        fmt: Log record format.

    Returns:
        The installed handler, so callers can remove it again.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt))
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.addHandler(handler)
    root.setLevel(level)
    return handler
