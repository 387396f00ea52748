"""
Process-wide logging setup and timing helpers.

Progress and answers go to stdout, so log records are written to stderr.
Provider calls and tool executions are timed at DEBUG through ``log_timing``
and ``timed``; a timed block that raises is reported as failed.
"""

import logging
import os
import sys
import time
from contextlib import contextmanager
from functools import wraps
from typing import Callable, Iterator, Optional, TextIO, TypeVar

SIMPLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DETAILED_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVEL_ENV = "LOG_LEVEL"

# HTTP clients and the vendor SDK log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "mcp")

T = TypeVar("T")


def resolve_level(level: Optional[str] = None) -> int:
    """Numeric level from ``level``, then ``LOG_LEVEL``; unknown names mean INFO."""
    name = (level or os.environ.get(LOG_LEVEL_ENV) or "INFO").upper()
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: Optional[str] = None, stream: Optional[TextIO] = None) -> None:
    """
    Configure the root logger once for the CLI.

    Args:
        level: Level name; falls back to ``LOG_LEVEL`` and then INFO
        stream: Destination, stderr by default
    """
    log_level = resolve_level(level)
    logging.basicConfig(
        level=log_level,
        format=DETAILED_FORMAT if log_level <= logging.DEBUG else SIMPLE_FORMAT,
        datefmt=DATE_FORMAT,
        stream=stream or sys.stderr,
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


@contextmanager
def log_timing(logger: logging.Logger, operation: str, level: int = logging.DEBUG) -> Iterator[None]:
    """Log how long the block took, e.g. ``with log_timing(logger, "tool View"):``."""
    start = time.perf_counter()
    outcome = "failed"
    try:
        yield
        outcome = "completed"
    finally:
        logger.log(level, "%s %s in %.1fms", operation, outcome, (time.perf_counter() - start) * 1000)


def timed(operation: Optional[str] = None, level: int = logging.DEBUG) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator form of ``log_timing`` for coroutine functions."""

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        logger = logging.getLogger(func.__module__)
        name = operation or func.__name__

        @wraps(func)
        async def wrapper(*args, **kwargs):
            with log_timing(logger, name, level):
                return await func(*args, **kwargs)

        return wrapper

    return decorator
