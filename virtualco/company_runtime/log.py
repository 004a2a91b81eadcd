"""Logging configuration using loguru.

Every record carries an ``agent`` extra: ``runtime`` for the process itself,
``<Role>#<short id>`` for lines emitted on behalf of an agent (see
``agent_logger``).  Stdlib logging from uvicorn, httpx and botocore is routed
into the same sink.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from loguru import Logger

RUNTIME_LABEL = "runtime"

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[agent]: <20}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "botocore", "sse_starlette")


def agent_label(role: str, agent_id: str) -> str:
    return f"{role}#{agent_id[:8]}"


def agent_logger(role: str, agent_id: str) -> Logger:
    """Logger whose lines are attributed to one agent of the company."""
    return logger.bind(agent=agent_label(role, agent_id), agent_id=agent_id)


class _InterceptHandler(logging.Handler):
    """Bridge stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so the call-site is the library's.
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Install loguru as the only sink, once at process startup.

    *json_logs* switches stderr to loguru's serialized one-object-per-line
    output for log shippers.
    """
    level = level.upper()

    logger.remove()
    logger.configure(extra={"agent": RUNTIME_LABEL})
    if json_logs:
        logger.add(sys.stderr, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_TEXT_FORMAT)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialised (level={}, json={})", level, json_logs)
