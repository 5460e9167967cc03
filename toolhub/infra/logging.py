"""structlog setup for toolhub.

setup_logging() runs once at boot (build_runtime does it unless told not
to). Tool, chain and data-read events are logged as snake_case event names
with keyword fields; chain_log_context() stamps every line emitted inside a
chain run with that run's trace id.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager

import structlog

# Driver loggers that are chatty at INFO; they only surface warnings.
_QUIET_LIBRARIES = ("sqlalchemy.engine", "asyncpg", "alembic")


def setup_logging(*, json_output: bool = True, log_level: str = "INFO") -> None:
    """Configure structlog for toolhub.

    Args:
        json_output: Render JSON lines (production) or the console renderer (dev).
        log_level: Minimum level for toolhub events (DEBUG shows chain state changes).
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    level = logging.getLevelName(log_level.upper())
    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def chain_log_context(trace_id: str, main_tool: str) -> AbstractContextManager:
    """Bind the chain trace id and main tool to log lines inside the block."""
    return structlog.contextvars.bound_contextvars(
        chain_trace_id=trace_id, chain_tool=main_tool
    )
