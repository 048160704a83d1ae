"""Structured logging configuration using *structlog*."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def setup_logging(level: str = "INFO", *, json_logs: bool | None = None) -> None:
    """Configure *structlog* processors for the engine.

    Call once at process start-up, before the orchestrator is built.  By
    default events are rendered for humans on a TTY and as JSON lines
    otherwise; pass *json_logs* to force one or the other.
    """
    if json_logs is None:
        json_logs = not sys.stderr.isatty()
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info if json_logs else structlog.dev.set_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


@contextmanager
def session_context(session_id: str, **extra: object) -> Iterator[None]:
    """Attach ``session_id`` (and *extra*) to every event logged inside the block.

    Timer callbacks armed inside the block inherit the context too, since
    asyncio copies the current context into each scheduled callback.
    """
    with structlog.contextvars.bound_contextvars(session_id=session_id, **extra):
        yield
