"""Structured logging configuration.

Configures structlog once per process. Every module logs through
``structlog.get_logger(__name__)`` with dotted event names
(``router.route_selected``, ``tot.level_complete``...), and the director binds
a per-turn ``turn_id`` so all events of one ``think()`` call correlate.

Log format (json_logs=True):
    {
        "timestamp": "2026-02-17T10:30:45.123456Z",
        "level": "info",
        "logger": "cogniflow.orchestrator.director",
        "event": "director.turn_complete",
        "turn_id": "turn_3f2a...",
        "user_id": "u-42",
        "plugins_used": ["tree-of-thought"]
    }
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog.types import Processor


def configure_logging(
    *,
    json_logs: bool = False,
    log_level: str = "INFO",
) -> None:
    """Configure structured logging for the application.

    Args:
        json_logs: Use JSON format (True for production, False for dev)
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_logs:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ------------------------------------------------------------------ #
# Context Binding Helpers
# ------------------------------------------------------------------ #


@contextmanager
def turn_context(user_id: str | None = None) -> Iterator[str]:
    """Bind a fresh ``turn_id`` (and ``user_id``) for the duration of one turn.

    Context already bound by the host, such as a request id, is left in place
    and the previous values are restored on exit.

    Yields:
        The generated turn id.
    """
    turn_id = f"turn_{uuid.uuid4().hex[:16]}"
    values = {"turn_id": turn_id}
    if user_id:
        values["user_id"] = str(user_id)
    with structlog.contextvars.bound_contextvars(**values):
        yield turn_id


def clear_context() -> None:
    """Clear all context variables (useful for testing)."""
    structlog.contextvars.clear_contextvars()
