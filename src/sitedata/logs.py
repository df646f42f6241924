"""Structured logging setup.

Modules log through `structlog.get_logger()` with dotted event names
(`convergence.round`, `host.request`, ...) and key/value context. The
CLI calls `configure_logging` once, before the build starts.
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from structlog.typing import Processor

LOG_LEVELS = ('debug', 'info', 'warning', 'error')


def configure_logging(level: str = 'info', *, json: bool = False) -> None:
    """Configure structlog for a build.

    Args:
        level: Minimal level of emitted events.
        json: Whether events are rendered as JSON lines instead of
            colored console output.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso'),
    ]

    renderer: Processor
    if json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper()),
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def bind_context(**values: object) -> None:
    """Bind context included in every subsequent event."""
    structlog.contextvars.bind_contextvars(**values)


def clear_context(*names: str) -> None:
    """Unbind some context values, or all of them when no name is given."""
    if names:
        structlog.contextvars.unbind_contextvars(*names)
    else:
        structlog.contextvars.clear_contextvars()
