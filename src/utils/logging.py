# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging for the dashboard service, built on structlog.

Output is JSON outside development and colored console lines in
development or debug mode. Each refresh binds its query name and school
code into the logging context, so every line logged while the refresh runs
carries them.

Example:
    >>> from src.utils.logging import setup_logging, get_logger
    >>> setup_logging(get_settings())
    >>> logger = get_logger(__name__)
    >>> logger.info("Dashboard refreshed", tenant_code="acme")
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

if TYPE_CHECKING:
    from src.core.config.settings import Settings

NOISY_LOGGERS = ("sqlalchemy", "asyncio", "asyncpg", "redis")


def setup_logging(settings: "Settings") -> None:
    """Configure structlog and the standard library root logger.

    Args:
        settings: Application settings providing log_level, debug and
            environment.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.is_development or settings.debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # Modules logging through the standard library share stdout
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("src").setLevel(level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structured logger that records ``name`` under the "logger_name" key.

    The logger stays lazy: one created at import time picks up the
    configuration applied later by setup_logging().
    """
    return structlog.get_logger(logger_name=name)


def bind_context(**kwargs: object) -> None:
    """Bind values to every log line emitted in the current context.

    Contexts are per asyncio task, so values bound inside a refresh task do
    not leak into other refreshes.

    Example:
        >>> bind_context(tenant_code="acme", query="admin-dashboard-stats")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Remove all values bound with bind_context()."""
    structlog.contextvars.clear_contextvars()
