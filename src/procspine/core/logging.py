"""
Logging configuration.

Provides a single entry point for configuring structured logging.
Configuration is read from arguments first, then from the environment:

- PROCSPINE_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: WARNING)
- PROCSPINE_LOG_FORMAT: json | console (default: console)

Logs always go to stderr. The runner's progress report owns stdout.

Usage:
    from procspine.core.logging import configure_logging, get_logger

    configure_logging(level="DEBUG")
    log = get_logger(__name__)
    log.info("job_submitted", seq=1, command="true")
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Literal

import structlog
from structlog.types import Processor

from procspine.core.settings import get_settings

# Track if logging has been configured
_configured = False


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Should be called once at startup (CLI entry). Subsequent calls are
    no-ops unless force=True.

    Args:
        level: Log level (overrides PROCSPINE_LOG_LEVEL)
        format: Output format (overrides PROCSPINE_LOG_FORMAT)
        force: Reconfigure even if already configured
    """
    global _configured

    if _configured and not force:
        return

    settings = get_settings()
    log_level = (level or settings.log_level).upper()
    log_format = (format or settings.log_format).lower()

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        # UTC ISO-8601 with Z suffix
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )
    logging.getLogger("procspine").setLevel(getattr(logging, log_level))

    _configured = True


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """Return a structlog logger bound to *name*."""
    return structlog.get_logger(name, **initial_values)


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured
