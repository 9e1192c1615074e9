"""Logging configuration for CLI."""

from __future__ import annotations

from enum import Enum

from procspine.core.logging import configure_logging


class LogLevel(str, Enum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    """Log format options."""

    CONSOLE = "console"
    JSON = "json"


def configure_cli_logging(
    log_level: LogLevel | None = None,
    log_format: LogFormat | None = None,
    quiet: bool = False,
) -> None:
    """
    Configure logging for CLI. Logs always go to stderr.

    Args:
        log_level: Logging level; None falls back to PROCSPINE_LOG_LEVEL
        log_format: Format for logs; None falls back to PROCSPINE_LOG_FORMAT
        quiet: If True, only errors are logged
    """
    level = LogLevel.ERROR if quiet else log_level
    configure_logging(
        level=level.value if level else None,
        format=log_format.value if log_format else None,
        force=True,
    )
