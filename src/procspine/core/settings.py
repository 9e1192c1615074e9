"""Configuration management using Pydantic Settings.

Values are read from ``PROCSPINE_*`` environment variables and an optional
``.env`` file. Unknown variables are ignored.

Examples:
    >>> from procspine.core.settings import get_settings
    >>> get_settings().quit_token
    'q'
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProcSpineSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Fields
    ──────
    log_level           : Structlog log level
    log_format          : ``console`` for development, ``json`` for aggregation
    shell               : Interpreter used by the pipe registry (``shell -c command``)
    quit_token          : Input line that ends the runner's admission loop
    pipe_table_capacity : Initial slot count of a pipe registry table
    exec_failure_status : Exit status a child uses when exec fails
    """

    model_config = SettingsConfigDict(
        env_prefix="PROCSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    log_format: Literal["json", "console"] = "console"

    # ── Pipe registry ────────────────────────────────────────────
    shell: str = "/bin/sh"
    pipe_table_capacity: int = Field(default=4, ge=1)

    # ── Runner ───────────────────────────────────────────────────
    quit_token: str = "q"
    exec_failure_status: int = Field(
        default=100,
        ge=2,
        le=255,
        description="Must not collide with EXIT_SUCCESS (0) or EXIT_FAILURE (1)",
    )


# Global settings instance
_settings: ProcSpineSettings | None = None


def get_settings() -> ProcSpineSettings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = ProcSpineSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
