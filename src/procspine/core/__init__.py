"""Core primitives shared by the pipe registry and the job runner."""

from procspine.core.errors import (
    ErrorCategory,
    IncompleteDrainError,
    InputError,
    InvalidArgumentError,
    ProcSpineError,
    ResourceExhaustedError,
    WaitError,
    categorize_error,
)
from procspine.core.settings import ProcSpineSettings, get_settings, reset_settings

__all__ = [
    # Errors
    "ErrorCategory",
    "ProcSpineError",
    "InvalidArgumentError",
    "ResourceExhaustedError",
    "WaitError",
    "InputError",
    "IncompleteDrainError",
    "categorize_error",
    # Settings
    "ProcSpineSettings",
    "get_settings",
    "reset_settings",
]
