"""
Structured error types for procspine.

Every failure the pipe registry or the job runner can surface is a
``ProcSpineError`` subclass carrying a category, optional ``errno`` from the
underlying system call, and a small context dict for structured logging.

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────────┐
        │                      ProcSpineError                            │
        │          (category, errno, context, cause)                     │
        ├───────────────────────────────────────────────────────────────┤
        │                                                                │
        │  InvalidArgumentError   ResourceExhaustedError   WaitError     │
        │  (VALIDATION)           (RESOURCE)               (PROCESS)     │
        │                                                                │
        │  InputError             IncompleteDrainError                   │
        │  (IO)                   (SUPERVISION)                          │
        └───────────────────────────────────────────────────────────────┘

Propagation:
    - Registry errors go straight to the caller; nothing is retried.
    - A single job's fork/exec failure never raises; it is counted as skipped.
    - ``InputError``, ``WaitError`` and ``IncompleteDrainError`` abort a run.

Examples:
    >>> err = ResourceExhaustedError("pipe() failed", errno=24)
    >>> err.category
    <ErrorCategory.RESOURCE: 'RESOURCE'>
    >>> err.to_dict()["errno"]
    24
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and rendering."""

    VALIDATION = "VALIDATION"      # Bad caller input (mode flag, limit, foreign stream)
    RESOURCE = "RESOURCE"          # Allocation, pipe, fork exhaustion
    PROCESS = "PROCESS"            # waitpid() itself failed
    IO = "IO"                      # Command stream read or pipe close failed
    SUPERVISION = "SUPERVISION"    # Child bookkeeping invariant broken
    INTERNAL = "INTERNAL"


class ProcSpineError(Exception):
    """
    Base exception for all procspine errors.

    Subclasses set ``default_category``. When wrapping an ``OSError`` pass it
    as ``cause``; its ``errno`` is picked up automatically unless given.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        errno: int | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        if errno is None and isinstance(cause, OSError):
            errno = cause.errno
        self.errno = errno
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    @property
    def reason(self) -> str | None:
        """``strerror`` text for the preserved errno, if any."""
        if self.errno is None:
            return None
        return os.strerror(self.errno)

    def with_context(self, **kwargs: Any) -> ProcSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise WaitError("waitpid failed").with_context(pid=1234)
        """
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.errno is not None:
            result["errno"] = self.errno
            result["reason"] = self.reason
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CALLER ERRORS
# =============================================================================


class InvalidArgumentError(ProcSpineError, ValueError):
    """Bad mode flag, out-of-range concurrency limit, or a stream the registry does not own."""

    default_category = ErrorCategory.VALIDATION


# =============================================================================
# SYSTEM ERRORS
# =============================================================================


class ResourceExhaustedError(ProcSpineError):
    """Slot table growth, ``pipe()`` or ``fork()`` failed."""

    default_category = ErrorCategory.RESOURCE


class WaitError(ProcSpineError):
    """The wait primitive failed, as opposed to the child merely exiting non-zero."""

    default_category = ErrorCategory.PROCESS


class InputError(ProcSpineError):
    """I/O failure on a stream procspine owns: reading commands or closing a pipe."""

    default_category = ErrorCategory.IO


class IncompleteDrainError(ProcSpineError):
    """Children remain tracked after the drain phase ran out of children to reap."""

    default_category = ErrorCategory.SUPERVISION

    def __init__(self, message: str, *, remaining: list[int] | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.remaining = sorted(remaining or [])
        if self.remaining:
            self.context.setdefault("remaining_pids", self.remaining)


def categorize_error(error: BaseException) -> ErrorCategory:
    """Return the category of *error*, ``INTERNAL`` for foreign exceptions."""
    if isinstance(error, ProcSpineError):
        return error.category
    return ErrorCategory.INTERNAL
