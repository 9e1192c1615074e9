"""Argument checks for the runner: concurrency ceiling and exec-failure status."""

from __future__ import annotations

import resource
import sys

from procspine.core.errors import InvalidArgumentError

# Exit statuses the classifier already gives a meaning to
_RESERVED_STATUSES = (0, 1)
_MAX_EXIT_STATUS = 255


def system_process_limit() -> int:
    """Soft ``RLIMIT_NPROC``; ``sys.maxsize`` when unlimited."""
    soft, _hard = resource.getrlimit(resource.RLIMIT_NPROC)
    if soft == resource.RLIM_INFINITY or soft < 0:
        return sys.maxsize
    return int(soft)


def validate_limit(limit: object) -> int:
    """Return *limit* if it is an integer in ``[1, system_process_limit()]``.

    Raises:
        InvalidArgumentError: Wrong type or out of range.
    """
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidArgumentError(
            f"Concurrency limit must be an integer, got {type(limit).__name__}"
        ).with_context(limit=repr(limit))

    ceiling = system_process_limit()
    if limit < 1 or limit > ceiling:
        raise InvalidArgumentError(
            f"Concurrency limit {limit} is out of range: it should be in [1, {ceiling}]"
        ).with_context(limit=limit, ceiling=ceiling)
    return limit


def validate_exec_failure_status(status: object) -> int:
    """Return *status* if a child can exit with it without colliding with 0 or 1.

    Raises:
        InvalidArgumentError: Wrong type, reserved, or not a valid exit status.
    """
    if isinstance(status, bool) or not isinstance(status, int):
        raise InvalidArgumentError(
            f"Exec-failure status must be an integer, got {type(status).__name__}"
        ).with_context(status=repr(status))

    if status in _RESERVED_STATUSES or not 0 <= status <= _MAX_EXIT_STATUS:
        raise InvalidArgumentError(
            f"Exec-failure status {status} is out of range: it should be in [2, {_MAX_EXIT_STATUS}]"
        ).with_context(status=status)
    return status
