"""Launching one command line as a child process.

The child resolves its program in two steps:

1. ``execv(argv[0], argv)``: the first token as a literal path.
2. Only if step 1 raised ``FileNotFoundError``: ``execvp(argv[0], argv)``,
   searching ``PATH``.

Any other exec failure (permission denied, bad executable format) does not
fall through. If both steps fail the child writes the reason to stderr and
exits with the exec-failure status, which the parent decodes as SKIPPED.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from typing import NoReturn

from procspine.core.processes import flush_std_streams
from procspine.core.settings import get_settings
from procspine.execution.limits import validate_exec_failure_status


def tokenize(line: str) -> list[str]:
    """Split a command line into an argument vector on whitespace.

    The trailing line terminator is stripped first. No quoting rules apply.

    >>> tokenize("ls -l  /tmp\\n")
    ['ls', '-l', '/tmp']
    """
    return line.rstrip("\r\n").split()


def resolve_and_exec(argv: Sequence[str]) -> NoReturn:
    """Replace the current process image; raises ``OSError`` if both steps fail."""
    args = list(argv)
    try:
        os.execv(args[0], args)
    except FileNotFoundError:
        os.execvp(args[0], args)


def spawn(argv: Sequence[str], *, exec_failure_status: int | None = None) -> int:
    """Fork a child that execs *argv*; returns the child's pid.

    Raises:
        InvalidArgumentError: *exec_failure_status* collides with 0 or 1.
        OSError: ``fork()`` failed. No child exists.
    """
    if not argv:
        raise ValueError("argv must not be empty")
    if exec_failure_status is None:
        exec_failure_status = get_settings().exec_failure_status
    validate_exec_failure_status(exec_failure_status)

    flush_std_streams()
    pid = os.fork()
    if pid == 0:
        _run_child(argv, exec_failure_status)
    return pid


def _run_child(argv: Sequence[str], exec_failure_status: int) -> NoReturn:
    """Runs in the forked child; never returns into the caller's frames."""
    try:
        resolve_and_exec(argv)
    except (OSError, ValueError) as exc:
        reason = exc.strerror if isinstance(exc, OSError) and exc.strerror else str(exc)
        _write_stderr(
            f"\t*** Skipping {' '.join(argv)}: exec failed\n"
            f"\t*** Reason: {reason}\n"
        )
    finally:
        os._exit(exec_failure_status)


def _write_stderr(message: str) -> None:
    # Raw write: the inherited sys.stderr buffer belongs to the parent
    try:
        os.write(2, message.encode("utf-8", errors="replace"))
    except OSError:
        pass
