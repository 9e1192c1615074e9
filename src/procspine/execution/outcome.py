"""Job outcomes — wait statuses decoded once, at the reap boundary.

ARCHITECTURE
────────────
::

    waitpid() status ──▶ JobOutcome.from_wait_status(pid, status)
                              │
          exited 0 ───────────┼──▶ SUCCEEDED
          exited 1 ───────────┼──▶ FAILED
          exited 100 ─────────┼──▶ SKIPPED  (exec failed in the child)
          anything else ──────┴──▶ UNCLASSIFIED (other code, or a signal)

    fork failure / empty argv ──▶ JobOutcome.skipped(reason)

Nothing outside this module compares raw exit codes.
"""

from __future__ import annotations

import os
import signal
from dataclasses import dataclass
from enum import Enum
from typing import Any

from procspine.core.settings import get_settings

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class OutcomeKind(str, Enum):
    """Terminal classification of a submitted job."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class JobOutcome:
    """How one job ended.

    Attributes:
        kind: Classification bucket.
        pid: Child pid, None when no child was ever started.
        exit_code: Exit status if the child exited normally.
        signal: Terminating signal number if the child was killed.
        raw_status: Undecoded wait status.
        reason: Human-readable explanation for SKIPPED and UNCLASSIFIED.
    """

    kind: OutcomeKind
    pid: int | None = None
    exit_code: int | None = None
    signal: int | None = None
    raw_status: int | None = None
    reason: str | None = None

    @classmethod
    def from_wait_status(
        cls,
        pid: int,
        status: int,
        *,
        exec_failure_status: int | None = None,
    ) -> JobOutcome:
        """Decode a ``waitpid()`` status."""
        if exec_failure_status is None:
            exec_failure_status = get_settings().exec_failure_status

        if os.WIFEXITED(status):
            code = os.WEXITSTATUS(status)
            if code == exec_failure_status:
                return cls(
                    OutcomeKind.SKIPPED, pid=pid, exit_code=code, raw_status=status,
                    reason="exec failed",
                )
            if code == EXIT_FAILURE:
                return cls(OutcomeKind.FAILED, pid=pid, exit_code=code, raw_status=status)
            if code == EXIT_SUCCESS:
                return cls(OutcomeKind.SUCCEEDED, pid=pid, exit_code=code, raw_status=status)
            return cls(
                OutcomeKind.UNCLASSIFIED, pid=pid, exit_code=code, raw_status=status,
                reason=f"exited with status {code}",
            )

        if os.WIFSIGNALED(status):
            signum = os.WTERMSIG(status)
            return cls(
                OutcomeKind.UNCLASSIFIED, pid=pid, signal=signum, raw_status=status,
                reason=f"killed by {_signal_name(signum)}",
            )

        return cls(
            OutcomeKind.UNCLASSIFIED, pid=pid, raw_status=status,
            reason=f"unrecognized wait status {status:#x}",
        )

    @classmethod
    def skipped(cls, reason: str, *, pid: int | None = None) -> JobOutcome:
        """A job that never got to run its program."""
        return cls(OutcomeKind.SKIPPED, pid=pid, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"kind": self.kind.value}
        for key in ("pid", "exit_code", "signal", "reason"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        return result


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"
