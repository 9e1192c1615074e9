"""Bounded Job Executor — run command lines under a concurrency ceiling.

WHY
───
Batch files of shell-free command lines ("one job per line") are often run
with ``xargs -P`` or ad-hoc scripts that either overload the host or give no
summary. The executor admits at most ``limit`` children at a time, reaps
them as they finish, and accounts for every submitted line.

ARCHITECTURE
────────────
::

    BoundedJobExecutor(limit)
      └── .run(input) ─▶ JobStatistics

    Admission loop (single control thread):

      ┌──────────────────────── active < limit ? ────────────────────────┐
      │ yes                                                          no  │
      ▼                                                                  ▼
    readline()                                              waitpid(-1, 0)
      ├── EOF / quit token ──▶ DRAINING                      (reap ≥ 1, classify)
      ├── "\\n"             ──▶ ignore
      └── command          ──▶ submitted += 1
                               fork + exec (see launcher.py)
                               waitpid(-1, WNOHANG) until nothing is ready

    DRAINING: waitpid(-1, 0) until no tracked child remains ─▶ statistics

Children are tracked by pid. ``waitpid(-1)`` may return a child this
executor did not start; such pids are logged and not counted.

No timeouts: a child that never exits blocks the at-limit branch and the
drain indefinitely.

Example::

    with open("jobs.txt") as jobs:
        stats = BoundedJobExecutor(limit=4).run(jobs)
    print(stats.succeeded, stats.failed, stats.skipped)
"""

from __future__ import annotations

import errno
import os
import uuid
from datetime import UTC, datetime
from typing import IO, Protocol

import structlog

from procspine.core.errors import IncompleteDrainError, InputError, WaitError
from procspine.core.logging import get_logger
from procspine.core.settings import get_settings
from procspine.execution.launcher import spawn, tokenize
from procspine.execution.limits import validate_exec_failure_status, validate_limit
from procspine.execution.outcome import JobOutcome, OutcomeKind
from procspine.execution.stats import JobStatistics

log = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class JobListener(Protocol):
    """Receives per-job progress from a running executor."""

    def job_submitted(self, seq: int, when: datetime, command: str) -> None: ...

    def job_finished(self, seq: int, command: str, outcome: JobOutcome) -> None: ...


class BoundedJobExecutor:
    """Reads command lines and runs each as a child, at most ``limit`` at a time.

    Thread-safety:
        None. One control thread owns the active set and the counters.
    """

    def __init__(
        self,
        limit: int,
        *,
        listener: JobListener | None = None,
        quit_token: str | None = None,
        exec_failure_status: int | None = None,
    ) -> None:
        """
        Args:
            limit: Maximum simultaneously running children,
                ``1 <= limit <= RLIMIT_NPROC``.
            listener: Optional progress receiver (the CLI prints with it).
            quit_token: Line that ends admission like EOF. Defaults to
                ``settings.quit_token``.
            exec_failure_status: Exit status children use when exec fails.
                Defaults to ``settings.exec_failure_status``.

        Raises:
            InvalidArgumentError: *limit* is out of range, or
                *exec_failure_status* collides with 0 or 1.
        """
        settings = get_settings()
        self._limit = validate_limit(limit)
        self._listener = listener
        self._quit_token = settings.quit_token if quit_token is None else quit_token
        self._exec_failure_status = validate_exec_failure_status(
            settings.exec_failure_status if exec_failure_status is None else exec_failure_status
        )

        self._active: set[int] = set()
        self._jobs: dict[int, tuple[int, str]] = {}
        self._peak_active = 0
        self.stats = JobStatistics()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active_children(self) -> int:
        return len(self._active)

    @property
    def peak_active(self) -> int:
        """Highest number of simultaneously tracked children seen so far."""
        return self._peak_active

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, input: IO[str]) -> JobStatistics:
        """Run every command line from *input* and drain all children.

        Returns:
            Final statistics, with ``active_children == 0``.

        Raises:
            InputError: Reading *input* failed (fatal; children already
                started are left running).
            WaitError: ``waitpid()`` failed.
            IncompleteDrainError: Tracked children could not be reaped.
        """
        self.stats = JobStatistics(started_at=_utcnow())
        run_id = uuid.uuid4().hex[:12]

        with structlog.contextvars.bound_contextvars(run_id=run_id, limit=self._limit):
            log.info("run_started")
            try:
                self._admit(input)
                self._drain()
            finally:
                self.stats.finished_at = _utcnow()
            log.info("run_finished", **self.stats.to_dict())

        return self.stats

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def _admit(self, input: IO[str]) -> None:
        while True:
            if len(self._active) < self._limit:
                line = self._read_line(input)

                # EOF
                if line == "":
                    break

                # Blank line: nothing but the terminator
                if line in ("\n", "\r\n"):
                    continue

                command = line.rstrip("\r\n")
                if command == self._quit_token:
                    log.debug("quit_token_read")
                    break

                self._submit(command)
                self._reap(block=False)
            else:
                self._reap(block=True, count=1)

    def _read_line(self, input: IO[str]) -> str:
        try:
            line = input.readline()
            if isinstance(line, bytes):
                line = line.decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise InputError("Error reading from command stream", cause=exc) from exc
        return line

    def _submit(self, command: str) -> None:
        self.stats.submitted += 1
        seq = self.stats.submitted
        when = datetime.now().astimezone()

        log.info("job_submitted", seq=seq, command=command)
        if self._listener is not None:
            self._listener.job_submitted(seq, when, command)

        argv = tokenize(command)
        if not argv:
            self._finish(seq, command, JobOutcome.skipped("empty command"))
            return

        try:
            pid = spawn(argv, exec_failure_status=self._exec_failure_status)
        except OSError as exc:
            # No child exists to reap, so classify right away
            self._finish(seq, command, JobOutcome.skipped(f"fork failed: {exc.strerror}"))
            return

        self._active.add(pid)
        self._jobs[pid] = (seq, command)
        self._peak_active = max(self._peak_active, len(self._active))
        log.debug("job_started", seq=seq, pid=pid, active=len(self._active))

    # ------------------------------------------------------------------
    # Reaping
    # ------------------------------------------------------------------

    def _reap(self, *, block: bool, count: int | None = None) -> int:
        """Reap tracked children.

        Non-blocking: collect whatever has already exited, stopping at the
        first empty poll. Blocking: wait until *count* tracked children (all
        of them when None) have been collected.

        Returns:
            Number of tracked children reaped.
        """
        options = 0 if block else os.WNOHANG
        reaped = 0

        while self._active and (count is None or reaped < count):
            try:
                pid, status = os.waitpid(-1, options)
            except OSError as exc:
                raise WaitError(
                    f"waitpid failed: {exc.strerror}", cause=exc
                ).with_context(active=len(self._active)) from exc

            if pid == 0:
                break

            if pid not in self._active:
                log.warning("foreign_child_reaped", pid=pid, status=status)
                continue

            self._active.discard(pid)
            seq, command = self._jobs.pop(pid)
            reaped += 1

            outcome = JobOutcome.from_wait_status(
                pid, status, exec_failure_status=self._exec_failure_status,
            )
            self._finish(seq, command, outcome)

        return reaped

    def _drain(self) -> None:
        log.debug("drain_started", active=len(self._active))
        try:
            self._reap(block=True)
        except WaitError as exc:
            if exc.errno == errno.ECHILD:
                raise IncompleteDrainError(
                    f"{len(self._active)} children are tracked but none can be reaped",
                    remaining=list(self._active),
                    cause=exc.cause,
                ) from exc
            raise

        if self._active:
            raise IncompleteDrainError(
                f"{len(self._active)} children still active after drain",
                remaining=list(self._active),
            )

    def _finish(self, seq: int, command: str, outcome: JobOutcome) -> None:
        self.stats.record(outcome)

        if outcome.kind is OutcomeKind.SKIPPED:
            log.warning("job_skipped", seq=seq, command=command, **outcome.to_dict())
        elif outcome.kind is OutcomeKind.UNCLASSIFIED:
            log.warning("job_unclassified", seq=seq, command=command, **outcome.to_dict())
        else:
            log.info("job_finished", seq=seq, command=command, **outcome.to_dict())

        if self._listener is not None:
            self._listener.job_finished(seq, command, outcome)


def run_jobs(input: IO[str], limit: int, **kwargs) -> JobStatistics:
    """Shortcut for ``BoundedJobExecutor(limit, **kwargs).run(input)``."""
    return BoundedJobExecutor(limit, **kwargs).run(input)
