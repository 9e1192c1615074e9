"""
Bounded job execution.

This package provides:
- BoundedJobExecutor: admission loop, reaping, drain
- JobOutcome / OutcomeKind: decoded child terminations
- JobStatistics: aggregate counters
- tokenize / spawn: argument splitting and two-step exec

Usage:
    from procspine.execution import BoundedJobExecutor

    stats = BoundedJobExecutor(limit=4).run(sys.stdin)
"""

from procspine.execution.launcher import resolve_and_exec, spawn, tokenize
from procspine.execution.limits import (
    system_process_limit,
    validate_exec_failure_status,
    validate_limit,
)
from procspine.execution.outcome import EXIT_FAILURE, EXIT_SUCCESS, JobOutcome, OutcomeKind
from procspine.execution.runner import BoundedJobExecutor, JobListener, run_jobs
from procspine.execution.stats import JobStatistics

__all__ = [
    # Runner
    "BoundedJobExecutor",
    "JobListener",
    "run_jobs",
    # Outcomes
    "JobOutcome",
    "OutcomeKind",
    "JobStatistics",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
    # Launching
    "tokenize",
    "spawn",
    "resolve_and_exec",
    # Limits
    "system_process_limit",
    "validate_limit",
    "validate_exec_failure_status",
]
