"""
procspine - process lifecycle primitives.

- procspine.pipes: popen()-style pipe-backed children with a reaping close()
- procspine.execution: bounded-concurrency job runner with outcome statistics
- procspine.core: errors, settings, logging
"""

__version__ = "0.1.0"

from procspine.core.errors import (  # noqa: E402
    IncompleteDrainError,
    InputError,
    InvalidArgumentError,
    ProcSpineError,
    ResourceExhaustedError,
    WaitError,
)
from procspine.execution import BoundedJobExecutor, JobOutcome, JobStatistics, OutcomeKind  # noqa: E402
from procspine.pipes import PipeMode, PipeRegistry, pipe_close, pipe_open  # noqa: E402

__all__ = [
    "__version__",
    "ProcSpineError",
    "InvalidArgumentError",
    "ResourceExhaustedError",
    "WaitError",
    "InputError",
    "IncompleteDrainError",
    "BoundedJobExecutor",
    "JobOutcome",
    "JobStatistics",
    "OutcomeKind",
    "PipeMode",
    "PipeRegistry",
    "pipe_open",
    "pipe_close",
]
