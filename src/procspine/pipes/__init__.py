"""Pipe-backed child processes.

Usage:
    from procspine.pipes import PipeRegistry

    registry = PipeRegistry()
    with registry.opened("sort data.txt", "r") as stream:
        for line in stream:
            ...
"""

from procspine.pipes.registry import (
    FREE_DESCRIPTOR,
    SHELL_UNAVAILABLE_STATUS,
    PipeMode,
    PipeRegistry,
    PipeSlot,
    get_registry,
    pipe_close,
    pipe_open,
    reset_registry,
)

__all__ = [
    "FREE_DESCRIPTOR",
    "SHELL_UNAVAILABLE_STATUS",
    "PipeMode",
    "PipeRegistry",
    "PipeSlot",
    "get_registry",
    "reset_registry",
    "pipe_open",
    "pipe_close",
]
