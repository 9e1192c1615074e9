"""Pipe Registry — popen()-style pipe-backed child processes.

WHY
───
``subprocess`` hides the child behind a ``Popen`` object. Callers that want
a plain file object (read the child's stdout, or feed its stdin) and a single
``close()`` that also reaps the right child need something that remembers
which descriptor belongs to which process. The registry is that memory.

ARCHITECTURE
────────────
::

    PipeRegistry(initial_capacity=4)
      ├── .open(command, mode)    ─ fork `sh -c command`, return byte stream
      ├── .close(stream)          ─ free slot, close stream, waitpid(child)
      ├── .opened(command, mode)  ─ context manager around open/close
      ├── .lookup(descriptor)     ─ pid owning a live descriptor
      └── .snapshot()             ─ {descriptor: pid} for every live slot

    Slot table (allocated on first open, doubles when full, never shrinks):

      ┌────────────┬────────────┬────────────┬────────────┐
      │ fd=5 pid=… │ fd=-1      │ fd=7 pid=… │ fd=-1      │   capacity 4
      └────────────┴────────────┴────────────┴────────────┘

    Direction:
      mode "r"  child stdout ─▶ pipe ─▶ parent reads stream
      mode "w"  parent writes stream ─▶ pipe ─▶ child stdin

    get_registry()              ─ module-level default (lazy)
    reset_registry()            ─ drop the default (testing)
    pipe_open() / pipe_close()  ─ delegate to the default

BEST PRACTICES
──────────────
- Pass an explicit ``PipeRegistry`` in tests; use the module functions only
  in scripts.
- Always ``close()`` what you ``open()``: an unclosed stream is an unreaped
  child.

Example::

    registry = PipeRegistry()
    stream = registry.open("echo hello", "r")
    assert stream.read() == b"hello\\n"
    assert registry.close(stream) == 0
"""

from __future__ import annotations

import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import IO, NoReturn

from procspine.core.errors import (
    InputError,
    InvalidArgumentError,
    ResourceExhaustedError,
    WaitError,
)
from procspine.core.logging import get_logger
from procspine.core.processes import flush_std_streams
from procspine.core.settings import get_settings

log = get_logger(__name__)

# Descriptor value marking an unused slot
FREE_DESCRIPTOR = -1

# Child exit status when the shell itself cannot be executed. sh reserves
# 126 and 127 for commands it cannot run and 128+n for signals.
SHELL_UNAVAILABLE_STATUS = 125


class PipeMode(str, Enum):
    """Direction of a pipe, seen from the caller."""

    READ = "r"
    WRITE = "w"

    @classmethod
    def parse(cls, value: str | PipeMode) -> PipeMode:
        """Accept ``"r"``/``"read"`` or ``"w"``/``"write"``; reject anything else."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            if value in ("r", "read"):
                return cls.READ
            if value in ("w", "write"):
                return cls.WRITE
        raise InvalidArgumentError(
            f"Invalid pipe mode {value!r}: expected 'r' or 'w'"
        ).with_context(mode=repr(value))

    @property
    def child_fd(self) -> int:
        """Standard descriptor the child's pipe end is duplicated onto."""
        return 0 if self is PipeMode.WRITE else 1

    @property
    def file_mode(self) -> str:
        return "wb" if self is PipeMode.WRITE else "rb"


@dataclass
class PipeSlot:
    """One entry of the slot table."""

    descriptor: int = FREE_DESCRIPTOR
    pid: int = 0
    command: str = ""

    @property
    def is_free(self) -> bool:
        return self.descriptor == FREE_DESCRIPTOR

    def release(self) -> None:
        self.descriptor = FREE_DESCRIPTOR
        self.pid = 0
        self.command = ""


class PipeRegistry:
    """Opens shell commands as pipe-backed streams and reaps them on close.

    Slot allocation and release are serialized by a lock, so one registry
    may be shared between threads. ``close()`` waits for the child outside
    the lock.
    """

    def __init__(
        self,
        initial_capacity: int | None = None,
        shell: str | None = None,
    ) -> None:
        """
        Args:
            initial_capacity: Slots allocated on first open. Defaults to
                ``settings.pipe_table_capacity``.
            shell: Interpreter used as ``shell -c command``. Defaults to
                ``settings.shell``.
        """
        settings = get_settings()
        capacity = settings.pipe_table_capacity if initial_capacity is None else initial_capacity
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise InvalidArgumentError(f"initial_capacity must be a positive integer, got {capacity!r}")

        self._initial_capacity = capacity
        self._shell = shell or settings.shell
        self._slots: list[PipeSlot] | None = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        """Current table size; 0 until the first open."""
        with self._lock:
            return 0 if self._slots is None else len(self._slots)

    @property
    def open_count(self) -> int:
        with self._lock:
            if self._slots is None:
                return 0
            return sum(1 for slot in self._slots if not slot.is_free)

    def lookup(self, descriptor: int) -> int | None:
        """Return the pid owning *descriptor*, or None."""
        with self._lock:
            slot = self._find(descriptor)
            return slot.pid if slot else None

    def snapshot(self) -> dict[int, int]:
        """Map of every live descriptor to its child's pid."""
        with self._lock:
            if self._slots is None:
                return {}
            return {slot.descriptor: slot.pid for slot in self._slots if not slot.is_free}

    # ------------------------------------------------------------------
    # Core lifecycle
    # ------------------------------------------------------------------

    def open(self, command: str, mode: str | PipeMode = PipeMode.READ) -> IO[bytes]:
        """Start ``shell -c command`` connected to a new pipe.

        Args:
            command: Shell command line.
            mode: ``"r"`` to read the child's stdout, ``"w"`` to write its stdin.

        Returns:
            Buffered binary stream over the parent's end of the pipe.

        Raises:
            InvalidArgumentError: Bad mode or non-string command.
            ResourceExhaustedError: Slot table growth, ``pipe()`` or ``fork()``
                failed. The table is left as it was.
        """
        pipe_mode = PipeMode.parse(mode)
        if not isinstance(command, str):
            raise InvalidArgumentError(f"command must be a string, got {type(command).__name__}")

        with self._lock:
            slot = self._acquire_slot()

            try:
                fds = os.pipe()
            except OSError as exc:
                raise ResourceExhaustedError(
                    f"pipe() failed: {exc.strerror}", cause=exc
                ).with_context(command=command) from exc

            child_end = fds[pipe_mode.child_fd]
            parent_end = fds[1 - pipe_mode.child_fd]

            flush_std_streams()
            try:
                pid = os.fork()
            except OSError as exc:
                os.close(fds[0])
                os.close(fds[1])
                raise ResourceExhaustedError(
                    f"fork() failed: {exc.strerror}", cause=exc
                ).with_context(command=command) from exc

            if pid == 0:
                self._exec_child(command, pipe_mode, fds)

            slot.descriptor = parent_end
            slot.pid = pid
            slot.command = command
            os.close(child_end)

        log.debug("pipe_opened", command=command, mode=pipe_mode.value, pid=pid, descriptor=parent_end)
        return os.fdopen(parent_end, pipe_mode.file_mode)

    def close(self, stream: IO[bytes]) -> int:
        """Close a stream returned by :meth:`open` and wait for its child.

        Returns:
            The child's exit code, or the negated signal number if it was
            killed. A non-zero value is not an error.

        Raises:
            InvalidArgumentError: Nothing was ever opened, or *stream* is not
                owned by this registry. No wait is performed.
            WaitError: ``waitpid()`` failed.
            InputError: Closing *stream* failed with something other than a
                broken pipe. The child has been reaped by then.
        """
        with self._lock:
            if self._slots is None:
                raise InvalidArgumentError("close() called before any open()")

            try:
                descriptor = stream.fileno()
            except (AttributeError, ValueError, OSError) as exc:
                raise InvalidArgumentError("Stream has no usable descriptor", cause=exc) from exc

            slot = self._find(descriptor)
            if slot is None:
                raise InvalidArgumentError(
                    f"Descriptor {descriptor} is not owned by this registry"
                ).with_context(descriptor=descriptor)

            pid = slot.pid
            slot.release()

        close_error: OSError | None = None
        try:
            stream.close()
        except BrokenPipeError:
            # Reader went away before our buffer was flushed; the descriptor is closed anyway
            log.debug("pipe_flush_broken", pid=pid, descriptor=descriptor)
        except OSError as exc:
            close_error = exc

        try:
            _, status = os.waitpid(pid, 0)
        except OSError as exc:
            raise WaitError(
                f"waitpid({pid}) failed: {exc.strerror}", cause=exc
            ).with_context(pid=pid) from exc

        returncode = os.waitstatus_to_exitcode(status)
        log.debug("pipe_closed", pid=pid, descriptor=descriptor, returncode=returncode)

        if close_error is not None:
            raise InputError(
                f"Closing pipe to pid {pid} failed: {close_error.strerror}", cause=close_error
            ).with_context(pid=pid, returncode=returncode) from close_error
        return returncode

    @contextmanager
    def opened(self, command: str, mode: str | PipeMode = PipeMode.READ) -> Iterator[IO[bytes]]:
        """Context manager: ``open()`` on enter, ``close()`` on exit."""
        stream = self.open(command, mode)
        try:
            yield stream
        finally:
            self.close(stream)

    # ------------------------------------------------------------------
    # Internal helpers (call with the lock held)
    # ------------------------------------------------------------------

    def _find(self, descriptor: int) -> PipeSlot | None:
        if self._slots is None or descriptor == FREE_DESCRIPTOR:
            return None
        for slot in self._slots:
            if slot.descriptor == descriptor:
                return slot
        return None

    def _acquire_slot(self) -> PipeSlot:
        if self._slots is None:
            self._slots = [PipeSlot() for _ in range(self._initial_capacity)]

        for slot in self._slots:
            if slot.is_free:
                return slot

        first_new = len(self._slots)
        self._grow()
        return self._slots[first_new]

    def _grow(self) -> None:
        """Double the table. The new list is complete before it replaces the old one."""
        current = len(self._slots)
        try:
            grown = self._slots + [PipeSlot() for _ in range(current)]
        except MemoryError as exc:
            raise ResourceExhaustedError(
                "Could not grow pipe slot table", cause=exc
            ).with_context(capacity=current) from exc

        self._slots = grown
        log.debug("pipe_table_grown", capacity=len(grown))

    def _exec_child(self, command: str, mode: PipeMode, fds: tuple[int, int]) -> NoReturn:
        """Runs in the forked child; never returns."""
        try:
            os.dup2(fds[mode.child_fd], mode.child_fd)
            for fd in fds:
                if fd != mode.child_fd:
                    os.close(fd)
            os.execv(self._shell, [os.path.basename(self._shell), "-c", command])
        finally:
            os._exit(SHELL_UNAVAILABLE_STATUS)


# --------------------------------------------------------------------------- #
# Module-level default registry
# --------------------------------------------------------------------------- #

_default_registry: PipeRegistry | None = None
_default_lock = threading.Lock()


def get_registry() -> PipeRegistry:
    """Get or create the process-wide default registry."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = PipeRegistry()
        return _default_registry


def reset_registry() -> None:
    """Drop the default registry (for testing)."""
    global _default_registry
    with _default_lock:
        _default_registry = None


def pipe_open(command: str, mode: str | PipeMode = PipeMode.READ) -> IO[bytes]:
    """``open()`` on the default registry."""
    return get_registry().open(command, mode)


def pipe_close(stream: IO[bytes]) -> int:
    """``close()`` on the default registry."""
    return get_registry().close(stream)
