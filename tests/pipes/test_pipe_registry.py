"""Tests for PipeRegistry — pipe-backed children and the slot table.

Tests:
    - Mode parsing and argument validation
    - Read and write pipes end to end
    - close() returns the child's exit status and frees the slot
    - Foreign / closed streams are rejected without waiting
    - Table growth keeps every descriptor → pid pair
    - Allocation, pipe() and fork() failures leave the table consistent
    - Module-level default registry
"""

from __future__ import annotations

import errno
import os
import threading

import pytest

import procspine.pipes.registry as registry_module
from procspine.core.errors import (
    InputError,
    InvalidArgumentError,
    ResourceExhaustedError,
    WaitError,
)
from procspine.core.settings import reset_settings
from procspine.pipes import (
    SHELL_UNAVAILABLE_STATUS,
    PipeMode,
    PipeRegistry,
    get_registry,
    pipe_close,
    pipe_open,
    reset_registry,
)


@pytest.fixture
def registry():
    return PipeRegistry()


# ── Mode parsing ─────────────────────────────────────────────────────────


class TestPipeMode:
    @pytest.mark.parametrize("value", ["r", "read", PipeMode.READ])
    def test_read_aliases(self, value):
        assert PipeMode.parse(value) is PipeMode.READ

    @pytest.mark.parametrize("value", ["w", "write", PipeMode.WRITE])
    def test_write_aliases(self, value):
        assert PipeMode.parse(value) is PipeMode.WRITE

    @pytest.mark.parametrize("value", ["x", "", "rw", "R", None, 1])
    def test_invalid(self, value):
        with pytest.raises(InvalidArgumentError):
            PipeMode.parse(value)

    def test_child_fd(self):
        assert PipeMode.READ.child_fd == 1
        assert PipeMode.WRITE.child_fd == 0


# ── Validation ───────────────────────────────────────────────────────────


class TestValidation:
    def test_bad_mode_rejected_before_allocation(self, registry):
        with pytest.raises(InvalidArgumentError):
            registry.open("echo hello", "x")
        assert registry.capacity == 0

    def test_non_string_command(self, registry):
        with pytest.raises(InvalidArgumentError):
            registry.open(["echo", "hello"], "r")

    @pytest.mark.parametrize("capacity", [0, -1, True, 2.0])
    def test_bad_initial_capacity(self, capacity):
        with pytest.raises(InvalidArgumentError):
            PipeRegistry(initial_capacity=capacity)

    def test_table_is_lazy(self, registry):
        assert registry.capacity == 0
        assert registry.snapshot() == {}


# ── Open / close lifecycle ───────────────────────────────────────────────


class TestOpenClose:
    def test_read_echo(self, registry):
        stream = registry.open("echo hello", "r")
        assert registry.open_count == 1
        assert registry.lookup(stream.fileno()) is not None

        assert stream.read() == b"hello\n"
        assert registry.close(stream) == 0

        assert registry.open_count == 0
        assert registry.capacity == 4

    def test_write_to_child_stdin(self, registry, tmp_path):
        target = tmp_path / "out.txt"
        stream = registry.open(f"cat > {target}", "w")
        stream.write(b"line one\nline two\n")

        assert registry.close(stream) == 0
        assert target.read_bytes() == b"line one\nline two\n"

    def test_nonzero_exit_is_not_an_error(self, registry):
        stream = registry.open("exit 3", "r")
        assert registry.close(stream) == 3

    def test_killed_child_reports_negative_signal(self, registry):
        stream = registry.open("kill -9 $$", "r")
        assert registry.close(stream) == -9

    def test_missing_shell_exits_with_distinguished_status(self):
        registry = PipeRegistry(shell="/no/such/shell")
        stream = registry.open("echo hello", "r")

        assert stream.read() == b""
        assert registry.close(stream) == SHELL_UNAVAILABLE_STATUS

    def test_missing_shell_differs_from_missing_command(self, registry):
        missing_command = registry.open("no_such_command_xyz 2>/dev/null", "r")
        assert registry.close(missing_command) == 127

        no_shell = PipeRegistry(shell="/no/such/shell")
        missing_shell = no_shell.open("true", "r")
        assert no_shell.close(missing_shell) == SHELL_UNAVAILABLE_STATUS
        assert SHELL_UNAVAILABLE_STATUS not in (126, 127)

    def test_write_after_reader_exit(self, registry):
        stream = registry.open("exit 0", "w")
        stream.write(b"x" * 10)
        # The child never reads; flushing on close may hit a broken pipe
        assert registry.close(stream) == 0

    def test_slot_reused_after_close(self, registry):
        first = registry.open("true", "r")
        registry.close(first)
        capacity = registry.capacity

        second = registry.open("true", "r")
        assert registry.capacity == capacity
        assert registry.open_count == 1
        registry.close(second)

    def test_opened_context_manager(self, registry):
        with registry.opened("echo ctx", "r") as stream:
            assert stream.read() == b"ctx\n"
            assert registry.open_count == 1
        assert registry.open_count == 0


# ── Rejected close() calls ───────────────────────────────────────────────


class TestCloseRejects:
    def test_close_before_any_open(self, registry, tmp_path):
        with open(tmp_path / "f", "wb") as handle:
            with pytest.raises(InvalidArgumentError):
                registry.close(handle)

    def test_foreign_stream_does_not_wait(self, registry, tmp_path, monkeypatch):
        owned = registry.open("true", "r")
        calls = []

        with open(tmp_path / "f", "wb") as foreign:
            with monkeypatch.context() as m:
                m.setattr(os, "waitpid", lambda *a: calls.append(a) or (0, 0))
                with pytest.raises(InvalidArgumentError):
                    registry.close(foreign)

        assert calls == []
        assert registry.open_count == 1
        registry.close(owned)

    def test_already_closed_stream(self, registry):
        stream = registry.open("true", "r")
        registry.close(stream)

        with pytest.raises(InvalidArgumentError):
            registry.close(stream)

    def test_stream_from_other_registry(self, registry):
        other = PipeRegistry()
        stream = other.open("true", "r")
        owned = registry.open("true", "r")

        with pytest.raises(InvalidArgumentError):
            registry.close(stream)
        assert other.close(stream) == 0
        assert registry.close(owned) == 0


# ── Table growth ─────────────────────────────────────────────────────────


class TestGrowth:
    def test_growth_doubles_and_preserves_pairs(self):
        registry = PipeRegistry(initial_capacity=2)
        streams = []
        capacities = []

        for i in range(5):
            before = registry.snapshot()
            streams.append(registry.open(f"echo {i}", "r"))
            after = registry.snapshot()

            # Every earlier pair survives unchanged
            assert {fd: after[fd] for fd in before} == before
            assert len(after) == len(before) + 1
            capacities.append(registry.capacity)

        assert capacities == [2, 2, 4, 4, 8]
        assert len(set(registry.snapshot().values())) == 5

        for i, stream in enumerate(streams):
            assert stream.read() == f"{i}\n".encode()
            assert registry.close(stream) == 0
        assert registry.capacity == 8

    def test_alternating_modes_no_cross_contamination(self, tmp_path):
        registry = PipeRegistry(initial_capacity=1)
        opened = []

        for i in range(6):
            if i % 2 == 0:
                stream = registry.open(f"echo out{i}; exit {i + 10}", "r")
            else:
                stream = registry.open(f"cat > {tmp_path / f'in{i}'}; exit {i + 10}", "w")
            opened.append(stream)

        # Close in reverse order; each close must reap only its own child
        for i in reversed(range(6)):
            stream = opened[i]
            if i % 2 == 0:
                assert stream.read() == f"out{i}\n".encode()
            else:
                stream.write(f"in{i}\n".encode())
            assert registry.close(stream) == i + 10

        for i in range(1, 6, 2):
            assert (tmp_path / f"in{i}").read_text() == f"in{i}\n"
        assert registry.open_count == 0

    def test_growth_failure_leaves_table_intact(self, monkeypatch):
        registry = PipeRegistry(initial_capacity=1)
        first = registry.open("true", "r")
        before = registry.snapshot()

        def no_memory():
            raise MemoryError

        with monkeypatch.context() as m:
            m.setattr(registry_module, "PipeSlot", no_memory)
            with pytest.raises(ResourceExhaustedError):
                registry.open("true", "r")

        assert registry.capacity == 1
        assert registry.snapshot() == before
        assert registry.close(first) == 0


# ── System call failures ─────────────────────────────────────────────────


class TestSystemFailures:
    def test_pipe_failure(self, registry, monkeypatch):
        def failing_pipe():
            raise OSError(errno.EMFILE, "Too many open files")

        monkeypatch.setattr(os, "pipe", failing_pipe)
        with pytest.raises(ResourceExhaustedError) as info:
            registry.open("true", "r")

        assert info.value.errno == errno.EMFILE
        assert registry.open_count == 0

    def test_fork_failure_closes_pipe_and_keeps_errno(self, registry, monkeypatch):
        created = []
        real_pipe = os.pipe

        def recording_pipe():
            fds = real_pipe()
            created.extend(fds)
            return fds

        def failing_fork():
            raise OSError(errno.EAGAIN, "Resource temporarily unavailable")

        with monkeypatch.context() as m:
            m.setattr(os, "pipe", recording_pipe)
            m.setattr(os, "fork", failing_fork)
            with pytest.raises(ResourceExhaustedError) as info:
                registry.open("true", "r")

        assert info.value.errno == errno.EAGAIN
        assert registry.open_count == 0
        for fd in created:
            with pytest.raises(OSError):
                os.fstat(fd)

    def test_wait_failure(self, registry, monkeypatch, reap_later):
        stream = registry.open("true", "r")
        reap_later(registry.lookup(stream.fileno()))

        def failing_waitpid(pid, options):
            raise ChildProcessError(errno.ECHILD, "No child processes")

        with monkeypatch.context() as m:
            m.setattr(os, "waitpid", failing_waitpid)
            with pytest.raises(WaitError) as info:
                registry.close(stream)

        assert info.value.errno == errno.ECHILD
        assert registry.open_count == 0

    def test_close_error_still_reaps_child(self, registry):
        stream = registry.open("exit 4", "w")
        pid = registry.lookup(stream.fileno())

        class FailingClose:
            """Delegates to the real stream, then reports a failed close."""

            def fileno(self):
                return stream.fileno()

            def close(self):
                stream.close()
                raise OSError(errno.EIO, "Input/output error")

        with pytest.raises(InputError) as info:
            registry.close(FailingClose())

        assert info.value.errno == errno.EIO
        assert info.value.context["returncode"] == 4
        assert registry.open_count == 0
        with pytest.raises(ChildProcessError):
            os.waitpid(pid, os.WNOHANG)


# ── Concurrency ──────────────────────────────────────────────────────────


class TestThreadSafety:
    def test_concurrent_open_close(self):
        registry = PipeRegistry(initial_capacity=1)
        errors = []
        results = []

        def worker(n: int):
            try:
                for j in range(3):
                    with registry.opened(f"echo {n}-{j}", "r") as stream:
                        results.append(stream.read())
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert sorted(results) == sorted(f"{n}-{j}\n".encode() for n in range(4) for j in range(3))
        assert registry.open_count == 0


# ── Default registry ─────────────────────────────────────────────────────


class TestDefaultRegistry:
    def test_get_registry_is_cached(self):
        assert get_registry() is get_registry()

    def test_reset_registry(self):
        first = get_registry()
        reset_registry()
        assert get_registry() is not first

    def test_module_functions(self):
        stream = pipe_open("echo hello", "r")
        assert stream.read() == b"hello\n"
        assert pipe_close(stream) == 0
        assert get_registry().open_count == 0

    def test_settings_drive_defaults(self, monkeypatch):
        monkeypatch.setenv("PROCSPINE_PIPE_TABLE_CAPACITY", "8")
        reset_settings()
        registry = PipeRegistry()
        stream = registry.open("true", "r")
        assert registry.capacity == 8
        registry.close(stream)
