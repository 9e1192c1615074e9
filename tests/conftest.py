"""
Shared pytest fixtures and configuration for procspine tests.

This module provides:
- Settings and default-registry cleanup for test isolation
- Logging reset so no handler outlives the stream it was bound to
- Helpers for building command streams and throwaway executables

The suite forks real child processes and therefore only runs on POSIX.
"""

from __future__ import annotations

import io
import logging
import os
import stat
import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import structlog

from procspine.core.settings import reset_settings
from procspine.pipes import reset_registry

if sys.platform == "win32":  # pragma: no cover
    pytest.skip("procspine requires fork()", allow_module_level=True)


# =============================================================================
# Test Markers Configuration
# =============================================================================


# Test modules that fork real children
_FORKING_MODULES = ("test_pipe_registry", "test_runner", "test_launcher", "test_cli_app")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their module."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if Path(str(item.fspath)).stem in _FORKING_MODULES:
            item.add_marker(pytest.mark.integration)
        elif not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """
    Fresh settings and default registry for every test.

    PROCSPINE_* variables from the developer's shell are removed so the
    defaults under test are the real defaults.
    """
    for key in list(os.environ):
        if key.startswith("PROCSPINE_"):
            monkeypatch.delenv(key, raising=False)
    reset_settings()
    reset_registry()
    yield
    reset_settings()
    reset_registry()


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Drop handlers installed by configure_logging() during a test."""
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()


# =============================================================================
# Helpers
# =============================================================================


@pytest.fixture
def commands() -> Callable[..., io.StringIO]:
    """Build a newline-terminated command stream: ``commands("true", "false")``."""

    def _build(*lines: str) -> io.StringIO:
        return io.StringIO("".join(f"{line}\n" for line in lines))

    return _build


@pytest.fixture
def make_script(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write an executable ``/bin/sh`` script and return its path."""

    def _make(name: str, body: str) -> Path:
        path = tmp_path / name
        path.write_text(f"#!/bin/sh\n{body}\n")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def reap_later() -> Generator[Callable[[int], None], None, None]:
    """Register pids to collect at teardown; for tests that fake waitpid()."""
    pending: list[int] = []
    yield pending.append
    for pid in pending:
        try:
            os.waitpid(pid, 0)
        except ChildProcessError:
            # Already collected by the code under test
            pass
