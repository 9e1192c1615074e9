"""Small helpers shared by every code path that forks."""

from __future__ import annotations

import sys


def flush_std_streams() -> None:
    """Flush Python-level stdout/stderr so a forked child cannot replay buffered output."""
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except (AttributeError, ValueError):
            # Replaced by None or already closed
            pass
