"""Rich console singletons shared by CLI commands."""

from __future__ import annotations

from rich.console import Console

# stdout carries the report; errors and inline job warnings go to stderr
console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)
