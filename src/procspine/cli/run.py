"""
CLI: ``procspine run`` — run command lines under a concurrency limit.
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer

from procspine.cli.console import console
from procspine.cli.ui import ConsoleJobListener, render_error, render_statistics
from procspine.core.errors import ProcSpineError
from procspine.execution import BoundedJobExecutor


def run_command(
    limit: int = typer.Argument(..., help="Maximum number of simultaneously running processes."),
    input_path: Path | None = typer.Option(  # noqa: UP007
        None, "--input", "-i", help="Read command lines from FILE instead of stdin.",
        exists=True, dir_okay=False, readable=True,
    ),
    quit_token: str | None = typer.Option(  # noqa: UP007
        None, "--quit-token", help="Line that stops reading input (default: PROCSPINE_QUIT_TOKEN).",
    ),
    json_out: bool = typer.Option(False, "--json", help="Print final statistics as JSON."),
) -> None:
    """Run one command per input line, at most LIMIT at a time.

    Each line is split on whitespace; the first word is the program. Empty
    lines are ignored and a line with only the quit token stops reading.

    Example::

        procspine run 4 < jobs.txt
        procspine run 2 --input jobs.txt --json
    """
    try:
        executor = BoundedJobExecutor(
            limit,
            listener=None if json_out else ConsoleJobListener(),
            quit_token=quit_token,
        )

        if not json_out:
            console.print("\nStarting executing tasks:\n")

        if input_path is not None:
            with input_path.open("r", encoding="utf-8") as stream:
                stats = executor.run(stream)
        else:
            stats = executor.run(sys.stdin)
    except ProcSpineError as exc:
        render_error(exc)
        raise typer.Exit(code=1) from exc

    if not json_out:
        console.print("\nFinished executing tasks.")
    render_statistics(stats, as_json=json_out)
