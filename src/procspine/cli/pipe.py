"""
CLI: ``procspine pipe`` — connect our stdin or stdout to a shell command.
"""

from __future__ import annotations

import shutil
import sys

import typer

from procspine.cli.console import err_console
from procspine.cli.ui import render_error
from procspine.core.errors import ProcSpineError
from procspine.pipes import PipeMode, PipeRegistry


def pipe_command(
    command: str = typer.Argument(..., help="Shell command to run."),
    mode: PipeMode = typer.Option(
        PipeMode.READ, "--mode", "-m",
        help="r: copy the command's output to stdout. w: feed our stdin to the command.",
    ),
) -> None:
    """Run COMMAND through a pipe and wait for it.

    Exits with the command's exit status.

    Example::

        procspine pipe "sort data.txt"
        cat data.txt | procspine pipe "uniq -c" --mode w
    """
    registry = PipeRegistry()
    try:
        stream = registry.open(command, mode)
        try:
            if mode is PipeMode.READ:
                shutil.copyfileobj(stream, sys.stdout.buffer)
                sys.stdout.buffer.flush()
            else:
                shutil.copyfileobj(sys.stdin.buffer, stream)
        finally:
            returncode = registry.close(stream)
    except ProcSpineError as exc:
        render_error(exc)
        raise typer.Exit(code=1) from exc

    if returncode != 0:
        err_console.print(f"[yellow]{command!r} exited with status {returncode}[/yellow]")
        raise typer.Exit(code=returncode if returncode > 0 else 1)
