"""Rendering helpers for runner progress and the final report."""

from __future__ import annotations

import json
from datetime import datetime

from rich.markup import escape
from rich.table import Table

from procspine.cli.console import console, err_console
from procspine.core.errors import ProcSpineError
from procspine.execution import JobOutcome, JobStatistics, OutcomeKind


class ConsoleJobListener:
    """Prints one progress line per submitted job and one line per problem job."""

    def job_submitted(self, seq: int, when: datetime, command: str) -> None:
        console.print(f"{seq:7d}. {when:%I:%M:%S %p} - Starting a new process: {escape(command)}")

    def job_finished(self, seq: int, command: str, outcome: JobOutcome) -> None:
        if outcome.kind is OutcomeKind.SKIPPED:
            err_console.print(
                f"\t[yellow]*** #{seq} skipped:[/yellow] {escape(command)}\n"
                f"\t*** Reason: {escape(outcome.reason or 'unknown')}"
            )
        elif outcome.kind is OutcomeKind.FAILED:
            err_console.print(f"\t[red]*** #{seq} failed:[/red] {escape(command)}")
        elif outcome.kind is OutcomeKind.UNCLASSIFIED:
            err_console.print(
                f"\t[magenta]*** #{seq} unclassified:[/magenta] {escape(command)} "
                f"({escape(outcome.reason or '')})"
            )


def render_statistics(stats: JobStatistics, *, as_json: bool = False) -> None:
    """Print the final counters and elapsed time."""
    if as_json:
        console.print_json(json.dumps(stats.to_dict(), default=str))
        return

    table = Table(title="Executed processes statistics", show_header=False, pad_edge=False)
    table.add_column("outcome")
    table.add_column("count", justify="right")
    table.add_row("Completed with success code", str(stats.succeeded))
    table.add_row("Completed with failure code", str(stats.failed))
    table.add_row("Could not be started", str(stats.skipped))
    if stats.unclassified:
        table.add_row("Other exit status or signal", str(stats.unclassified))
    table.add_row("[bold]Submitted processes[/bold]", f"[bold]{stats.submitted}[/bold]")

    console.print()
    console.print(table)
    console.print(f"\nTotal execution time: {stats.elapsed_seconds:.2f} seconds.")


def render_error(error: ProcSpineError) -> None:
    """Print a ProcSpineError on stderr."""
    err_console.print(
        f"[bold red]Error[/bold red] ({error.category.value}): {escape(error.message)}"
    )
    if error.reason:
        err_console.print(f"  [dim]Reason: {escape(error.reason)}[/dim]")
