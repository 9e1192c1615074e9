"""
Root Typer application for the procspine CLI.

    procspine run LIMIT [--input FILE]     run command lines, LIMIT at a time
    procspine pipe COMMAND [--mode r|w]    stream through a pipe-backed child
"""

from __future__ import annotations

import typer

from procspine import __version__
from procspine.cli.logging_config import LogFormat, LogLevel, configure_cli_logging

app = typer.Typer(
    name="procspine",
    help="procspine — bounded process runner and pipe-backed children.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"procspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: LogLevel | None = typer.Option(  # noqa: UP007
        None, "--log-level", help="Logging level (default: PROCSPINE_LOG_LEVEL).",
        case_sensitive=False,
    ),
    log_format: LogFormat | None = typer.Option(  # noqa: UP007
        None, "--log-format", help="Log format (default: PROCSPINE_LOG_FORMAT).",
        case_sensitive=False,
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors."),
) -> None:
    """procspine CLI — run jobs under a concurrency limit, open pipes to shell commands."""
    configure_cli_logging(log_level=log_level, log_format=log_format, quiet=quiet)


# ── Sub-command registration ─────────────────────────────────────────────

from procspine.cli.pipe import pipe_command  # noqa: E402
from procspine.cli.run import run_command  # noqa: E402

app.command("run")(run_command)
app.command("pipe")(pipe_command)


def cli_main() -> None:
    """Console-script entry point."""
    app()


if __name__ == "__main__":
    cli_main()
