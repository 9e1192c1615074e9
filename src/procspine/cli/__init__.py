"""Command-line interface for procspine."""

from procspine.cli.app import app, cli_main

__all__ = ["app", "cli_main"]
