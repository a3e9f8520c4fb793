"""Command-line interface for reflect.

This module provides the main CLI entry point and assembles all commands.

Commands:
- watch: Mirror synced folders continuously as files change
- sync: Mirror synced folders once
"""

from __future__ import annotations

import click

from reflectsync.cli.config import configure_logging, load_or_exit, select_targets
from reflectsync.cli.sync import sync_command
from reflectsync.cli.watch import watch_command


@click.group()
@click.version_option(package_name="reflectsync")
def cli() -> None:
    """reflect - Mirror host folders to remote machines over rsync."""


cli.add_command(watch_command)
cli.add_command(sync_command)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "configure_logging",
    "load_or_exit",
    "select_targets",
]
