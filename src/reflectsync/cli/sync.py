"""Sync command for the reflect CLI.

Commands:
- sync: Mirror synced folders once
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from reflectsync.cli.config import configure_logging, load_or_exit, select_targets
from reflectsync.sync.dispatcher import SyncDispatcher
from reflectsync.sync.types import SyncOptions
from reflectsync.ui import ConsoleUI


@click.command("sync")
@click.argument("machines", nargs=-1)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file (default: reflect.json in the current directory or a parent).",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def sync_command(machines: tuple[str, ...], config_path: Path | None, verbose: bool) -> None:
    """Mirror every synced folder of MACHINES (default: all) once."""
    configure_logging(verbose)
    config = load_or_exit(config_path)
    targets = select_targets(config, machines)
    if not targets:
        click.echo("No synced folders configured.")
        return

    options = SyncOptions(show_sync_time=config.show_sync_time)
    dispatcher = SyncDispatcher(ConsoleUI(), options, workdir=str(config.root_path))
    results = dispatcher.initial_sync(targets)

    skipped = [result for result in results if result.skipped]
    for result in skipped:
        click.echo(f"Skipped {result.target.machine.name}: machine is not created.")

    failed = [result for result in results if not result.success and not result.skipped]
    if failed:
        sys.exit(1)
