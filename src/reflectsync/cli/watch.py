"""Watch command for the reflect CLI.

Commands:
- watch: Mirror synced folders continuously as files change
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from reflectsync.cli.config import configure_logging, load_or_exit, select_targets
from reflectsync.sync.coordinator import WatchCoordinator
from reflectsync.sync.dispatcher import SyncDispatcher
from reflectsync.sync.types import SyncOptions
from reflectsync.ui import ConsoleUI

logger = logging.getLogger(__name__)


@click.command("watch")
@click.argument("machines", nargs=-1)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file (default: reflect.json in the current directory or a parent).",
)
@click.option("--poll/--no-poll", default=False, help="Force polling filesystem (slow).")
@click.option(
    "--incremental/--no-incremental",
    default=True,
    help="Perform incremental copies of changes where possible (fast).",
)
@click.option(
    "--incremental-delete/--no-incremental-delete",
    default=False,
    help="Remove deleted files with remote rm instead of a full resync.",
)
@click.option("--initial/--no-initial", default=True, help="Run a full rsync before watching.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def watch_command(
    machines: tuple[str, ...],
    config_path: Path | None,
    poll: bool,
    incremental: bool,
    incremental_delete: bool,
    initial: bool,
    verbose: bool,
) -> None:
    """Watch synced folders and mirror changes to MACHINES (default: all).

    Runs until interrupted with Ctrl-C.
    """
    configure_logging(verbose)
    config = load_or_exit(config_path)
    targets = select_targets(config, machines)

    options = SyncOptions(
        incremental=incremental,
        poll=poll,
        incremental_delete=incremental_delete,
        show_sync_time=config.show_sync_time,
    )
    ui = ConsoleUI()
    dispatcher = SyncDispatcher(ui, options, workdir=str(config.root_path))

    for target in targets:
        ui.info(f"Rsyncing folder: {target.hostpath} => {target.guestpath}", target.machine.name)
        if target.exclude:
            ui.info(f"  - Exclude: {list(target.exclude)}", target.machine.name)

    if initial:
        dispatcher.initial_sync(targets)

    coordinator = WatchCoordinator(targets, dispatcher, options)
    if not coordinator.bindings:
        ui.info("There are no paths to watch! This is either because no machine has")
        ui.info("synced folders, or every folder has automatic syncing disabled.")
        sys.exit(1)

    for binding in coordinator.bindings:
        for target in binding.targets:
            ui.info(f"Watching: {binding.root}", target.machine.name)

    logger.info("Listening via: %s", "polling" if poll else "native events")
    sys.exit(coordinator.run())
