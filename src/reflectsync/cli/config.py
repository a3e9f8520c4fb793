"""Configuration utilities for the reflect CLI.

This module provides shared helpers used across CLI commands.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from reflectsync.core.config import ConfigError, ReflectConfig, load_config
from reflectsync.sync.types import SyncTarget

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(verbose: bool) -> None:
    """Send reflectsync diagnostics to stderr.

    Args:
        verbose: Log everything down to DEBUG instead of warnings only.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    reflect_logger = logging.getLogger("reflectsync")
    for existing in reflect_logger.handlers[:]:
        reflect_logger.removeHandler(existing)
    reflect_logger.addHandler(handler)
    reflect_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    reflect_logger.propagate = False


def load_or_exit(config_path: Path | None) -> ReflectConfig:
    """Load the configuration, exiting with an error message on failure."""
    try:
        return load_config(config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def select_targets(config: ReflectConfig, machines: tuple[str, ...]) -> list[SyncTarget]:
    """Build the targets of the selected machines, exiting on unknown names."""
    try:
        return config.build_targets(machines)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
