"""Shared types and dataclasses for sync operations.

This module provides:
- ReflectError, TransportError, GuestNotReadyError: Exception classes
- SyncStrategy: Full or incremental resync
- SyncOptions: Policy flags for a watch session
- SyncTarget: One synced folder bound to a machine
- ChangeBatch: Modified/added/removed paths reported for one root
- DispatchResult: Outcome of one batch for one target
- normalize_root: WatchedRoot normalization
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reflectsync.core.machine import Machine
    from reflectsync.sync.excludes import ExcludeMatcher


class ReflectError(Exception):
    """Base exception for reflectsync errors."""


class TransportError(ReflectError):
    """A spawned transport command exited with a non-zero code.

    Attributes:
        command: The command line that failed.
        guestpath: Guest path of the synced folder.
        hostpath: Host path of the synced folder.
        exit_code: Exit code of the process.
        stderr: Captured diagnostic output.
    """

    def __init__(
        self,
        command: str,
        guestpath: str,
        hostpath: str,
        exit_code: int,
        stderr: str,
    ) -> None:
        self.command = command
        self.guestpath = guestpath
        self.hostpath = hostpath
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"There was an error when attempting to rsync a synced folder.\n"
            f"Host path: {hostpath}\n"
            f"Guest path: {guestpath}\n"
            f"Command: {command}\n"
            f"Exit code: {exit_code}\n"
            f"Error: {stderr.strip()}"
        )


class GuestNotReadyError(TransportError):
    """The remote shell could not reach the guest (e.g. it is rebooting)."""


class SyncStrategy(Enum):
    """How a change batch is mirrored to a target."""

    FULL = auto()
    INCREMENTAL = auto()


@dataclass(frozen=True)
class SyncOptions:
    """Policy flags for a watch session.

    Attributes:
        incremental: Send only changed paths where possible.
        poll: Force polling the filesystem instead of native events.
        incremental_delete: Send removals as remote rm/rmdir instead of
            forcing a full resync.
        show_sync_time: Append elapsed time to confirmation lines.
    """

    incremental: bool = True
    poll: bool = False
    incremental_delete: bool = False
    show_sync_time: bool = False


def normalize_root(path: str | os.PathLike[str]) -> str:
    """Return the absolute, resolved, slash-terminated form of a host path."""
    root = str(Path(path).expanduser().resolve())
    if not root.endswith("/"):
        root += "/"
    return root


@dataclass(frozen=True)
class SyncTarget:
    """A synced folder bound to a machine.

    Attributes:
        machine: The remote machine.
        guestpath: Destination path on the machine.
        hostpath: Normalized host path (the WatchedRoot this target binds to).
        exclude: rsync exclude patterns.
        auto: Whether the folder is watched for changes.
        rsync_args: Overrides the default rsync arguments.
        rsync_path: Remote rsync program (``--rsync-path``).
    """

    machine: Machine
    guestpath: str
    hostpath: str
    exclude: tuple[str, ...] = ()
    auto: bool = True
    rsync_args: tuple[str, ...] | None = None
    rsync_path: str | None = None

    @property
    def matchers(self) -> list[ExcludeMatcher]:
        """Get compiled matchers for the exclude patterns."""
        from reflectsync.sync.excludes import compile_excludes

        return compile_excludes(self.exclude)


@dataclass
class ChangeBatch:
    """Paths changed under one root at one point in time.

    The three collections are pairwise disjoint and hold absolute paths.
    """

    modified: list[str] = field(default_factory=list)
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """Check if the batch carries no change."""
        return not (self.modified or self.added or self.removed)


@dataclass
class DispatchResult:
    """Outcome of one change batch for one target.

    Attributes:
        target: The target the batch was mirrored to.
        strategy: Strategy used, None when the target was skipped.
        skipped: Target had no addressable identity.
        not_ready: Guest was unreachable; the batch was dropped.
        errors: Failures raised by individual steps.
        elapsed_time: Time taken in seconds.
    """

    target: SyncTarget
    strategy: SyncStrategy | None = None
    skipped: bool = False
    not_ready: bool = False
    errors: list[Exception] = field(default_factory=list)
    elapsed_time: float = 0.0

    @property
    def success(self) -> bool:
        """Check if every step completed."""
        return not self.skipped and not self.not_ready and not self.errors
