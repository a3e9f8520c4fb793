"""Transport operations for one synced folder.

This module provides:
- Syncer: Runs full mirrors, incremental mirrors and remote removals for a
  SyncTarget, raising TransportError on failure
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING

from reflectsync.sync.process import ExecuteResult, ProcessEvent, ProcessEventKind, execute
from reflectsync.sync.removal import plan_removals
from reflectsync.sync.shell import TransportCommand, TransportCommands, build_commands
from reflectsync.sync.stream import ItemCallback, Runner, stream_items
from reflectsync.sync.types import GuestNotReadyError, TransportError

if TYPE_CHECKING:
    from reflectsync.core.machine import SSHInfo
    from reflectsync.sync.types import SyncTarget

logger = logging.getLogger(__name__)

# ssh exits with 255 when the connection itself fails
SSH_CONNECTION_ERROR = 255


class Syncer:
    """Mirrors a synced folder to its machine.

    Commands are rebuilt whenever the machine's connection parameters change.

    Usage:
        syncer = Syncer(target, workdir="/project")
        syncer.sync_incremental(["src/app.py"])
        syncer.sync_removals(["old/file.txt"])
    """

    # rsync cannot be asked to delete a single path incrementally
    supports_incremental_delete = False

    def __init__(
        self,
        target: SyncTarget,
        workdir: str | None = None,
        runner: Runner = execute,
        incremental_delete: bool = False,
    ) -> None:
        """Initialize the syncer.

        Args:
            target: Synced folder to mirror.
            workdir: Working directory for the transport commands.
            runner: Executes commands.
            incremental_delete: Send removals through remote rm/rmdir.
        """
        self._target = target
        self._workdir = workdir
        self._runner = runner
        self._lock = threading.Lock()
        self._ssh_info: SSHInfo | None = None
        self._commands: TransportCommands | None = None
        if incremental_delete:
            self.supports_incremental_delete = True

    @property
    def target(self) -> SyncTarget:
        """Get the synced folder."""
        return self._target

    @property
    def commands(self) -> TransportCommands:
        """Get the transport commands for the current connection info.

        Rebuilt when the machine is given a new SSHInfo.
        """
        ssh_info = self._target.machine.ssh_info
        with self._lock:
            if self._commands is None or ssh_info != self._ssh_info:
                self._commands = build_commands(
                    ssh_info,
                    self._target.guestpath,
                    self._target.hostpath,
                    excludes=self._target.exclude,
                    workdir=self._workdir,
                    rsync_args=self._target.rsync_args,
                    rsync_path=self._target.rsync_path,
                )
                self._ssh_info = ssh_info
            return self._commands

    def sync_full(self) -> None:
        """Mirror the whole folder."""
        command = self.commands.full
        try:
            result = self._runner(
                command.argv,
                workdir=command.workdir,
                on_event=self._log_output,
            )
        except OSError as e:
            raise self._spawn_error(command, e) from e
        self._check_exit(command, result)

    def sync_incremental(
        self,
        items: Iterable[str],
        on_item: ItemCallback | None = None,
    ) -> None:
        """Mirror only the given root-relative paths."""
        self._send_items(items, self.commands.incremental, on_item)

    def sync_removals(
        self,
        items: Iterable[str],
        on_item: ItemCallback | None = None,
    ) -> None:
        """Remove root-relative paths on the guest, then their emptied parents."""
        plan = plan_removals(items, self._target.hostpath, self._target.guestpath)
        self._send_items(plan.files, self.commands.remove, on_item)
        if plan.directories:
            self.sync_removals_parents(plan.directory_paths)

    def sync_removals_parents(self, guest_items: Iterable[str]) -> None:
        """Remove guest directories, deepest first."""
        self._send_items(guest_items, self.commands.rmdir)

    def _send_items(
        self,
        items: Iterable[str],
        command: TransportCommand,
        on_item: ItemCallback | None = None,
    ) -> None:
        try:
            result = stream_items(items, command, runner=self._runner, on_item=on_item)
        except OSError as e:
            raise self._spawn_error(command, e) from e
        self._check_exit(command, result)

    def _log_output(self, event: ProcessEvent) -> None:
        if event.kind is ProcessEventKind.STDOUT and isinstance(event.payload, bytes):
            logger.debug("%s", event.payload.decode("utf-8", errors="replace").rstrip())

    def _spawn_error(self, command: TransportCommand, error: OSError) -> TransportError:
        # Same code a shell reports for a missing program
        return TransportError(
            command=str(command),
            guestpath=self._target.guestpath,
            hostpath=self._target.hostpath,
            exit_code=127,
            stderr=str(error),
        )

    def _check_exit(self, command: TransportCommand, result: ExecuteResult) -> None:
        if result.exit_code == 0:
            return

        error_class = (
            GuestNotReadyError if result.exit_code == SSH_CONNECTION_ERROR else TransportError
        )
        raise error_class(
            command=str(command),
            guestpath=self._target.guestpath,
            hostpath=self._target.hostpath,
            exit_code=result.exit_code,
            stderr=result.stderr,
        )
