"""Construction of the rsync and ssh commands for a synced folder.

This module provides:
- CommandKind: The four transport operations
- TransportCommand: An immutable spawnable command line
- TransportCommands: The commands for one synced folder
- build_commands: Build TransportCommands from connection info
"""

from __future__ import annotations

import platform
import shlex
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from reflectsync.core.machine import SSHInfo

DEFAULT_RSYNC_ARGS: tuple[str, ...] = (
    "--verbose",
    "--archive",
    "--delete",
    "-z",
    "--links",
)


class CommandKind(Enum):
    """Transport operation a command performs."""

    FULL_MIRROR = "full-mirror"
    INCREMENTAL_MIRROR = "incremental-mirror"
    REMOTE_FILE_REMOVE = "remote-file-remove"
    REMOTE_DIR_REMOVE = "remote-dir-remove"


@dataclass(frozen=True)
class TransportCommand:
    """A spawnable command.

    Attributes:
        kind: Operation performed.
        argv: Command and arguments.
        workdir: Working directory for the process.
        notify_stdin: Whether the command reads items from stdin.
    """

    kind: CommandKind
    argv: tuple[str, ...]
    workdir: str | None = None
    notify_stdin: bool = False

    def __str__(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True)
class TransportCommands:
    """Commands for one synced folder."""

    full: TransportCommand
    incremental: TransportCommand
    remove: TransportCommand
    rmdir: TransportCommand


def rsh_command(ssh_info: SSHInfo) -> list[str]:
    """Build the ssh command used as rsync's remote shell."""
    command = ["ssh", "-p", str(ssh_info.port)]
    if ssh_info.proxy_command:
        command += ["-o", f"ProxyCommand={ssh_info.proxy_command}"]
    command += [
        "-o", "StrictHostKeyChecking=no",
        "-o", "IdentitiesOnly=true",
        "-o", "UserKnownHostsFile=/dev/null",
    ]
    for key_path in ssh_info.private_key_path:
        command += ["-i", key_path]
    return command


def _add_windows_chmod_args(args: list[str]) -> None:
    if any(arg.startswith("--chmod=") for arg in args):
        return

    # Enable all non-masked bits
    args.append("--chmod=ugo=rwX")

    # --archive implies -p, new files would not get destination permissions
    if "--archive" in args or "-a" in args:
        args.append("--no-perms")


def _add_owner_args(args: list[str]) -> None:
    # --archive implies owner/group preservation, only keep it on request
    if "--owner" not in args and "-o" not in args:
        args.append("--no-owner")
    if "--group" not in args and "-g" not in args:
        args.append("--no-group")


def base_rsync_command(
    rsh: Sequence[str],
    excludes: Sequence[str],
    rsync_args: Sequence[str] | None = None,
    rsync_path: str | None = None,
) -> list[str]:
    """Build the rsync command shared by full and incremental mirrors."""
    args = list(DEFAULT_RSYNC_ARGS if rsync_args is None else rsync_args)

    if platform.system() == "Windows":
        _add_windows_chmod_args(args)

    _add_owner_args(args)

    if rsync_path:
        args += ["--rsync-path", rsync_path]

    command = ["rsync", *args, "-e", shlex.join(rsh)]
    for exclude in excludes:
        command += ["--exclude", exclude]
    return command


def build_commands(
    ssh_info: SSHInfo,
    guestpath: str,
    hostpath: str,
    excludes: Sequence[str] = (),
    workdir: str | None = None,
    rsync_args: Sequence[str] | None = None,
    rsync_path: str | None = None,
) -> TransportCommands:
    """Build the transport commands for a synced folder.

    Args:
        ssh_info: Connection parameters of the machine.
        guestpath: Destination path on the machine.
        hostpath: Slash-terminated source path on the host.
        excludes: rsync exclude patterns.
        workdir: Working directory for every command.
        rsync_args: Replaces the default rsync arguments.
        rsync_path: Remote rsync program.

    Returns:
        The four transport commands.
    """
    rsh = rsh_command(ssh_info)
    target = f"{ssh_info.remote}:{guestpath}"
    base = base_rsync_command(rsh, excludes, rsync_args, rsync_path)

    full = TransportCommand(
        kind=CommandKind.FULL_MIRROR,
        argv=(*base, hostpath, target),
        workdir=workdir,
    )
    incremental = TransportCommand(
        kind=CommandKind.INCREMENTAL_MIRROR,
        argv=(*base, "--files-from=-", hostpath, target),
        workdir=workdir,
        notify_stdin=True,
    )
    # A directory moved out of the tree is reported as one removed path
    remove = TransportCommand(
        kind=CommandKind.REMOTE_FILE_REMOVE,
        argv=(*rsh, ssh_info.remote, "tr '\\n' '\\0' | xargs -0 rm -rf"),
        workdir=workdir,
        notify_stdin=True,
    )
    # Parents may not be empty on the guest yet, rmdir failures are expected
    rmdir = TransportCommand(
        kind=CommandKind.REMOTE_DIR_REMOVE,
        argv=(
            *rsh,
            ssh_info.remote,
            "tr '\\n' '\\0' | xargs -0 -n 1 rmdir 2>/dev/null || true",
        ),
        workdir=workdir,
        notify_stdin=True,
    )
    return TransportCommands(full=full, incremental=incremental, remove=remove, rmdir=rmdir)
