"""Planning of remote removals.

When files are removed on the host, the watcher only reports the files.
Directories that were emptied and deleted locally have to be removed on the
guest too, and they can only be removed once everything below them is gone.

This module provides:
- PendingRemovals: Ordered directory map with insert-or-move-to-end
- RemovalPlan: Remote file paths and directories to remove, in order
- plan_removals: Build a RemovalPlan for a batch of removed paths
"""

from __future__ import annotations

import logging
import os
import posixpath
from collections import OrderedDict
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class PendingRemovals:
    """Directories scheduled for removal, in removal order.

    Maps a directory's root-relative path to its remote path. Scheduling a
    directory that is already present moves it to the end, so a directory is
    always ordered after every descendant discovered before it.
    """

    def __init__(self) -> None:
        self._dirs: OrderedDict[str, str] = OrderedDict()

    def schedule(self, rel_path: str, remote_path: str) -> None:
        """Insert a directory, or move it to the end if already scheduled."""
        self._dirs[rel_path] = remote_path
        self._dirs.move_to_end(rel_path)

    def __contains__(self, rel_path: object) -> bool:
        return rel_path in self._dirs

    def __iter__(self) -> Iterator[str]:
        return iter(self._dirs)

    def __len__(self) -> int:
        return len(self._dirs)

    def remote_paths(self) -> list[str]:
        """Get remote paths in removal order."""
        return list(self._dirs.values())


@dataclass
class RemovalPlan:
    """Remote paths to remove for one batch.

    Attributes:
        files: Remote paths of removed files, in input order.
        directories: Emptied directories, deepest first.
    """

    files: list[str] = field(default_factory=list)
    directories: PendingRemovals = field(default_factory=PendingRemovals)

    @property
    def directory_paths(self) -> list[str]:
        """Get remote directory paths in removal order."""
        return self.directories.remote_paths()


def guest_join(guestpath: str, rel_path: str) -> str:
    """Join a root-relative path onto a guest path."""
    return posixpath.join(guestpath, rel_path)


def plan_removals(
    removed: Iterable[str],
    hostpath: str,
    guestpath: str,
    exists: Callable[[str], bool] = os.path.exists,
) -> RemovalPlan:
    """Plan the remote removals for a batch of removed paths.

    Every ancestor of a removed path (up to, not including, the watched root)
    that no longer exists on the host is scheduled for removal. Ancestors that
    still exist hold other files and must be kept on the guest.

    Args:
        removed: Root-relative paths of removed files.
        hostpath: Watched root on the host (slash-terminated).
        guestpath: Destination path on the guest.
        exists: Host filesystem existence check.

    Returns:
        The removal plan.
    """
    plan = RemovalPlan()
    for rel_path in removed:
        parent = rel_path.strip("/")
        while True:
            parent = posixpath.dirname(parent)
            if parent in ("", "/"):
                break
            if exists(os.path.join(hostpath, parent)):
                continue
            plan.directories.schedule(parent, guest_join(guestpath, parent))
        plan.files.append(guest_join(guestpath, rel_path))

    logger.debug(
        "Planned removal of %d files and %d directories: %s",
        len(plan.files),
        len(plan.directories),
        list(plan.directories),
    )
    return plan
