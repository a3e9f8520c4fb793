"""Remote machines that synced folders are mirrored to.

This module provides:
- SSHInfo: Connection parameters for reaching a machine over ssh
- Machine: A named remote machine with a reloadable identity
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SSHInfo:
    """Connection parameters for a machine.

    Attributes:
        host: Hostname or IP address of the machine.
        port: SSH port.
        username: Remote user name.
        private_key_path: Identity files passed to ssh with ``-i``.
        proxy_command: Optional ssh ProxyCommand.
    """

    host: str
    port: int = 22
    username: str = "vagrant"
    private_key_path: tuple[str, ...] = ()
    proxy_command: str | None = None

    @property
    def remote(self) -> str:
        """Get the ``user@host`` form used by ssh and rsync."""
        return f"{self.username}@{self.host}"


@dataclass(eq=False)
class Machine:
    """A remote machine whose identity can be re-read at any time.

    A machine without an identity file is always addressable. When an
    identity file is configured, an empty or missing file means the machine
    has been torn down (or not created yet) and must be skipped.

    Connection parameters are fixed for the session: reload() only re-reads
    the identity. Code embedding the engine may assign a new ssh_info, and
    every Syncer of the machine then rebuilds its commands.
    """

    name: str
    ssh_info: SSHInfo
    id_file: Path | None = None
    _id: str | None = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.reload()

    @property
    def id(self) -> str | None:
        """Get the identity read by the last reload."""
        return self._id

    def reload(self) -> None:
        """Re-read the machine identity (not the connection parameters)."""
        if self.id_file is None:
            machine_id: str | None = self.name
        else:
            try:
                machine_id = self.id_file.read_text(encoding="utf-8").strip() or None
            except FileNotFoundError:
                machine_id = None
            except OSError as e:
                logger.warning("Cannot read id file %s: %s", self.id_file, e)
                machine_id = None

        with self._lock:
            self._id = machine_id
