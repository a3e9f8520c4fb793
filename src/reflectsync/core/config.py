"""Configuration of machines and synced folders.

The configuration lives in a ``reflect.json`` file at the project root:

    {
      "show_sync_time": false,
      "machines": [
        {
          "name": "default",
          "host": "127.0.0.1",
          "port": 2222,
          "username": "vagrant",
          "private_key_path": ["~/.ssh/id_rsa"],
          "proxy_command": null,
          "id_file": ".vagrant/id",
          "folders": [
            {"guestpath": "/vagrant/", "hostpath": ".", "exclude": ["*.log"]}
          ]
        }
      ]
    }

Relative host paths and id files are resolved against the directory holding
the configuration file, which is also the working directory of every
transport command.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from reflectsync.core.machine import Machine, SSHInfo
from reflectsync.sync.types import ReflectError, SyncTarget, normalize_root

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "reflect.json"


class ConfigError(ReflectError):
    """The configuration file is missing or invalid."""


@dataclass
class FolderConfig:
    """A synced folder as configured.

    Attributes:
        guestpath: Destination path on the machine.
        hostpath: Source path on the host, relative to the project root.
        exclude: rsync exclude patterns.
        auto: Watch this folder for changes.
        rsync_args: Replaces the default rsync arguments.
        rsync_path: Remote rsync program.
    """

    guestpath: str
    hostpath: str = "."
    exclude: list[str] = field(default_factory=list)
    auto: bool = True
    rsync_args: list[str] | None = None
    rsync_path: str | None = None


@dataclass
class MachineConfig:
    """A machine as configured."""

    name: str
    host: str
    port: int = 22
    username: str = "vagrant"
    private_key_path: list[str] = field(default_factory=list)
    proxy_command: str | None = None
    id_file: str | None = None
    folders: list[FolderConfig] = field(default_factory=list)


@dataclass
class ReflectConfig:
    """The whole configuration file.

    Attributes:
        root_path: Directory holding the configuration file.
        machines: Configured machines.
        show_sync_time: Report how long each sync took.
    """

    root_path: Path
    machines: list[MachineConfig] = field(default_factory=list)
    show_sync_time: bool = False

    def build_targets(self, names: list[str] | tuple[str, ...] = ()) -> list[SyncTarget]:
        """Build the SyncTargets of the selected machines.

        Args:
            names: Machine names to select, all machines when empty.

        Raises:
            ConfigError: A selected machine is not configured.
        """
        known = {machine.name for machine in self.machines}
        unknown = [name for name in names if name not in known]
        if unknown:
            raise ConfigError(f"Unknown machine(s): {', '.join(unknown)}")

        targets = []
        for machine_config in self.machines:
            if names and machine_config.name not in names:
                continue
            machine = self._build_machine(machine_config)
            for folder in machine_config.folders:
                targets.append(
                    SyncTarget(
                        machine=machine,
                        guestpath=folder.guestpath,
                        hostpath=normalize_root(self.root_path / Path(folder.hostpath).expanduser()),
                        exclude=tuple(folder.exclude),
                        auto=folder.auto,
                        rsync_args=tuple(folder.rsync_args) if folder.rsync_args is not None else None,
                        rsync_path=folder.rsync_path,
                    )
                )
        return targets

    def _build_machine(self, config: MachineConfig) -> Machine:
        ssh_info = SSHInfo(
            host=config.host,
            port=config.port,
            username=config.username,
            private_key_path=tuple(
                str(Path(key).expanduser()) for key in config.private_key_path
            ),
            proxy_command=config.proxy_command,
        )
        id_file = self.root_path / Path(config.id_file).expanduser() if config.id_file else None
        return Machine(name=config.name, ssh_info=ssh_info, id_file=id_file)


def _require(data: dict[str, Any], key: str, kind: type, where: str) -> Any:
    if data.get(key) is None:
        raise ConfigError(f"{where}: missing required key '{key}'")
    return _optional(data, key, kind, where)


def _optional(data: dict[str, Any], key: str, kind: type | tuple[type, ...], where: str) -> Any:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int, do not accept it as a port
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        names = kind.__name__ if isinstance(kind, type) else " or ".join(k.__name__ for k in kind)
        raise ConfigError(f"{where}: '{key}' must be of type {names}")
    return value


def _string_list(data: dict[str, Any], key: str, where: str) -> list[str] | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{where}: '{key}' must be a list of strings")
    return list(value)


def parse_folder(data: Any, where: str) -> FolderConfig:
    """Parse one folder entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: folder must be an object")

    auto = _optional(data, "auto", bool, where)
    return FolderConfig(
        guestpath=_require(data, "guestpath", str, where),
        hostpath=_optional(data, "hostpath", str, where) or ".",
        exclude=_string_list(data, "exclude", where) or [],
        auto=True if auto is None else auto,
        rsync_args=_string_list(data, "rsync_args", where),
        rsync_path=_optional(data, "rsync_path", str, where),
    )


def parse_machine(data: Any, where: str) -> MachineConfig:
    """Parse one machine entry."""
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: machine must be an object")

    name = _require(data, "name", str, where)
    where = f"machine '{name}'"
    folders = data.get("folders")
    if folders is None:
        folders = []
    if not isinstance(folders, list):
        raise ConfigError(f"{where}: 'folders' must be a list")

    return MachineConfig(
        name=name,
        host=_require(data, "host", str, where),
        port=_optional(data, "port", int, where) or 22,
        username=_optional(data, "username", str, where) or "vagrant",
        private_key_path=_string_list(data, "private_key_path", where) or [],
        proxy_command=_optional(data, "proxy_command", str, where),
        id_file=_optional(data, "id_file", str, where),
        folders=[
            parse_folder(folder, f"{where}, folder {index}")
            for index, folder in enumerate(folders)
        ],
    )


def parse_config(data: Any, root_path: Path) -> ReflectConfig:
    """Validate decoded JSON and build a ReflectConfig.

    Raises:
        ConfigError: The data is not a valid configuration.
    """
    if not isinstance(data, dict):
        raise ConfigError("configuration must be an object")

    show_sync_time = data.get("show_sync_time", False)
    if show_sync_time is not True and show_sync_time is not False:
        raise ConfigError("show_sync_time must be true or false")

    machines = data.get("machines")
    if machines is None:
        machines = []
    if not isinstance(machines, list):
        raise ConfigError("'machines' must be a list")

    parsed = [parse_machine(machine, f"machine {index}") for index, machine in enumerate(machines)]
    names = [machine.name for machine in parsed]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate machine name(s): {', '.join(duplicates)}")

    return ReflectConfig(root_path=root_path, machines=parsed, show_sync_time=show_sync_time)


def find_config_file(start: Path | None = None) -> Path | None:
    """Look for reflect.json in a directory and its parents."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path | None = None) -> ReflectConfig:
    """Load the configuration file.

    Args:
        path: Configuration file, searched from the current directory when None.

    Raises:
        ConfigError: The file is missing, unreadable or invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            raise ConfigError(
                f"No {CONFIG_FILENAME} found in the current directory or its parents"
            )

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {path}") from None
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    config = parse_config(data, path.resolve().parent)
    logger.debug("Loaded %d machine(s) from %s", len(config.machines), path)
    return config
