"""Core module - Configuration and machines."""

from reflectsync.core.config import (
    CONFIG_FILENAME,
    ConfigError,
    FolderConfig,
    MachineConfig,
    ReflectConfig,
    find_config_file,
    load_config,
    parse_config,
)
from reflectsync.core.machine import Machine, SSHInfo

__all__ = [
    # Config
    "CONFIG_FILENAME",
    "ConfigError",
    "FolderConfig",
    "MachineConfig",
    "ReflectConfig",
    "find_config_file",
    "load_config",
    "parse_config",
    # Machines
    "Machine",
    "SSHInfo",
]
