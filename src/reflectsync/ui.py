"""User-visible progress output.

This module provides:
- MessageType: Severity of a progress line
- UI: Protocol for the progress sink
- ConsoleUI: Thread-safe click output, prefixed with the machine name
- MachineUI: A UI bound to one machine name
"""

from __future__ import annotations

import threading
from enum import Enum, auto
from typing import Protocol

import click


class MessageType(Enum):
    """Severity of a progress line."""

    INFO = auto()
    WARNING = auto()
    ERROR = auto()


class UI(Protocol):
    """One-way channel for user-visible lines."""

    def info(self, message: str, machine: str | None = None) -> None: ...

    def warn(self, message: str, machine: str | None = None) -> None: ...

    def error(self, message: str, machine: str | None = None) -> None: ...


class ConsoleUI:
    """Writes progress lines to the terminal.

    Several roots may report at the same time, so every line is written
    under a lock.
    """

    STYLES = {
        MessageType.INFO: {},
        MessageType.WARNING: {"fg": "yellow"},
        MessageType.ERROR: {"fg": "red"},
    }

    def __init__(self, color: bool | None = None) -> None:
        self._color = color
        self._lock = threading.Lock()

    def say(self, type: MessageType, message: str, machine: str | None = None) -> None:
        """Write a line of the given severity."""
        prefix = f"==> {machine}: " if machine else ""
        # Undecodable file names carry surrogates the terminal cannot encode
        message = str(message).encode("utf-8", errors="replace").decode("utf-8")
        lines = [prefix + line for line in message.splitlines() or [""]]
        text = click.style("\n".join(lines), **self.STYLES[type])
        with self._lock:
            click.echo(text, err=type is MessageType.ERROR, color=self._color)

    def info(self, message: str, machine: str | None = None) -> None:
        self.say(MessageType.INFO, message, machine)

    def warn(self, message: str, machine: str | None = None) -> None:
        self.say(MessageType.WARNING, message, machine)

    def error(self, message: str, machine: str | None = None) -> None:
        self.say(MessageType.ERROR, message, machine)


class MachineUI:
    """Progress sink bound to one machine."""

    def __init__(self, ui: UI, machine: str) -> None:
        self._ui = ui
        self._machine = machine

    def info(self, message: str) -> None:
        self._ui.info(message, self._machine)

    def warn(self, message: str) -> None:
        self._ui.warn(message, self._machine)

    def error(self, message: str) -> None:
        self._ui.error(message, self._machine)
