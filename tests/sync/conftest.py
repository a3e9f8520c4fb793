"""Shared fixtures for sync engine tests."""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from reflectsync.core.machine import Machine, SSHInfo
from reflectsync.sync.process import (
    ExecuteResult,
    ProcessEvent,
    ProcessEventCallback,
    ProcessEventKind,
)
from reflectsync.sync.types import SyncTarget, normalize_root


class RecordingChannel:
    """Writable channel that accepts everything and records it."""

    def __init__(self, chunk_size: int | None = None) -> None:
        self.data = bytearray()
        self.closed = False
        self.close_count = 0
        self._chunk_size = chunk_size

    def write(self, data: bytes) -> int:
        accepted = data if self._chunk_size is None else data[: self._chunk_size]
        self.data += accepted
        return len(accepted)

    def close(self) -> None:
        self.closed = True
        self.close_count += 1


@dataclass
class RunnerCall:
    """A command seen by FakeRunner."""

    argv: tuple[str, ...]
    workdir: str | None
    notify_stdin: bool
    stdin: str


@dataclass
class FakeRunner:
    """Runner that never spawns anything.

    Drains stdin notifications into a RecordingChannel and answers with the
    queued exit codes (0 once the queue is empty).
    """

    exit_codes: list[int] = field(default_factory=list)
    stderr: str = ""
    error: OSError | None = None
    log: list[tuple[str, str]] | None = None
    calls: list[RunnerCall] = field(default_factory=list)

    def __call__(
        self,
        argv: Sequence[str],
        workdir: str | None = None,
        notify_stdin: bool = False,
        on_event: ProcessEventCallback | None = None,
    ) -> ExecuteResult:
        if self.error is not None:
            raise self.error

        channel = RecordingChannel()
        if notify_stdin and on_event:
            while not channel.closed:
                on_event(ProcessEvent(ProcessEventKind.STDIN_READY, channel))

        stdin = os.fsdecode(bytes(channel.data))
        self.calls.append(RunnerCall(tuple(argv), workdir, notify_stdin, stdin))
        if self.log is not None:
            self.log.append(("run", argv[0]))

        exit_code = self.exit_codes.pop(0) if self.exit_codes else 0
        return ExecuteResult(exit_code=exit_code, stderr=self.stderr if exit_code else "")


class RecordingUI:
    """Progress sink that keeps every line."""

    def __init__(self, log: list[tuple[str, str]] | None = None) -> None:
        self.lines: list[tuple[str, str, str | None]] = []
        self._log = log

    def _record(self, level: str, message: str, machine: str | None) -> None:
        self.lines.append((level, message, machine))
        if self._log is not None:
            self._log.append(("ui", message))

    def info(self, message: str, machine: str | None = None) -> None:
        self._record("info", message, machine)

    def warn(self, message: str, machine: str | None = None) -> None:
        self._record("warn", message, machine)

    def error(self, message: str, machine: str | None = None) -> None:
        self._record("error", message, machine)

    def messages(self, level: str | None = None) -> list[str]:
        return [message for lvl, message, _ in self.lines if level is None or lvl == level]


@pytest.fixture
def root(tmp_path: Path) -> str:
    """Create a watched root on the host."""
    host = tmp_path / "project"
    host.mkdir()
    return normalize_root(host)


@pytest.fixture
def ssh_info() -> SSHInfo:
    """Connection info of a local test machine."""
    return SSHInfo(host="127.0.0.1", port=2222, private_key_path=("/keys/id_rsa",))


@pytest.fixture
def make_target(root: str, ssh_info: SSHInfo) -> Callable[..., SyncTarget]:
    """Build SyncTargets bound to the test root."""

    def _make(
        name: str = "default",
        guestpath: str = "/vagrant",
        exclude: tuple[str, ...] = (),
        auto: bool = True,
        id_file: Path | None = None,
        hostpath: str | None = None,
    ) -> SyncTarget:
        machine = Machine(name=name, ssh_info=ssh_info, id_file=id_file)
        return SyncTarget(
            machine=machine,
            guestpath=guestpath,
            hostpath=hostpath or root,
            exclude=exclude,
            auto=auto,
        )

    return _make


@pytest.fixture
def event_log() -> list[tuple[str, str]]:
    """Shared record of progress lines and spawned commands, in order."""
    return []


@pytest.fixture
def fake_runner(event_log: list[tuple[str, str]]) -> FakeRunner:
    """Create a runner answering 0 to every command."""
    return FakeRunner(log=event_log)


@pytest.fixture
def ui(event_log: list[tuple[str, str]]) -> RecordingUI:
    """Create a recording progress sink."""
    return RecordingUI(event_log)


@pytest.fixture
def channel_class() -> type[RecordingChannel]:
    """Get the recording channel class."""
    return RecordingChannel
