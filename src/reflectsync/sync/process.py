"""Execution of external commands with a non-blocking stdin channel.

This module provides:
- ProcessEventKind, ProcessEvent: Tagged notifications from a running process
- StdinChannel: Non-blocking writable end of the process's stdin
- ExecuteResult: Exit code and captured output
- execute: Spawn a command and pump its pipes until it exits
"""

from __future__ import annotations

import logging
import os
import selectors
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import IO

logger = logging.getLogger(__name__)

READ_SIZE = 32768


class ProcessEventKind(Enum):
    """Kind of notification delivered while a process runs."""

    STDIN_READY = auto()
    STDOUT = auto()
    STDERR = auto()


@dataclass
class ProcessEvent:
    """A notification from a running process.

    Attributes:
        kind: What happened.
        payload: The StdinChannel for STDIN_READY, the bytes read otherwise.
    """

    kind: ProcessEventKind
    payload: StdinChannel | bytes


ProcessEventCallback = Callable[[ProcessEvent], None]


class StdinChannel:
    """Writable end of a process's stdin in non-blocking mode.

    ``write`` raises BlockingIOError or InterruptedError when the pipe cannot
    take data right now. ``close`` signals end of input; the runner closes
    the pipe once the notification returns.
    """

    def __init__(self, stream: IO[bytes]) -> None:
        self._fd = stream.fileno()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Check if end of input was signalled."""
        return self._closed

    def write(self, data: bytes) -> int:
        """Write as much of data as the pipe accepts.

        Returns:
            Number of bytes written. 0 once the reader has gone away.
        """
        if self._closed:
            raise ValueError("write to closed stdin channel")
        try:
            return os.write(self._fd, data)
        except BrokenPipeError:
            logger.debug("Process closed its stdin before all input was written")
            self._closed = True
            return 0

    def close(self) -> None:
        """Signal end of input."""
        self._closed = True


@dataclass
class ExecuteResult:
    """Result of an executed command."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""


def _close_stdin(stream: IO[bytes]) -> None:
    try:
        stream.close()
    except BrokenPipeError:
        pass


def _pump(
    proc: subprocess.Popen[bytes],
    channel: StdinChannel,
    captured: dict[ProcessEventKind, list[bytes]],
    on_event: ProcessEventCallback | None,
) -> None:
    """Deliver stdin notifications and read output until every pipe is done."""
    assert proc.stdin is not None
    assert proc.stdout is not None
    assert proc.stderr is not None

    with selectors.DefaultSelector() as selector:
        if not channel.closed:
            selector.register(proc.stdin, selectors.EVENT_WRITE, ProcessEventKind.STDIN_READY)
        selector.register(proc.stdout, selectors.EVENT_READ, ProcessEventKind.STDOUT)
        selector.register(proc.stderr, selectors.EVENT_READ, ProcessEventKind.STDERR)

        while selector.get_map():
            for key, _ in selector.select():
                kind: ProcessEventKind = key.data
                if kind is ProcessEventKind.STDIN_READY:
                    if on_event:
                        on_event(ProcessEvent(kind, channel))
                    else:
                        channel.close()
                    if channel.closed:
                        selector.unregister(key.fileobj)
                        _close_stdin(proc.stdin)
                    continue

                data = os.read(key.fd, READ_SIZE)
                if not data:
                    selector.unregister(key.fileobj)
                    continue
                captured[kind].append(data)
                if on_event:
                    on_event(ProcessEvent(kind, data))


def execute(
    argv: Sequence[str],
    workdir: str | None = None,
    notify_stdin: bool = False,
    on_event: ProcessEventCallback | None = None,
) -> ExecuteResult:
    """Run a command, blocking until it exits.

    When notify_stdin is set, stdin is switched to non-blocking mode and a
    STDIN_READY event carrying the StdinChannel is delivered every time the
    pipe becomes writable, until the channel is closed. Otherwise stdin is
    closed right away. Output is delivered as STDOUT/STDERR events and
    captured in the result.

    Args:
        argv: Command and arguments.
        workdir: Working directory for the process.
        notify_stdin: Deliver stdin writability notifications.
        on_event: Receives every ProcessEvent.

    Returns:
        Exit code and captured output.
    """
    logger.debug("Executing: %s", " ".join(argv))
    proc = subprocess.Popen(
        list(argv),
        cwd=workdir,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    assert proc.stdin is not None
    assert proc.stdout is not None
    assert proc.stderr is not None

    channel = StdinChannel(proc.stdin)
    if notify_stdin:
        os.set_blocking(proc.stdin.fileno(), False)
    else:
        channel.close()
        _close_stdin(proc.stdin)

    captured: dict[ProcessEventKind, list[bytes]] = {
        ProcessEventKind.STDOUT: [],
        ProcessEventKind.STDERR: [],
    }

    try:
        _pump(proc, channel, captured, on_event)
    except BaseException:
        logger.debug("Killing %s after a failed notification", argv[0])
        proc.kill()
        raise
    finally:
        _close_stdin(proc.stdin)
        exit_code = proc.wait()
        proc.stdout.close()
        proc.stderr.close()

    return ExecuteResult(
        exit_code=exit_code,
        stdout=b"".join(captured[ProcessEventKind.STDOUT]).decode("utf-8", errors="replace"),
        stderr=b"".join(captured[ProcessEventKind.STDERR]).decode("utf-8", errors="replace"),
    )
