"""Streaming of item lists into a transport command's stdin.

rsync ``--files-from=-`` and the remote ``xargs`` commands read one path per
line. Items are written as they are pulled from a work queue, honoring
non-blocking write semantics: a short write keeps the unwritten remainder
for the next writability notification.
"""

from __future__ import annotations

import logging
import os
from collections import deque
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Protocol

from reflectsync.sync.process import (
    ExecuteResult,
    ProcessEvent,
    ProcessEventCallback,
    ProcessEventKind,
    execute,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from reflectsync.sync.shell import TransportCommand

logger = logging.getLogger(__name__)

ItemCallback = Callable[[str], None]


class WritableChannel(Protocol):
    """Non-blocking channel the streamer writes to."""

    def write(self, data: bytes) -> int: ...

    def close(self) -> None: ...


class Runner(Protocol):
    """Callable that runs a command (see ``process.execute``)."""

    def __call__(
        self,
        argv: Sequence[str],
        workdir: str | None = None,
        notify_stdin: bool = False,
        on_event: ProcessEventCallback | None = None,
    ) -> ExecuteResult: ...


class ItemStreamer:
    """Writes queued items to a channel, one line per item.

    Usage:
        streamer = ItemStreamer(["a.txt", "b/c.txt"])
        execute(argv, notify_stdin=True, on_event=streamer.handle_event)
    """

    def __init__(
        self,
        items: Iterable[str],
        on_item: ItemCallback | None = None,
    ) -> None:
        """Initialize the streamer.

        Args:
            items: Work queue of items. A deque is consumed in place.
            on_item: Called once per item when it is pulled from the queue.
        """
        self._items = items if isinstance(items, deque) else deque(items)
        self._on_item = on_item
        self._pending: bytes | None = None
        self._finished = False

    @property
    def finished(self) -> bool:
        """Check if every item was written and the channel closed."""
        return self._finished

    def _next_item(self) -> bytes | None:
        if not self._items:
            return None
        item = self._items.popleft()
        if self._on_item:
            self._on_item(item)
        # Paths go out as the raw bytes the filesystem reported
        return os.fsencode(item) + b"\n"

    def handle_event(self, event: ProcessEvent) -> None:
        """Process callback: act on stdin notifications only."""
        if event.kind is not ProcessEventKind.STDIN_READY:
            return
        channel = event.payload
        assert not isinstance(channel, bytes)
        self.on_writable(channel)

    def on_writable(self, channel: WritableChannel) -> None:
        """Write as much as the channel accepts right now."""
        if self._finished:
            return

        try:
            while True:
                if self._pending is None:
                    self._pending = self._next_item()
                    if self._pending is None:
                        channel.close()
                        self._finished = True
                        return

                written = channel.write(self._pending)
                if written < len(self._pending):
                    self._pending = self._pending[written:]
                    return
                self._pending = None
        except (BlockingIOError, InterruptedError):
            # Retry on the next notification
            return


def stream_items(
    items: Iterable[str],
    command: TransportCommand,
    runner: Runner = execute,
    on_item: ItemCallback | None = None,
) -> ExecuteResult:
    """Run a command and feed it items on stdin, one per line.

    Blocks until the command exits.

    Args:
        items: Items to send (root-relative or remote paths).
        command: Command reading items from stdin.
        runner: Executes the command.
        on_item: Called once per item as it is sent.

    Returns:
        Exit code and captured output.
    """
    streamer = ItemStreamer(items, on_item=on_item)
    result = runner(
        command.argv,
        workdir=command.workdir,
        notify_stdin=True,
        on_event=streamer.handle_event,
    )
    if not streamer.finished:
        logger.debug("%s exited before reading all items", command.argv[0])
    return result
