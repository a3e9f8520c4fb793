"""File system watcher producing change batches for one root.

This module provides:
- RootWatcher: Watches a directory tree using watchdog
- Batching: Coalesces events for a short latency window into one batch
- Net changes: modified/added/removed sets of a batch are disjoint
- Exclusion: Paths matching the root's exclude patterns are dropped
- Serial delivery: At most one batch per root is being handled at a time
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable, Iterable
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from reflectsync.sync.excludes import ExcludeMatcher, is_excluded
from reflectsync.sync.types import normalize_root

if TYPE_CHECKING:
    from watchdog.observers.api import BaseObserver

logger = logging.getLogger(__name__)

# Receives (modified, added, removed) absolute paths
ChangeCallback = Callable[[list[str], list[str], list[str]], None]


class ChangeKind(Enum):
    """Net change of a path within a batch."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class WatcherState(Enum):
    """Lifecycle state of a watcher."""

    STOPPED = "stopped"
    RUNNING = "running"


def merge_change(previous: ChangeKind | None, current: ChangeKind) -> ChangeKind | None:
    """Combine two changes of the same path into their net effect.

    Returns:
        The net change, or None when the path is back to its initial state.
    """
    if previous is None:
        return current
    if previous is ChangeKind.ADDED:
        # The guest never saw the file
        return None if current is ChangeKind.REMOVED else ChangeKind.ADDED
    if current is ChangeKind.REMOVED:
        return ChangeKind.REMOVED
    return ChangeKind.MODIFIED


class BatchingEventHandler(FileSystemEventHandler):
    """Event handler that turns watchdog events into change batches."""

    def __init__(
        self,
        root: str,
        on_change: ChangeCallback,
        excludes: Iterable[ExcludeMatcher] = (),
        latency: float = 0.25,
    ) -> None:
        """Initialize the handler.

        Args:
            root: Slash-terminated watched root.
            on_change: Receives each batch.
            excludes: Matchers for root-relative paths to drop.
            latency: Seconds to wait for more events before delivering.
        """
        super().__init__()
        self._root = root
        self._on_change = on_change
        self._excludes = list(excludes)
        self._latency = latency

        # Net change keyed by absolute path
        self._pending: dict[str, ChangeKind] = {}
        self._lock = threading.Lock()
        self._delivery_lock = threading.Lock()
        self._timer: threading.Timer | None = None

    def _schedule_flush(self) -> None:
        """Schedule delivery of pending changes after the latency window."""
        if self._timer:
            self._timer.cancel()

        self._timer = threading.Timer(self._latency, self.flush)
        self._timer.daemon = True
        self._timer.start()

    def flush(self) -> None:
        """Deliver pending changes as one batch."""
        # Batches of one root are handled one at a time, in order: changes
        # recorded while a batch is delivered are taken by the next flush
        with self._delivery_lock:
            with self._lock:
                pending = self._pending
                self._pending = {}
                if self._timer:
                    self._timer.cancel()
                    self._timer = None

            if not pending:
                return

            modified = sorted(p for p, kind in pending.items() if kind is ChangeKind.MODIFIED)
            added = sorted(p for p, kind in pending.items() if kind is ChangeKind.ADDED)
            removed = sorted(p for p, kind in pending.items() if kind is ChangeKind.REMOVED)

            try:
                self._on_change(modified, added, removed)
            except Exception:
                logger.exception("Change callback failed for %s", self._root)

    def _record(
        self,
        src_path: str | bytes,
        kind: ChangeKind,
        is_directory: bool = False,
    ) -> None:
        src_path = os.fsdecode(src_path)

        if not src_path.startswith(self._root):
            logger.debug("Ignoring %s outside of %s", src_path, self._root)
            return

        rel_path = src_path[len(self._root):]
        # Directory-only patterns match on the trailing separator
        if is_excluded(rel_path + "/" if is_directory else rel_path, self._excludes):
            return

        with self._lock:
            change = merge_change(self._pending.get(src_path), kind)
            if change is None:
                self._pending.pop(src_path, None)
            else:
                self._pending[src_path] = change
            self._schedule_flush()

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle created event."""
        if not event.is_directory:
            self._record(event.src_path, ChangeKind.ADDED)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle modified event."""
        if not event.is_directory:
            self._record(event.src_path, ChangeKind.MODIFIED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle deleted event.

        A directory moved out of the tree is only reported as one deleted
        directory, with no event for the files it held, so the directory
        itself is recorded as removed.
        """
        self._record(event.src_path, ChangeKind.REMOVED, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle moved event as a removal plus an addition."""
        if not event.is_directory:
            self._record(event.src_path, ChangeKind.REMOVED)
            self._record(event.dest_path, ChangeKind.ADDED)
            return

        # Moves inside the tree are also reported per file
        if not os.fsdecode(event.dest_path).startswith(self._root):
            self._record(event.src_path, ChangeKind.REMOVED, is_directory=True)

    def stop(self) -> None:
        """Stop any pending timer."""
        with self._lock:
            if self._timer:
                self._timer.cancel()
                self._timer = None


class RootWatcher:
    """Watches one root and reports change batches.

    Usage:
        watcher = RootWatcher("/project/", on_change, excludes=matchers)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(
        self,
        root: str | Path,
        on_change: ChangeCallback,
        excludes: Iterable[ExcludeMatcher] = (),
        force_polling: bool = False,
        latency: float = 0.25,
    ) -> None:
        """Initialize the watcher.

        Args:
            root: Directory to watch.
            on_change: Receives (modified, added, removed) absolute paths.
            excludes: Matchers for root-relative paths to drop.
            force_polling: Poll the filesystem instead of native events.
            latency: Seconds to coalesce events for.
        """
        self._root = normalize_root(root)
        if not Path(self._root).is_dir():
            raise ValueError(f"Watch path must be a directory: {root}")

        self._handler = BatchingEventHandler(
            root=self._root,
            on_change=on_change,
            excludes=excludes,
            latency=latency,
        )
        self._observer: BaseObserver = PollingObserver() if force_polling else Observer()
        self._state = WatcherState.STOPPED

    @property
    def root(self) -> str:
        """Get the watched root."""
        return self._root

    @property
    def state(self) -> WatcherState:
        """Get the current state."""
        return self._state

    def start(self) -> None:
        """Start watching for changes."""
        if self._state is WatcherState.RUNNING:
            return

        self._observer.schedule(self._handler, self._root.rstrip("/") or "/", recursive=True)
        self._observer.start()
        self._state = WatcherState.RUNNING
        logger.info("Listening to path: %s", self._root)

    def stop(self) -> None:
        """Stop watching for changes."""
        if self._state is WatcherState.STOPPED:
            return

        self._handler.stop()
        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._state = WatcherState.STOPPED
        logger.info("Stopped listening to path: %s", self._root)

    def __enter__(self) -> RootWatcher:
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.stop()
