"""Watch coordinator: one watcher per synced root.

The coordinator is the only place threads are introduced:
1. Groups auto-synced targets by host root
2. Binds each root's watcher to a RootBinding (root, targets, options)
3. Starts every watcher, each delivering batches from its own thread
4. Blocks until interrupted, then stops every running watcher

Interrupt handling never takes a lock inside the signal handler: the handler
starts a thread that puts a token on a one-slot queue, and the main loop
wakes up when it reads that token.
"""

from __future__ import annotations

import logging
import queue
import signal
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from reflectsync.sync.dispatcher import SyncDispatcher
from reflectsync.sync.excludes import ExcludeMatcher
from reflectsync.sync.types import ChangeBatch, DispatchResult, SyncOptions, SyncTarget
from reflectsync.sync.watcher import ChangeCallback, RootWatcher, WatcherState

logger = logging.getLogger(__name__)

INTERRUPT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class Watcher(Protocol):
    """Watch adapter contract."""

    @property
    def state(self) -> WatcherState: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...


class WatcherFactory(Protocol):
    """Creates the watcher of a root."""

    def __call__(
        self,
        root: str,
        on_change: ChangeCallback,
        excludes: Iterable[ExcludeMatcher] = (),
        force_polling: bool = False,
    ) -> Watcher: ...


@dataclass(frozen=True)
class RootBinding:
    """Change callback of one root.

    Captures everything a batch needs to be dispatched: the root, the targets
    bound to it and the session options.
    """

    root: str
    targets: tuple[SyncTarget, ...]
    options: SyncOptions
    dispatcher: SyncDispatcher

    @property
    def excludes(self) -> list[ExcludeMatcher]:
        """Get the exclude matchers of every bound target."""
        matchers: list[ExcludeMatcher] = []
        for target in self.targets:
            for matcher in target.matchers:
                if matcher not in matchers:
                    matchers.append(matcher)
        return matchers

    def __call__(
        self,
        modified: list[str],
        added: list[str],
        removed: list[str],
    ) -> list[DispatchResult]:
        batch = ChangeBatch(modified=modified, added=added, removed=removed)
        return self.dispatcher.dispatch(self.root, self.targets, batch, self.options)


def group_by_root(targets: Iterable[SyncTarget]) -> dict[str, list[SyncTarget]]:
    """Group auto-synced targets by host root, sorted by root."""
    roots: dict[str, list[SyncTarget]] = {}
    for target in targets:
        if not target.auto:
            logger.debug("Not watching %s, auto sync disabled", target.hostpath)
            continue
        roots.setdefault(target.hostpath, []).append(target)
    return dict(sorted(roots.items()))


class WatchCoordinator:
    """Runs one watcher per root until interrupted.

    Usage:
        coordinator = WatchCoordinator(targets, dispatcher)
        coordinator.run()  # blocks until Ctrl-C
    """

    def __init__(
        self,
        targets: Iterable[SyncTarget],
        dispatcher: SyncDispatcher,
        options: SyncOptions | None = None,
        watcher_factory: WatcherFactory = RootWatcher,
    ) -> None:
        """Initialize the coordinator.

        Args:
            targets: Every configured synced folder.
            dispatcher: Mirrors change batches.
            options: Session policy (defaults to the dispatcher's).
            watcher_factory: Creates the watcher of a root.
        """
        self._options = options or dispatcher.options
        self._bindings = [
            RootBinding(
                root=root,
                targets=tuple(bound),
                options=self._options,
                dispatcher=dispatcher,
            )
            for root, bound in group_by_root(targets).items()
        ]
        self._watcher_factory = watcher_factory
        self._watchers: list[Watcher] = []
        self._wakeup: queue.Queue[bool] = queue.Queue(maxsize=1)

    @property
    def bindings(self) -> list[RootBinding]:
        """Get the root bindings."""
        return self._bindings

    @property
    def watchers(self) -> list[Watcher]:
        """Get the watchers created by run()."""
        return self._watchers

    def _create_watchers(self) -> list[Watcher]:
        watchers = []
        for binding in self._bindings:
            excludes = binding.excludes
            logger.info("Ignoring %d paths in %s:", len(excludes), binding.root)
            for matcher in excludes:
                logger.info("-- %s", matcher.regex.pattern)
            watchers.append(
                self._watcher_factory(
                    binding.root,
                    binding,
                    excludes=excludes,
                    force_polling=self._options.poll,
                )
            )
        return watchers

    def _wake(self) -> None:
        try:
            self._wakeup.put_nowait(True)
        except queue.Full:
            pass

    def interrupt(self) -> None:
        """Ask run() to stop the watchers and return."""
        threading.Thread(target=self._wake, name="ReflectInterrupt", daemon=True).start()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        # No locks in a signal handler, hand off to a thread
        self.interrupt()

    def _install_signal_handlers(self) -> dict[int, Any]:
        previous = {}
        for signum in INTERRUPT_SIGNALS:
            previous[signum] = signal.signal(signum, self._handle_signal)
        return previous

    def run(self, install_signal_handlers: bool = True) -> int:
        """Watch every root until interrupted.

        Args:
            install_signal_handlers: Stop on SIGINT/SIGTERM. Only possible
                from the main thread.

        Returns:
            0 after a clean shutdown, 1 when there is nothing to watch.
        """
        if not self._bindings:
            return 1

        self._watchers = self._create_watchers()
        previous = self._install_signal_handlers() if install_signal_handlers else {}
        try:
            for watcher in self._watchers:
                watcher.start()
            self._wait()
        finally:
            for watcher in self._watchers:
                if watcher.state is not WatcherState.STOPPED:
                    watcher.stop()
            for signum, handler in previous.items():
                signal.signal(signum, handler)
        return 0

    def _wait(self) -> None:
        # Wake up regularly so signals are handled on every platform
        while True:
            try:
                self._wakeup.get(timeout=0.5)
                return
            except queue.Empty:
                continue

