"""Dispatch of change batches to the synced folders of a root.

For every batch reported by a watcher, the dispatcher decides per target
whether to resync the whole folder or only the changed paths:

    | Incremental | Removed paths | Transport deletes | Strategy    |
    |-------------|---------------|-------------------|-------------|
    | off         | any           | any               | FULL        |
    | on          | none          | any               | INCREMENTAL |
    | on          | some          | no                | FULL        |
    | on          | some          | yes               | INCREMENTAL |

Failures are scoped to one batch and one target: they are reported and the
next target is processed.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable

from reflectsync.sync.process import execute
from reflectsync.sync.stream import Runner
from reflectsync.sync.syncer import Syncer
from reflectsync.sync.types import (
    ChangeBatch,
    DispatchResult,
    GuestNotReadyError,
    SyncOptions,
    SyncStrategy,
    SyncTarget,
    TransportError,
)
from reflectsync.ui import UI, MachineUI

logger = logging.getLogger(__name__)

SyncerFactory = Callable[[SyncTarget], Syncer]


def select_strategy(
    batch: ChangeBatch,
    options: SyncOptions,
    supports_delete: bool = False,
) -> SyncStrategy:
    """Choose how a batch is mirrored.

    Args:
        batch: The change batch.
        options: Session policy.
        supports_delete: The transport can send a removal on its own.

    Returns:
        FULL or INCREMENTAL.
    """
    if not options.incremental:
        return SyncStrategy.FULL
    if batch.removed and not supports_delete:
        return SyncStrategy.FULL
    return SyncStrategy.INCREMENTAL


def relative_paths(root: str, paths: Iterable[str]) -> list[str]:
    """Strip the root prefix from absolute paths."""
    relative = []
    for path in paths:
        if not path.startswith(root):
            logger.warning("Path %s is not below %s, ignoring", path, root)
            continue
        relative.append(path[len(root):])
    return relative


class SyncDispatcher:
    """Mirrors change batches to the targets bound to a root.

    One Syncer is kept per target, so transport commands are only rebuilt
    when a machine's connection info changes.

    Usage:
        dispatcher = SyncDispatcher(ConsoleUI(), SyncOptions(), workdir=root)
        dispatcher.dispatch("/project/", targets, batch)
    """

    def __init__(
        self,
        ui: UI,
        options: SyncOptions | None = None,
        workdir: str | None = None,
        runner: Runner = execute,
        syncer_factory: SyncerFactory | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            ui: Progress sink.
            options: Session policy.
            workdir: Working directory for transport commands.
            runner: Executes transport commands.
            syncer_factory: Creates the Syncer for a target.
        """
        self._ui = ui
        self._options = options or SyncOptions()
        self._workdir = workdir
        self._runner = runner
        self._syncer_factory = syncer_factory or self._create_syncer
        self._syncers: dict[SyncTarget, Syncer] = {}
        self._lock = threading.Lock()

    @property
    def options(self) -> SyncOptions:
        """Get the session policy."""
        return self._options

    def _create_syncer(self, target: SyncTarget) -> Syncer:
        return Syncer(
            target,
            workdir=self._workdir,
            runner=self._runner,
            incremental_delete=self._options.incremental_delete,
        )

    def syncer_for(self, target: SyncTarget) -> Syncer:
        """Get (or create) the Syncer of a target."""
        with self._lock:
            syncer = self._syncers.get(target)
            if syncer is None:
                syncer = self._syncer_factory(target)
                self._syncers[target] = syncer
            return syncer

    def dispatch(
        self,
        root: str,
        targets: Iterable[SyncTarget],
        batch: ChangeBatch,
        options: SyncOptions | None = None,
    ) -> list[DispatchResult]:
        """Mirror one change batch to every target bound to a root.

        Args:
            root: The WatchedRoot the batch was reported for.
            targets: Targets bound to the root.
            batch: The change batch.
            options: Policy for this batch (defaults to the session policy).

        Returns:
            One result per target.
        """
        logger.info("File change callback called for %s", root)
        logger.info("  - Modified: %s", batch.modified)
        logger.info("  - Added: %s", batch.added)
        logger.info("  - Removed: %s", batch.removed)

        options = options or self._options
        return [self._dispatch_target(root, target, batch, options) for target in targets]

    def initial_sync(self, targets: Iterable[SyncTarget]) -> list[DispatchResult]:
        """Run a full mirror of every reachable target."""
        results = []
        for target in targets:
            result = DispatchResult(target=target)
            target.machine.reload()
            if not target.machine.id:
                result.skipped = True
                results.append(result)
                continue

            ui = MachineUI(self._ui, target.machine.name)
            ui.info(f"Doing an initial rsync of {target.hostpath} -> {target.guestpath}")
            result.strategy = SyncStrategy.FULL
            self._run_steps(ui, result, [self.syncer_for(target).sync_full], self._options)
            results.append(result)
        return results

    def _dispatch_target(
        self,
        root: str,
        target: SyncTarget,
        batch: ChangeBatch,
        options: SyncOptions,
    ) -> DispatchResult:
        result = DispatchResult(target=target)

        # Reload so a machine torn down meanwhile is noticed
        target.machine.reload()
        if not target.machine.id:
            logger.debug("Skipping %s, machine has no id", target.machine.name)
            result.skipped = True
            return result

        ui = MachineUI(self._ui, target.machine.name)
        syncer = self.syncer_for(target)
        result.strategy = select_strategy(
            batch, options, syncer.supports_incremental_delete
        )

        if result.strategy is SyncStrategy.FULL:
            for path in relative_paths(root, batch.removed):
                ui.info(f"Removed: {path}")
            for path in relative_paths(root, [*batch.modified, *batch.added]):
                ui.info(f"Changed: {path}")
            steps = [syncer.sync_full]
        else:
            steps = []
            changed = relative_paths(root, [*batch.modified, *batch.added])
            if changed:
                steps.append(
                    lambda: syncer.sync_incremental(
                        changed, on_item=lambda item: ui.info(f"Sending: {item}")
                    )
                )
            removed = relative_paths(root, batch.removed)
            if removed:
                steps.append(
                    lambda: syncer.sync_removals(
                        removed, on_item=lambda item: ui.info(f"Removing: {item}")
                    )
                )

        self._run_steps(ui, result, steps, options)
        return result

    def _run_steps(
        self,
        ui: MachineUI,
        result: DispatchResult,
        steps: list[Callable[[], None]],
        options: SyncOptions,
    ) -> None:
        start = time.monotonic()
        for step in steps:
            try:
                step()
            except GuestNotReadyError as e:
                # Probably a reload or halt in progress, the next change retries
                logger.debug("Guest not ready: %s", e.stderr)
                ui.warn(
                    "The machine is not ready for rsync (it may be rebooting). "
                    "Skipping this change."
                )
                result.not_ready = True
                break
            except TransportError as e:
                ui.error(str(e))
                result.errors.append(e)
            except Exception as e:
                # Contained to this target, the siblings still get the batch
                logger.exception("Unexpected error syncing %s", result.target.hostpath)
                ui.error(
                    f"Unexpected error while syncing {result.target.hostpath} -> "
                    f"{result.target.guestpath}: {e}"
                )
                result.errors.append(e)
        result.elapsed_time = time.monotonic() - start

        if result.success:
            if options.show_sync_time:
                ui.info(f"Rsynced folder in {result.elapsed_time:.2f}s")
            else:
                ui.info("Rsynced folder")
