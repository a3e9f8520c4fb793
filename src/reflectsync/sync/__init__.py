"""Incremental synchronization engine.

Architecture:
    RootWatcher → RootBinding → SyncDispatcher → Syncer → rsync / ssh

Components:
- **excludes**: rsync exclude patterns compiled to anchored regexes
- **removal**: Ordering of remote directory removals, deepest first
- **process / stream**: Spawned commands fed through a non-blocking stdin
- **shell**: rsync and ssh command lines for a synced folder
- **syncer**: Full/incremental mirrors and removals for one target
- **dispatcher**: Strategy selection and per-target error handling
- **watcher**: watchdog-based change batches per root
- **coordinator**: One watcher per root, interrupt-driven shutdown

All public symbols are re-exported here.
"""

from reflectsync.sync.coordinator import RootBinding, WatchCoordinator, group_by_root
from reflectsync.sync.dispatcher import SyncDispatcher, relative_paths, select_strategy
from reflectsync.sync.excludes import (
    ExcludeMatcher,
    compile_exclude,
    compile_excludes,
    is_excluded,
)
from reflectsync.sync.process import (
    ExecuteResult,
    ProcessEvent,
    ProcessEventKind,
    StdinChannel,
    execute,
)
from reflectsync.sync.removal import PendingRemovals, RemovalPlan, plan_removals
from reflectsync.sync.shell import (
    CommandKind,
    TransportCommand,
    TransportCommands,
    build_commands,
)
from reflectsync.sync.stream import ItemStreamer, stream_items
from reflectsync.sync.syncer import Syncer
from reflectsync.sync.types import (
    ChangeBatch,
    DispatchResult,
    GuestNotReadyError,
    ReflectError,
    SyncOptions,
    SyncStrategy,
    SyncTarget,
    TransportError,
    normalize_root,
)
from reflectsync.sync.watcher import (
    ChangeKind,
    RootWatcher,
    WatcherState,
    merge_change,
)

__all__ = [
    # Types and errors
    "ChangeBatch",
    "DispatchResult",
    "GuestNotReadyError",
    "ReflectError",
    "SyncOptions",
    "SyncStrategy",
    "SyncTarget",
    "TransportError",
    "normalize_root",
    # Excludes
    "ExcludeMatcher",
    "compile_exclude",
    "compile_excludes",
    "is_excluded",
    # Removals
    "PendingRemovals",
    "RemovalPlan",
    "plan_removals",
    # Processes and streaming
    "ExecuteResult",
    "ItemStreamer",
    "ProcessEvent",
    "ProcessEventKind",
    "StdinChannel",
    "execute",
    "stream_items",
    # Commands
    "CommandKind",
    "TransportCommand",
    "TransportCommands",
    "build_commands",
    "Syncer",
    # Dispatch
    "SyncDispatcher",
    "relative_paths",
    "select_strategy",
    # Watching
    "ChangeKind",
    "RootBinding",
    "RootWatcher",
    "WatchCoordinator",
    "WatcherState",
    "group_by_root",
    "merge_change",
]
