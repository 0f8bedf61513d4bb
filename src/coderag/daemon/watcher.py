"""File watcher using watchfiles for filesystem monitoring.

Design:
- Python walks the tree with pruning and builds an explicit directory list
- Passes it to watch() with recursive=False (one native watch per dir)
- Runs the blocking consume loop on a dedicated thread
- Restarts the watch when a directory is created or a watched one is removed
- Dispatches each change to a worker pool, never blocking the watch loop

Lost events (backend overflow or error) are logged as a warning and the
watch is rebuilt. Nothing is reconciled automatically; a later full reindex
restores consistency.
"""

from __future__ import annotations

import os
import threading
from collections.abc import Callable
from concurrent.futures import Executor
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from watchfiles import Change, watch

from coderag.core.errors import WatchError
from coderag.core.excludes import is_prunable_dir
from coderag.index.models import ChangeType

logger = structlog.get_logger()

_CHANGE_TYPES: dict[Change, ChangeType] = {
    Change.added: ChangeType.CREATE,
    Change.modified: ChangeType.MODIFY,
    Change.deleted: ChangeType.DELETE,
}


def _collect_watch_dirs(root: Path) -> list[Path]:
    """Walk the tree and collect all directories to watch.

    Hidden and excluded directories (VCS, IDE, build output) are pruned.
    The root itself is always first. Returns [] if root is not a directory.
    """
    if not root.is_dir():
        return []
    dirs: list[Path] = [root]
    try:
        for dirpath, dirnames, _filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if not is_prunable_dir(d))
            for d in dirnames:
                dirs.append(Path(dirpath) / d)
    except OSError as e:
        logger.warning("watch_dir_walk_failed", root=str(root), error=str(e))
    return dirs


def _files_under(directory: Path, extensions: frozenset[str]) -> list[Path]:
    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(directory):
        dirnames[:] = sorted(d for d in dirnames if not is_prunable_dir(d))
        for filename in sorted(filenames):
            path = Path(dirpath) / filename
            if path.suffix.lower() in extensions:
                files.append(path)
    return files


@dataclass
class FileWatcher:
    """Watches a source tree and forwards file changes to ``on_change``.

    ``on_change`` runs on ``dispatch_executor``. At most
    ``dispatch_queue_capacity`` changes are in flight; further changes are
    dropped with a warning.
    """

    root: Path
    on_change: Callable[[Path, ChangeType], None]
    dispatch_executor: Executor
    extensions: frozenset[str] = frozenset({".java"})
    dispatch_queue_capacity: int = 1000
    stop_timeout: float = 5.0
    step_ms: int = 500

    _thread: threading.Thread | None = field(default=None, init=False)
    _stop_event: threading.Event = field(default_factory=threading.Event, init=False)
    _lifecycle_lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _watched_dirs: set[Path] = field(default_factory=set, init=False)
    _in_flight: int = field(default=0, init=False)
    _in_flight_lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _dropped: int = field(default=0, init=False)

    def __post_init__(self) -> None:
        self.root = self.root.resolve()
        self.extensions = frozenset(e.lower() for e in self.extensions)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def watched_dirs(self) -> set[Path]:
        return set(self._watched_dirs)

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def start(self) -> None:
        """Start watching. No-op if already running.

        Raises:
            WatchError: root is not a directory.
        """
        with self._lifecycle_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            if not self.root.is_dir():
                raise WatchError.not_a_directory(str(self.root))

            self._stop_event.clear()
            self._thread = threading.Thread(target=self._watch_loop, name="coderag-watcher", daemon=True)
            self._thread.start()
        logger.info("file_watcher_started", root=str(self.root), mode="native_nonrecursive")

    def stop(self) -> None:
        """Stop watching. No-op if not running.

        Interrupts the blocking wait and releases all registrations. Changes
        already dispatched keep running.
        """
        with self._lifecycle_lock:
            thread = self._thread
            if thread is None:
                return
            self._stop_event.set()
            thread.join(timeout=self.stop_timeout)
            if thread.is_alive():
                logger.warning("file_watcher_stop_timeout", timeout=self.stop_timeout)
            self._thread = None
            self._watched_dirs = set()
        logger.info("file_watcher_stopped")

    # -------------------------------------------------------------------------
    # Watch loop
    # -------------------------------------------------------------------------

    def _watch_loop(self) -> None:
        """Blocking consume loop. Rebuilds the watch whenever the set of
        directories changes and exits once no directory remains watchable."""
        while not self._stop_event.is_set():
            watch_dirs = _collect_watch_dirs(self.root)
            self._watched_dirs = set(watch_dirs)
            if not watch_dirs:
                logger.warning("no_watchable_dirs", root=str(self.root))
                return

            logger.info("watch_dirs_collected", count=len(watch_dirs), root=str(self.root))
            try:
                for changes in watch(
                    *watch_dirs,
                    recursive=False,
                    step=self.step_ms,
                    rust_timeout=10_000,
                    stop_event=self._stop_event,
                    ignore_permission_denied=True,
                    raise_interrupt=False,
                ):
                    if self._handle_changes(changes):
                        logger.info("watcher_restart_requested")
                        break
            except Exception as e:
                if self._stop_event.is_set():
                    return
                logger.warning("watch_overflow", error=str(e), action="rewatch_without_reconcile")
                self._stop_event.wait(1.0)

    def _handle_changes(self, changes: set[tuple[Change, str]]) -> bool:
        """Classify and dispatch a batch of raw changes.

        Returns True if the watch must be rebuilt (directory added or a
        watched directory removed).
        """
        needs_restart = False

        for raw_change, path_str in changes:
            path = Path(path_str)
            try:
                rel_path = path.relative_to(self.root)
            except ValueError:
                continue
            if any(is_prunable_dir(part) for part in rel_path.parts[:-1]):
                continue

            if raw_change == Change.added and path.is_dir():
                if not is_prunable_dir(path.name) and path not in self._watched_dirs:
                    logger.info("new_directory_detected", path=str(rel_path))
                    for file_path in _files_under(path, self.extensions):
                        self._dispatch(file_path, ChangeType.CREATE)
                    needs_restart = True
                continue

            if raw_change == Change.deleted and path in self._watched_dirs:
                logger.info("watched_directory_removed", path=str(rel_path))
                self._watched_dirs.discard(path)
                needs_restart = True
                continue

            if path.suffix.lower() not in self.extensions:
                continue

            change = _CHANGE_TYPES.get(raw_change)
            if change is None:
                continue
            self._dispatch(path, change)

        return needs_restart

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _dispatch(self, path: Path, change: ChangeType) -> None:
        with self._in_flight_lock:
            if self._in_flight >= self.dispatch_queue_capacity:
                self._dropped += 1
                logger.warning(
                    "change_dropped_queue_full",
                    path=str(path),
                    change=change.value,
                    capacity=self.dispatch_queue_capacity,
                )
                return
            self._in_flight += 1

        try:
            self.dispatch_executor.submit(self._run_handler, path, change)
        except RuntimeError as e:
            with self._in_flight_lock:
                self._in_flight -= 1
            logger.warning("change_dispatch_rejected", path=str(path), error=str(e))
            return
        logger.debug("change_dispatched", path=str(path), change=change.value)

    def _run_handler(self, path: Path, change: ChangeType) -> None:
        try:
            self.on_change(path, change)
        except Exception as e:
            logger.error("change_handler_failed", path=str(path), change=change.value, error=str(e))
        finally:
            with self._in_flight_lock:
                self._in_flight -= 1
