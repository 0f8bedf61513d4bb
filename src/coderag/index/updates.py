"""Incremental updates driven by file-change events.

``handle_change`` is fire-and-forget: it returns immediately, and failures
are logged, never propagated or retried. Rapid events for one path are
coalesced; only the last change type is processed once the path has been
quiet for ``debounce_sec``. A single scheduler thread hands quiet paths to
``executor``, so at most its worker count of updates run at once. Without
an executor the scheduler thread runs them one at a time. At most
``capacity`` paths are pending or running; changes to further paths are
dropped with a warning.

Per-event behavior:
- CREATE / MODIFY: a file that no longer exists is handled as DELETE.
  Otherwise the file is segmented and embedded. A file with zero segments
  causes no store action. An embedding count mismatch aborts the update for
  that file. On MODIFY with ``replace_on_modify`` the file's existing
  entries are deleted before the new ones are upserted, so entries of edited
  segments (whose content-addressed ids changed) do not linger.
- DELETE: every entry whose ``filePath`` metadata equals the file's path
  relative to the watched root is removed.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from coderag.config.constants import FILE_PATH_KEY
from coderag.core.errors import CodeRagError, EmbeddingError, ParseError
from coderag.core.logging import clear_run_id, set_run_id
from coderag.index.models import ChangeType
from coderag.index.ops import embed_segments, unique_entries

if TYPE_CHECKING:
    from coderag.backends.embedding import EmbeddingGateway
    from coderag.backends.vectorstore import VectorStore
    from coderag.index._internal.discovery.eligibility import EligibilityFilter
    from coderag.index._internal.parsing.segmenter import JavaSegmenter
    from coderag.index.ops import IndexingOrchestrator

logger = structlog.get_logger()


@dataclass
class UpdateOrchestrator:
    """Keeps the vector store consistent with single-file changes."""

    root: Path
    segmenter: JavaSegmenter
    eligibility: EligibilityFilter
    embeddings: EmbeddingGateway
    store: VectorStore
    collection: str
    debounce_sec: float = 1.0
    replace_on_modify: bool = True
    indexer: IndexingOrchestrator | None = None
    executor: Executor | None = None
    capacity: int = 1000

    # path -> (last change, monotonic time it becomes due)
    _pending: dict[Path, tuple[ChangeType, float]] = field(default_factory=dict, init=False)
    _active: int = field(default=0, init=False)
    _dropped: int = field(default=0, init=False)
    _cond: threading.Condition = field(default_factory=threading.Condition, init=False)
    _scheduler: threading.Thread | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.root = self.root.resolve()

    # -------------------------------------------------------------------------
    # Debounce
    # -------------------------------------------------------------------------

    def handle_change(self, path: Path, change: ChangeType) -> None:
        """Record a change; processing happens after the debounce window."""
        if self.debounce_sec <= 0 and self.executor is None:
            self.process(path, change)
            return

        with self._cond:
            replaced = path in self._pending
            if not replaced and len(self._pending) + self._active >= self.capacity:
                self._dropped += 1
                logger.warning(
                    "update_dropped_queue_full",
                    path=str(path),
                    change=change.value,
                    capacity=self.capacity,
                )
                return
            self._pending[path] = (change, time.monotonic() + self.debounce_sec)
            if self._scheduler is None:
                self._scheduler = threading.Thread(
                    target=self._schedule_loop, name="coderag-updates", daemon=True
                )
                self._scheduler.start()
            self._cond.notify()
        logger.debug("change_debounced", path=str(path), change=change.value, replaced=replaced)

    def _schedule_loop(self) -> None:
        """Hand paths that have gone quiet to the executor. Exits when idle."""
        while True:
            with self._cond:
                if not self._pending:
                    self._scheduler = None
                    return
                now = time.monotonic()
                due = [(path, change) for path, (change, at) in self._pending.items() if at <= now]
                if not due:
                    self._cond.wait(timeout=min(at for _, at in self._pending.values()) - now)
                    continue
                for path, _ in due:
                    del self._pending[path]
                self._active += len(due)

            for path, change in due:
                self._submit(path, change)

    def _submit(self, path: Path, change: ChangeType) -> None:
        if self.executor is None:
            self._run(path, change)
            return
        try:
            self.executor.submit(self._run, path, change)
        except RuntimeError as e:
            self._finished()
            logger.warning("update_submit_rejected", path=str(path), error=str(e))

    def _run(self, path: Path, change: ChangeType) -> None:
        try:
            self.process(path, change)
        finally:
            self._finished()

    def _finished(self) -> None:
        with self._cond:
            self._active -= 1

    @property
    def pending_count(self) -> int:
        with self._cond:
            return len(self._pending)

    @property
    def in_flight(self) -> int:
        """Paths pending or being processed."""
        with self._cond:
            return len(self._pending) + self._active

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def flush(self) -> None:
        """Process every pending change now, on the calling thread."""
        with self._cond:
            pending = [(path, change) for path, (change, _) in self._pending.items()]
            self._pending.clear()
            self._cond.notify()
        for path, change in pending:
            self.process(path, change)

    def cancel_pending(self) -> None:
        """Drop every pending change without processing it."""
        with self._cond:
            dropped = len(self._pending)
            self._pending.clear()
            self._cond.notify()
        if dropped:
            logger.info("pending_changes_dropped", count=dropped)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def relative_path(self, path: Path) -> str | None:
        try:
            return path.resolve().relative_to(self.root).as_posix()
        except ValueError:
            return None

    def process(self, path: Path, change: ChangeType) -> None:
        """Apply one change synchronously. Never raises."""
        rel = self.relative_path(path)
        if rel is None:
            logger.warning("change_outside_root", path=str(path), root=str(self.root))
            return

        set_run_id()
        try:
            if self.indexer is not None and self.indexer.is_running:
                logger.info("update_during_reindex", path=rel, change=change.value)

            if change != ChangeType.DELETE and not path.exists():
                logger.debug("change_target_missing", path=rel, change=change.value)
                change = ChangeType.DELETE

            logger.info("update_started", path=rel, change=change.value)
            if change == ChangeType.DELETE:
                self._delete(rel)
            else:
                self._upsert(path, rel, change)
        except CodeRagError as e:
            logger.error("update_failed", path=rel, change=change.value, error=str(e), code=e.error_name)
        except Exception as e:
            logger.error("update_failed", path=rel, change=change.value, error=str(e))
        finally:
            clear_run_id()

    def _delete(self, rel: str) -> None:
        self.store.delete_by_metadata(self.collection, {FILE_PATH_KEY: rel})
        logger.info("file_entries_deleted", path=rel)

    def _upsert(self, path: Path, rel: str, change: ChangeType) -> None:
        if not self.eligibility.is_eligible(path):
            logger.debug("update_skipped_ineligible", path=rel)
            return

        try:
            segments = self.segmenter.parse_file(path, self.root)
        except ParseError as e:
            logger.warning("file_unreadable", path=rel, error=e.message)
            return

        if not segments:
            logger.info("update_no_segments", path=rel, change=change.value)
            return

        try:
            entries, missing = embed_segments(self.embeddings, segments)
        except EmbeddingError as e:
            logger.error("update_embedding_failed", path=rel, error=str(e))
            return
        entries = unique_entries(entries)

        if change == ChangeType.MODIFY and self.replace_on_modify:
            self.store.delete_by_metadata(self.collection, {FILE_PATH_KEY: rel})

        if entries:
            self.store.upsert(self.collection, entries)
        logger.info(
            "file_updated",
            path=rel,
            change=change.value,
            segments=len(segments),
            upserted=len(entries),
            missing=missing,
        )
