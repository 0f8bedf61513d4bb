"""Full reindex orchestration.

Pipeline, each stage starting only after the previous one has finished:

1. Ensure the target collection exists
2. Discover eligible files
3. Segment files in batches on the parse pool (per-file failures isolated)
4. Embed all segments in one gateway batch call
5. Upsert entries in fixed-size batches on the io pool

Entry is guarded by a single IDLE/RUNNING compare-and-set. A second request
while RUNNING is rejected immediately and never queued. The flag is always
cleared when a run ends, whether it succeeded or failed.

Failure policy: a bad file costs only its own segments, a missing embedding
only its own entry, and a failed upsert batch only its own entries (earlier
batches stay committed). An embedding count mismatch or an unreachable store
at collection-ensure time aborts the run.
"""

from __future__ import annotations

import contextvars
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from coderag.config.constants import PROGRESS_DISCOVERED, PROGRESS_PARSED, PROGRESS_STARTED
from coderag.core.errors import CodeRagError, EmbeddingError, IndexingError, ParseError
from coderag.core.logging import clear_run_id, set_run_id
from coderag.index.models import CodeSegment, IndexerState, IndexStats, VectorEntry

if TYPE_CHECKING:
    from coderag.backends.embedding import EmbeddingGateway
    from coderag.backends.vectorstore import VectorStore
    from coderag.index._internal.discovery.scanner import SourceDiscovery
    from coderag.index._internal.parsing.segmenter import JavaSegmenter

logger = structlog.get_logger()


def _batched(items: list, size: int) -> list[list]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def embed_segments(
    embeddings: EmbeddingGateway,
    segments: list[CodeSegment],
) -> tuple[list[VectorEntry], int]:
    """Embed segments and pair them with their vectors.

    Returns the entries with a usable vector and the number of segments
    that got none.

    Raises:
        EmbeddingError: the gateway returned a different number of vectors
            than it was given texts.
    """
    if not segments:
        return [], 0
    vectors = embeddings.embed_batch([s.content for s in segments])
    if len(vectors) != len(segments):
        raise EmbeddingError.count_mismatch(len(segments), len(vectors))

    entries: list[VectorEntry] = []
    missing = 0
    for segment, vector in zip(segments, vectors, strict=True):
        if vector:
            entries.append(VectorEntry.from_segment(segment, vector))
        else:
            missing += 1
            logger.warning("segment_embedding_missing", segment_id=segment.id)
    return entries, missing


def unique_entries(entries: list[VectorEntry]) -> list[VectorEntry]:
    """Drop entries whose id was already seen, keeping the first.

    Identical declarations on one line (e.g. two equal initializer blocks)
    share an id, and a store rejects a batch that repeats an id.
    """
    seen: set[str] = set()
    unique: list[VectorEntry] = []
    for entry in entries:
        if entry.id not in seen:
            seen.add(entry.id)
            unique.append(entry)
    if len(unique) != len(entries):
        logger.info("duplicate_entries_dropped", count=len(entries) - len(unique))
    return unique


@dataclass
class IndexingOrchestrator:
    """Drives a full reindex of one source tree into one collection.

    Usage::

        orchestrator = IndexingOrchestrator(segmenter, discovery, gateway, store,
                                            collection="code", parse_executor=pools.parse,
                                            io_executor=pools.io)
        stats = orchestrator.run(Path("/src/project"))      # blocking
        future = orchestrator.submit(Path("/src/project"))  # background
    """

    segmenter: JavaSegmenter
    discovery: SourceDiscovery
    embeddings: EmbeddingGateway
    store: VectorStore
    collection: str
    parse_executor: Executor
    io_executor: Executor
    orchestration_executor: Executor = field(
        default_factory=lambda: ThreadPoolExecutor(max_workers=1, thread_name_prefix="coderag-indexer")
    )
    parse_batch_size: int = 50
    upsert_batch_size: int = 200

    _state: IndexerState = field(default=IndexerState.IDLE, init=False)
    _state_lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _progress: float = field(default=0.0, init=False)
    _last_stats: IndexStats | None = field(default=None, init=False)
    _last_error: CodeRagError | None = field(default=None, init=False)

    # -------------------------------------------------------------------------
    # Status surface
    # -------------------------------------------------------------------------

    @property
    def status(self) -> IndexerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == IndexerState.RUNNING

    @property
    def progress(self) -> float:
        """Estimated completion of the current (or last) run, 0..1."""
        return self._progress

    @property
    def last_stats(self) -> IndexStats | None:
        return self._last_stats

    @property
    def last_error(self) -> CodeRagError | None:
        return self._last_error

    def _try_acquire(self) -> bool:
        with self._state_lock:
            if self._state == IndexerState.RUNNING:
                return False
            self._state = IndexerState.RUNNING
            return True

    def _release(self) -> None:
        with self._state_lock:
            self._state = IndexerState.IDLE

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def run(self, root: Path) -> IndexStats:
        """Run a full reindex on the calling thread.

        Raises:
            IndexingError: already running, root is not a directory, or a
                stage failed (``details["stats"]`` carries the partial counts).
        """
        if not self._try_acquire():
            logger.warning("reindex_rejected_already_running", root=str(root))
            raise IndexingError.already_in_progress(str(root))
        return self._run_acquired(root)

    def submit(self, root: Path) -> Future[IndexStats]:
        """Start a full reindex in the background.

        The RUNNING flag is taken before this returns, so a second call is
        rejected even if the first run has not started executing yet.

        Raises:
            IndexingError: already running.
        """
        if not self._try_acquire():
            logger.warning("reindex_rejected_already_running", root=str(root))
            raise IndexingError.already_in_progress(str(root))
        try:
            return self.orchestration_executor.submit(self._run_acquired, root)
        except BaseException:
            self._release()
            raise

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _run_acquired(self, root: Path) -> IndexStats:
        set_run_id()
        stats = IndexStats()
        started = time.monotonic()
        stage = "ensure_collection"
        self._progress = PROGRESS_STARTED
        self._last_error = None
        try:
            root = root.resolve()
            if not root.is_dir():
                raise IndexingError.not_a_directory(str(root))
            logger.info("reindex_started", root=str(root), collection=self.collection)

            self.store.clear_cache()
            self.store.ensure_collection(self.collection)

            stage = "discovery"
            files = self.discovery.discover(root).files
            stats.files_found = len(files)
            self._progress = PROGRESS_DISCOVERED

            stage = "parse"
            segments = self._parse_all(files, root, stats)
            self._progress = PROGRESS_PARSED

            stage = "embed"
            entries, missing = embed_segments(self.embeddings, segments)
            stats.segments_embedded = len(entries)
            stats.embeddings_missing = missing

            stage = "upsert"
            self._upsert_all(unique_entries(entries), stats)
            self._progress = 1.0
        except IndexingError as e:
            self._finish(stats, started)
            self._last_error = e
            logger.error("reindex_failed", stage=stage, error=str(e))
            raise
        except Exception as e:
            self._finish(stats, started)
            error = IndexingError.stage_failed(stage, e, stats.to_dict())
            self._last_error = error
            logger.error("reindex_failed", stage=stage, error=str(e), **stats.to_dict())
            raise error from e
        finally:
            self._release()
            clear_run_id()

        self._finish(stats, started)
        logger.info("reindex_complete", **stats.to_dict())
        return stats

    def _finish(self, stats: IndexStats, started: float) -> None:
        stats.duration_sec = time.monotonic() - started
        self._last_stats = stats

    def _parse_one(self, path: Path, root: Path) -> list[CodeSegment] | None:
        try:
            return self.segmenter.parse_file(path, root)
        except ParseError as e:
            logger.warning("file_unreadable", path=str(path), error=e.message)
        except Exception as e:
            logger.warning("file_parse_failed", path=str(path), error=str(e))
        return None

    def _parse_all(self, files: list[Path], root: Path, stats: IndexStats) -> list[CodeSegment]:
        segments: list[CodeSegment] = []
        batches = _batched(files, self.parse_batch_size)
        for number, batch in enumerate(batches, 1):
            futures = [
                self.parse_executor.submit(contextvars.copy_context().run, self._parse_one, path, root)
                for path in batch
            ]
            for future in futures:
                result = future.result()
                if result is None:
                    stats.files_failed += 1
                    continue
                stats.files_parsed += 1
                segments.extend(result)
            logger.debug("parse_batch_complete", batch=number, of=len(batches), segments=len(segments))

        stats.segments_parsed = len(segments)
        logger.info(
            "parse_complete",
            files=len(files),
            parsed=stats.files_parsed,
            failed=stats.files_failed,
            segments=len(segments),
        )
        return segments

    def _upsert_all(self, entries: list[VectorEntry], stats: IndexStats) -> None:
        if not entries:
            logger.info("upsert_skipped_no_entries")
            return

        batches = _batched(entries, self.upsert_batch_size)
        futures = {
            self.io_executor.submit(
                contextvars.copy_context().run, self.store.upsert, self.collection, batch
            ): (number, batch)
            for number, batch in enumerate(batches, 1)
        }
        for future in as_completed(futures):
            number, batch = futures[future]
            try:
                future.result()
            except Exception as e:
                stats.batches_failed += 1
                logger.error(
                    "upsert_batch_failed",
                    batch=number,
                    of=len(batches),
                    size=len(batch),
                    error=str(e),
                )
                continue
            stats.entries_upserted += len(batch)
            self._progress = PROGRESS_PARSED + (1.0 - PROGRESS_PARSED) * stats.entries_upserted / len(entries)
            logger.debug("upsert_batch_complete", batch=number, of=len(batches), size=len(batch))
