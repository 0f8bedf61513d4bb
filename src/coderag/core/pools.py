"""Per-stage worker pools.

Each pipeline stage gets its own independently sized executor so a slow
embedding backend cannot starve parsing, and vice versa:

- parse: CPU-bound segmentation (cpu_count x multiplier)
- io: embedding and vector-store calls (small, rate-limited remotes)
- dispatch: file-change handlers (small, short-lived tasks)
- orchestration: a single thread running submitted full reindexes
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import structlog

from coderag.config.models import CodeRagConfig

logger = structlog.get_logger()


@dataclass
class StagePools:
    """Owns the executors shared by the orchestrators and the watcher."""

    parse_workers: int
    io_workers: int
    dispatch_workers: int

    parse: ThreadPoolExecutor = field(init=False)
    io: ThreadPoolExecutor = field(init=False)
    dispatch: ThreadPoolExecutor = field(init=False)
    orchestration: ThreadPoolExecutor = field(init=False)
    _closed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.parse = ThreadPoolExecutor(max_workers=self.parse_workers, thread_name_prefix="coderag-parse")
        self.io = ThreadPoolExecutor(max_workers=self.io_workers, thread_name_prefix="coderag-io")
        self.dispatch = ThreadPoolExecutor(max_workers=self.dispatch_workers, thread_name_prefix="coderag-dispatch")
        self.orchestration = ThreadPoolExecutor(max_workers=1, thread_name_prefix="coderag-indexer")
        logger.debug(
            "stage_pools_started",
            parse_workers=self.parse_workers,
            io_workers=self.io_workers,
            dispatch_workers=self.dispatch_workers,
        )

    @classmethod
    def from_config(cls, config: CodeRagConfig) -> StagePools:
        return cls(
            parse_workers=config.indexer.parse_workers or 1,
            io_workers=config.indexer.io_workers,
            dispatch_workers=config.watch.dispatch_workers,
        )

    def shutdown(self, wait: bool = True) -> None:
        """Shut down all pools. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for pool in (self.orchestration, self.dispatch, self.parse, self.io):
            pool.shutdown(wait=wait, cancel_futures=not wait)
        logger.debug("stage_pools_stopped")
