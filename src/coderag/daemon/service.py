"""Service wiring.

Builds the segmenter, backends, orchestrators and watcher from one
configuration and owns their lifecycle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from coderag.backends import build_embedding_gateway, build_vector_store, close_backend
from coderag.backends.embedding import EmbeddingGateway
from coderag.backends.vectorstore import VectorStore
from coderag.config.models import CodeRagConfig
from coderag.core.pools import StagePools
from coderag.daemon.watcher import FileWatcher
from coderag.index._internal.discovery.eligibility import EligibilityFilter
from coderag.index._internal.discovery.scanner import SourceDiscovery
from coderag.index._internal.parsing.segmenter import JavaSegmenter
from coderag.index.models import IndexStats
from coderag.index.ops import IndexingOrchestrator
from coderag.index.updates import UpdateOrchestrator

logger = structlog.get_logger()


@dataclass
class CodeRagService:
    """
    Orchestrates indexing components.

    Components:
    - StagePools: per-stage executors
    - IndexingOrchestrator: full reindex
    - UpdateOrchestrator: per-file incremental updates
    - FileWatcher: filesystem monitoring feeding the updater
    """

    config: CodeRagConfig
    root: Path
    embeddings: EmbeddingGateway | None = None
    store: VectorStore | None = None

    pools: StagePools = field(init=False)
    segmenter: JavaSegmenter = field(init=False)
    eligibility: EligibilityFilter = field(init=False)
    indexer: IndexingOrchestrator = field(init=False)
    updater: UpdateOrchestrator = field(init=False)
    watcher: FileWatcher = field(init=False)
    _closed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self.root = self.root.resolve()
        cfg = self.config

        self.pools = StagePools.from_config(cfg)
        if self.embeddings is None:
            self.embeddings = build_embedding_gateway(cfg.embedding, executor=self.pools.io)
        if self.store is None:
            self.store = build_vector_store(cfg.vector_store)

        self.segmenter = JavaSegmenter.from_config(cfg.segmentation)
        self.eligibility = EligibilityFilter.from_config(cfg.segmentation, cfg.watch.extensions)
        collection = cfg.vector_store.collection

        self.indexer = IndexingOrchestrator(
            segmenter=self.segmenter,
            discovery=SourceDiscovery(eligibility=self.eligibility),
            embeddings=self.embeddings,
            store=self.store,
            collection=collection,
            parse_executor=self.pools.parse,
            io_executor=self.pools.io,
            orchestration_executor=self.pools.orchestration,
            parse_batch_size=cfg.indexer.parse_batch_size,
            upsert_batch_size=cfg.indexer.upsert_batch_size,
        )
        self.updater = UpdateOrchestrator(
            root=self.root,
            segmenter=self.segmenter,
            eligibility=self.eligibility,
            embeddings=self.embeddings,
            store=self.store,
            collection=collection,
            debounce_sec=cfg.watch.debounce_sec,
            replace_on_modify=cfg.indexer.replace_on_modify,
            indexer=self.indexer,
            executor=self.pools.dispatch,
            capacity=cfg.watch.dispatch_queue_capacity,
        )
        self.watcher = FileWatcher(
            root=self.root,
            on_change=self.updater.handle_change,
            dispatch_executor=self.pools.dispatch,
            extensions=frozenset(cfg.watch.extensions),
            dispatch_queue_capacity=cfg.watch.dispatch_queue_capacity,
            stop_timeout=cfg.watch.stop_timeout_sec,
        )

    def reindex(self) -> IndexStats:
        """Run a full reindex of the root on the calling thread."""
        return self.indexer.run(self.root)

    def start_watching(self) -> None:
        self.watcher.start()

    def close(self) -> None:
        """Stop the watcher, apply pending updates, shut down pools. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self.watcher.stop()
        self.updater.flush()
        self.pools.shutdown(wait=True)
        close_backend(self.embeddings)
        close_backend(self.store)
        logger.info("service_closed", root=str(self.root))

    def __enter__(self) -> CodeRagService:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
