"""Tests for service wiring and lifecycle."""

from __future__ import annotations

import time
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from conftest import FakeEmbeddingGateway, simple_class

from coderag.backends.vectorstore import InMemoryVectorStore
from coderag.config.models import (
    CodeRagConfig,
    IndexerConfig,
    VectorStoreConfig,
    WatchConfig,
)
from coderag.daemon.service import CodeRagService
from coderag.index.models import ChangeType, IndexerState


def _wait_for(predicate: Callable[[], bool], timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


@pytest.fixture
def config() -> CodeRagConfig:
    return CodeRagConfig(
        vector_store=VectorStoreConfig(backend="memory", collection="code"),
        indexer=IndexerConfig(parse_workers=2, io_workers=2),
        watch=WatchConfig(debounce_sec=0.05, dispatch_workers=2),
    )


@pytest.fixture
def service(config: CodeRagConfig, java_tree: Path) -> Generator[CodeRagService, None, None]:
    svc = CodeRagService(config=config, root=java_tree, embeddings=FakeEmbeddingGateway())
    yield svc
    svc.close()


class TestWiring:
    def test_memory_backend_built_from_config(self, service: CodeRagService) -> None:
        assert isinstance(service.store, InMemoryVectorStore)

    def test_components_share_backends(self, service: CodeRagService) -> None:
        assert service.indexer.store is service.store
        assert service.updater.store is service.store
        assert service.updater.indexer is service.indexer
        assert service.updater.executor is service.pools.dispatch
        assert service.indexer.collection == service.updater.collection == "code"

    def test_injected_store_used(self, config: CodeRagConfig, java_tree: Path) -> None:
        store = InMemoryVectorStore()
        with CodeRagService(config=config, root=java_tree, embeddings=FakeEmbeddingGateway(), store=store) as svc:
            assert svc.store is store


class TestReindex:
    def test_reindex_populates_store(self, service: CodeRagService) -> None:
        stats = service.reindex()

        assert stats.files_parsed == 2
        assert service.store is not None
        assert service.store.count("code") == stats.entries_upserted
        assert service.indexer.status == IndexerState.IDLE


class TestLifecycle:
    def test_close_is_idempotent(self, config: CodeRagConfig, java_tree: Path) -> None:
        svc = CodeRagService(config=config, root=java_tree, embeddings=FakeEmbeddingGateway())
        svc.close()
        svc.close()

    def test_close_flushes_pending_updates(self, config: CodeRagConfig, java_tree: Path) -> None:
        config.watch.debounce_sec = 60
        svc = CodeRagService(config=config, root=java_tree, embeddings=FakeEmbeddingGateway())
        svc.reindex()
        target = java_tree / "src" / "main" / "java" / "com" / "acme" / "Customer.java"
        target.unlink()

        svc.updater.handle_change(target, ChangeType.DELETE)
        svc.close()

        assert isinstance(svc.store, InMemoryVectorStore)
        assert svc.store.get("code", {"filePath": "src/main/java/com/acme/Customer.java"}) == []


class TestWatchRoundTrip:
    """Live watcher feeding the updater."""

    def test_create_then_delete(self, service: CodeRagService, java_tree: Path) -> None:
        service.reindex()
        service.start_watching()
        assert _wait_for(lambda: bool(service.watcher.watched_dirs))
        time.sleep(0.3)

        store = service.store
        assert isinstance(store, InMemoryVectorStore)
        rel = "src/main/java/com/acme/Invoice.java"
        path = java_tree / rel
        path.write_text(simple_class("Invoice"))

        assert _wait_for(lambda: len(store.get("code", {"filePath": rel})) == 2)

        path.unlink()

        assert _wait_for(lambda: store.get("code", {"filePath": rel}) == [])
