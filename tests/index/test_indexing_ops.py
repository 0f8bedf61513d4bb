"""Tests for full reindex orchestration.

Covers:
- embed_segments() pairing and count mismatch
- Pipeline counts and store contents
- Per-file, per-segment and per-batch failure isolation
- Stage failures and flag release
- Mutual exclusion of concurrent runs
"""

from __future__ import annotations

import threading
from collections.abc import Generator, Sequence
from pathlib import Path
from typing import Any

import pytest
from conftest import BROKEN_SOURCE, FakeEmbeddingGateway, simple_class

from coderag.backends.vectorstore import InMemoryVectorStore
from coderag.core.errors import EmbeddingError, IndexingError, ParseError, VectorStoreError
from coderag.core.logging import get_run_id
from coderag.core.pools import StagePools
from coderag.index._internal.discovery.scanner import SourceDiscovery
from coderag.index._internal.parsing.segmenter import JavaSegmenter
from coderag.index.models import CodeSegment, IndexerState, VectorEntry
from coderag.index.ops import IndexingOrchestrator, embed_segments, unique_entries


@pytest.fixture
def pools() -> Generator[StagePools, None, None]:
    stage_pools = StagePools(parse_workers=2, io_workers=2, dispatch_workers=1)
    yield stage_pools
    stage_pools.shutdown(wait=True)


def _orchestrator(
    pools: StagePools,
    store: Any,
    gateway: Any,
    segmenter: Any | None = None,
    **kwargs: Any,
) -> IndexingOrchestrator:
    return IndexingOrchestrator(
        segmenter=segmenter or JavaSegmenter(),
        discovery=SourceDiscovery(),
        embeddings=gateway,
        store=store,
        collection="code",
        parse_executor=pools.parse,
        io_executor=pools.io,
        orchestration_executor=pools.orchestration,
        **kwargs,
    )


class FailingSegmenter(JavaSegmenter):
    """Raises ParseError for files whose name contains ``marker``."""

    def __init__(self, marker: str) -> None:
        super().__init__()
        self.marker = marker

    def parse_file(self, path: Path, root: Path) -> list[CodeSegment]:
        if self.marker in path.name:
            raise ParseError.unreadable(str(path), "permission denied")
        return super().parse_file(path, root)


class RejectingStore(InMemoryVectorStore):
    """Fails any upsert batch containing an entry for ``entity``."""

    def __init__(self, entity: str) -> None:
        super().__init__()
        self.entity = entity

    def upsert(self, name: str, entries: Sequence[VectorEntry]) -> None:
        if any(e.metadata.get("entityName") == self.entity for e in entries):
            raise VectorStoreError.bad_status("upsert", 500, "boom")
        super().upsert(name, entries)


class DuplicateRejectingStore(InMemoryVectorStore):
    """Rejects a batch that repeats an id, as Chroma does."""

    def upsert(self, name: str, entries: Sequence[VectorEntry]) -> None:
        if len({e.id for e in entries}) != len(entries):
            raise VectorStoreError.bad_status("upsert", 400, "duplicate ids")
        super().upsert(name, entries)


class RunIdRecordingSegmenter(JavaSegmenter):
    def __init__(self) -> None:
        super().__init__()
        self.run_ids: list[str | None] = []

    def parse_file(self, path: Path, root: Path) -> list[CodeSegment]:
        self.run_ids.append(get_run_id())
        return super().parse_file(path, root)


class RunIdRecordingStore(InMemoryVectorStore):
    def __init__(self) -> None:
        super().__init__()
        self.run_ids: list[str | None] = []

    def upsert(self, name: str, entries: Sequence[VectorEntry]) -> None:
        self.run_ids.append(get_run_id())
        super().upsert(name, entries)


class UnreachableStore(InMemoryVectorStore):
    def ensure_collection(self, name: str) -> None:
        raise VectorStoreError.request_failed("ensure_collection", "connection refused")


class BlockingStore(InMemoryVectorStore):
    """Holds ensure_collection until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def ensure_collection(self, name: str) -> None:
        self.entered.set()
        self.release.wait(timeout=10)
        super().ensure_collection(name)


def _write_sources(root: Path, count: int) -> None:
    root.mkdir(parents=True, exist_ok=True)
    for i in range(count):
        (root / f"Class{i}.java").write_text(simple_class(f"Class{i}"))


class TestEmbedSegments:
    """embed_segments()."""

    def test_pairs_vectors_with_segments(self, segmenter: JavaSegmenter) -> None:
        segments = segmenter.parse(simple_class("A"), "A.java")

        entries, missing = embed_segments(FakeEmbeddingGateway(), segments)

        assert missing == 0
        assert [e.id for e in entries] == [s.id for s in segments]
        assert entries[0].metadata["filePath"] == "A.java"
        assert entries[0].document == segments[0].content

    def test_missing_vectors_are_counted(self, segmenter: JavaSegmenter) -> None:
        segments = segmenter.parse(simple_class("A"), "A.java")

        entries, missing = embed_segments(FakeEmbeddingGateway(fail_markers=["return 1"]), segments)

        assert missing == 2  # class and method both contain the body
        assert entries == []

    def test_count_mismatch_raises(self, segmenter: JavaSegmenter) -> None:
        segments = segmenter.parse(simple_class("A"), "A.java")

        with pytest.raises(EmbeddingError) as exc_info:
            embed_segments(FakeEmbeddingGateway(drop_last=True), segments)
        assert exc_info.value.details == {"expected": 2, "actual": 1}

    def test_empty_input(self) -> None:
        gateway = FakeEmbeddingGateway()
        assert embed_segments(gateway, []) == ([], 0)
        assert gateway.calls == []


class TestFullReindex:
    """Successful runs."""

    def test_indexes_eligible_files(
        self, pools: StagePools, memory_store: InMemoryVectorStore, java_tree: Path
    ) -> None:
        orchestrator = _orchestrator(pools, memory_store, FakeEmbeddingGateway())

        stats = orchestrator.run(java_tree)

        assert stats.files_found == 2
        assert stats.files_parsed == 2
        assert stats.files_failed == 0
        assert stats.segments_parsed == stats.segments_embedded == stats.entries_upserted
        assert memory_store.count("code") == stats.entries_upserted
        paths = {e.file_path for e in memory_store.get("code")}
        assert paths == {"src/main/java/com/acme/Customer.java", "src/main/java/com/acme/Order.java"}

    def test_status_after_run(self, pools: StagePools, memory_store: InMemoryVectorStore, java_tree: Path) -> None:
        orchestrator = _orchestrator(pools, memory_store, FakeEmbeddingGateway())
        assert orchestrator.status == IndexerState.IDLE

        stats = orchestrator.run(java_tree)

        assert orchestrator.status == IndexerState.IDLE
        assert orchestrator.progress == 1.0
        assert orchestrator.last_stats is stats
        assert orchestrator.last_error is None

    def test_reindex_of_unchanged_tree_is_stable(
        self, pools: StagePools, memory_store: InMemoryVectorStore, java_tree: Path
    ) -> None:
        orchestrator = _orchestrator(pools, memory_store, FakeEmbeddingGateway())

        orchestrator.run(java_tree)
        first = {e.id: e.embedding for e in memory_store.get("code")}
        orchestrator.run(java_tree)
        second = {e.id: e.embedding for e in memory_store.get("code")}

        assert first == second

    def test_small_batches(self, pools: StagePools, memory_store: InMemoryVectorStore, tmp_path: Path) -> None:
        _write_sources(tmp_path / "src", 7)
        orchestrator = _orchestrator(
            pools, memory_store, FakeEmbeddingGateway(), parse_batch_size=3, upsert_batch_size=4
        )

        stats = orchestrator.run(tmp_path / "src")

        assert stats.files_parsed == 7
        assert stats.entries_upserted == 14
        assert memory_store.count("code") == 14

    def test_creates_collection(self, pools: StagePools, java_tree: Path) -> None:
        store = InMemoryVectorStore()
        _orchestrator(pools, store, FakeEmbeddingGateway()).run(java_tree)
        assert store.count("code") > 0


class TestFailureIsolation:
    """Failures that cost only their own items."""

    def test_invalid_syntax_file_yields_no_segments(
        self, pools: StagePools, memory_store: InMemoryVectorStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "src"
        _write_sources(root, 9)
        (root / "Broken.java").write_text(BROKEN_SOURCE)
        orchestrator = _orchestrator(pools, memory_store, FakeEmbeddingGateway())

        stats = orchestrator.run(root)

        assert stats.files_found == 10
        assert stats.files_failed == 0
        assert stats.segments_parsed == 18
        paths = {e.file_path for e in memory_store.get("code")}
        assert len(paths) == 9
        assert "Broken.java" not in paths

    def test_unreadable_file_is_counted_and_skipped(
        self, pools: StagePools, memory_store: InMemoryVectorStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "src"
        _write_sources(root, 3)
        orchestrator = _orchestrator(
            pools, memory_store, FakeEmbeddingGateway(), segmenter=FailingSegmenter("Class1")
        )

        stats = orchestrator.run(root)

        assert stats.files_parsed == 2
        assert stats.files_failed == 1
        assert {e.file_path for e in memory_store.get("code")} == {"Class0.java", "Class2.java"}

    def test_missing_embeddings_are_skipped(
        self, pools: StagePools, memory_store: InMemoryVectorStore, tmp_path: Path
    ) -> None:
        root = tmp_path / "src"
        _write_sources(root, 3)
        orchestrator = _orchestrator(pools, memory_store, FakeEmbeddingGateway(fail_markers=["class Class2"]))

        stats = orchestrator.run(root)

        assert stats.embeddings_missing == 1
        assert stats.entries_upserted == 5
        assert memory_store.get("code", {"entityName": "Class2"}) == []

    def test_failed_upsert_batch_keeps_other_batches(self, pools: StagePools, tmp_path: Path) -> None:
        root = tmp_path / "src"
        _write_sources(root, 4)
        store = RejectingStore(entity="Class3")
        orchestrator = _orchestrator(pools, store, FakeEmbeddingGateway(), upsert_batch_size=2)

        stats = orchestrator.run(root)

        assert stats.batches_failed == 1
        assert stats.entries_upserted == 6
        assert store.count("code") == 6
        assert store.get("code", {"filePath": "Class3.java"}) == []


class TestStageFailures:
    """Failures that abort the run."""

    def test_count_mismatch_aborts_at_embed(
        self, pools: StagePools, memory_store: InMemoryVectorStore, java_tree: Path
    ) -> None:
        orchestrator = _orchestrator(pools, memory_store, FakeEmbeddingGateway(drop_last=True))

        with pytest.raises(IndexingError) as exc_info:
            orchestrator.run(java_tree)

        error = exc_info.value
        assert error.error_name == "INDEXING_STAGE_FAILED"
        assert error.details["stage"] == "embed"
        assert error.details["stats"]["files_parsed"] == 2
        assert memory_store.count("code") == 0
        assert orchestrator.status == IndexerState.IDLE
        assert orchestrator.last_error is error

    def test_unreachable_store_aborts_and_releases(self, pools: StagePools, java_tree: Path) -> None:
        orchestrator = _orchestrator(pools, UnreachableStore(), FakeEmbeddingGateway())

        with pytest.raises(IndexingError) as exc_info:
            orchestrator.run(java_tree)
        assert exc_info.value.details["stage"] == "ensure_collection"
        assert isinstance(exc_info.value.__cause__, VectorStoreError)

        # The flag was released, so a retry is accepted (and fails the same way)
        with pytest.raises(IndexingError):
            orchestrator.run(java_tree)

    def test_not_a_directory(self, pools: StagePools, memory_store: InMemoryVectorStore, tmp_path: Path) -> None:
        orchestrator = _orchestrator(pools, memory_store, FakeEmbeddingGateway())

        with pytest.raises(IndexingError) as exc_info:
            orchestrator.run(tmp_path / "nope")

        assert exc_info.value.error_name == "INDEXING_NOT_A_DIRECTORY"
        assert orchestrator.status == IndexerState.IDLE


class TestExclusivity:
    """Only one full reindex at a time."""

    def test_second_request_rejected_while_running(self, pools: StagePools, java_tree: Path) -> None:
        store = BlockingStore()
        orchestrator = _orchestrator(pools, store, FakeEmbeddingGateway())

        future = orchestrator.submit(java_tree)
        assert store.entered.wait(timeout=5)
        assert orchestrator.status == IndexerState.RUNNING

        with pytest.raises(IndexingError) as exc_info:
            orchestrator.run(java_tree)
        assert exc_info.value.error_name == "INDEXING_ALREADY_IN_PROGRESS"
        with pytest.raises(IndexingError):
            orchestrator.submit(java_tree)
        assert orchestrator.status == IndexerState.RUNNING

        store.release.set()
        stats = future.result(timeout=10)

        assert stats.files_parsed == 2
        assert orchestrator.status == IndexerState.IDLE

    def test_submit_takes_flag_before_returning(self, pools: StagePools, java_tree: Path) -> None:
        store = BlockingStore()
        orchestrator = _orchestrator(pools, store, FakeEmbeddingGateway())

        future = orchestrator.submit(java_tree)
        with pytest.raises(IndexingError):
            orchestrator.submit(java_tree)

        store.release.set()
        future.result(timeout=10)


class TestDuplicateIds:
    """Entries sharing an id are upserted once."""

    def test_unique_entries_keeps_first(self) -> None:
        first = VectorEntry(id="a", embedding=[1.0], metadata={}, document="one")
        entries = [first, VectorEntry(id="b", embedding=[1.0], metadata={}, document=""), first]

        assert [e.id for e in unique_entries(entries)] == ["a", "b"]

    def test_identical_blocks_on_one_line_do_not_fail_batch(self, tmp_path: Path, pools: StagePools) -> None:
        root = tmp_path / "src"
        root.mkdir()
        (root / "Twice.java").write_text(
            "package p;\n\npublic class Twice {\n    static { int a = 1; } static { int a = 1; }\n}\n"
        )
        store = DuplicateRejectingStore()

        stats = _orchestrator(pools, store, FakeEmbeddingGateway()).run(root)

        assert stats.batches_failed == 0
        assert stats.entries_upserted == store.count("code")
        assert store.count("code") >= 2


class TestRunCorrelation:
    """Pool work carries the run's correlation id."""

    def test_parse_and_upsert_see_run_id(self, tmp_path: Path, pools: StagePools) -> None:
        _write_sources(tmp_path / "src", 4)
        segmenter = RunIdRecordingSegmenter()
        store = RunIdRecordingStore()

        _orchestrator(pools, store, FakeEmbeddingGateway(), segmenter=segmenter, upsert_batch_size=2).run(
            tmp_path / "src"
        )

        seen = set(segmenter.run_ids) | set(store.run_ids)
        assert len(segmenter.run_ids) == 4
        assert len(seen) == 1
        assert None not in seen
        assert get_run_id() is None
