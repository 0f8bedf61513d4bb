"""Tests for per-stage worker pools."""

import threading

from coderag.config.models import CodeRagConfig, IndexerConfig, WatchConfig
from coderag.core.pools import StagePools


class TestStagePools:
    def test_from_config(self) -> None:
        config = CodeRagConfig(
            indexer=IndexerConfig(parse_workers=3, io_workers=2),
            watch=WatchConfig(dispatch_workers=5),
        )
        pools = StagePools.from_config(config)
        try:
            assert (pools.parse_workers, pools.io_workers, pools.dispatch_workers) == (3, 2, 5)
        finally:
            pools.shutdown()

    def test_thread_names_identify_stage(self) -> None:
        pools = StagePools(parse_workers=1, io_workers=1, dispatch_workers=1)
        try:
            names = {
                "parse": pools.parse.submit(lambda: threading.current_thread().name).result(),
                "io": pools.io.submit(lambda: threading.current_thread().name).result(),
                "dispatch": pools.dispatch.submit(lambda: threading.current_thread().name).result(),
            }
        finally:
            pools.shutdown()
        assert names["parse"].startswith("coderag-parse")
        assert names["io"].startswith("coderag-io")
        assert names["dispatch"].startswith("coderag-dispatch")

    def test_shutdown_is_idempotent(self) -> None:
        pools = StagePools(parse_workers=1, io_workers=1, dispatch_workers=1)
        pools.shutdown()
        pools.shutdown(wait=False)
