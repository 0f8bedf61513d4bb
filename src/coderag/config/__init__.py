"""Config module exports."""

from coderag.config.loader import load_config
from coderag.config.models import (
    CodeRagConfig,
    EmbeddingConfig,
    IndexerConfig,
    LoggingConfig,
    SegmentationConfig,
    VectorStoreConfig,
    WatchConfig,
)

__all__ = [
    "load_config",
    "CodeRagConfig",
    "EmbeddingConfig",
    "IndexerConfig",
    "LoggingConfig",
    "SegmentationConfig",
    "VectorStoreConfig",
    "WatchConfig",
]
