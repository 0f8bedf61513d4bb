"""Core module exports."""

from coderag.core.errors import (
    CodeRagError,
    ConfigError,
    EmbeddingError,
    ErrorCode,
    IndexingError,
    InternalError,
    ParseError,
    VectorStoreError,
    WatchError,
)
from coderag.core.logging import (
    clear_run_id,
    configure_logging,
    get_logger,
    get_run_id,
    set_run_id,
)

__all__ = [
    # Errors
    "CodeRagError",
    "ConfigError",
    "EmbeddingError",
    "ErrorCode",
    "IndexingError",
    "InternalError",
    "ParseError",
    "VectorStoreError",
    "WatchError",
    # Logging
    "clear_run_id",
    "configure_logging",
    "get_logger",
    "get_run_id",
    "set_run_id",
]
