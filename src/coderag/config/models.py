"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (CODERAG__SECTION__KEY)
3. Repo YAML (<root>/.coderag/config.yaml)
4. Global YAML (~/.config/coderag/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    CODERAG__<SECTION>__<KEY>=<VALUE>

Examples:
    CODERAG__LOGGING__LEVEL=DEBUG
    CODERAG__SEGMENTATION__MAX_SEGMENT_LENGTH=4000
    CODERAG__VECTOR_STORE__URL=http://chroma:8000
    CODERAG__INDEXER__IO_WORKERS=8
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        CODERAG__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every parsed file and segment.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class WatchConfig(BaseModel):
    """File watcher configuration.

    Env vars:
        CODERAG__WATCH__ROOT: Watched root directory
        CODERAG__WATCH__DEBOUNCE_SEC: Per-file quiet window before an update runs
        CODERAG__WATCH__DISPATCH_WORKERS: Update handler pool size
        CODERAG__WATCH__DISPATCH_QUEUE_CAPACITY: Max in-flight update events
    """

    root: str = Field(
        default=".",
        description="Root directory of the source tree to watch and index.",
    )
    extensions: list[str] = Field(
        default_factory=lambda: [".java"],
        description="File extensions whose changes are forwarded to the updater.",
    )
    debounce_sec: float = Field(
        default=1.0,
        description="Quiet window per file before an incremental update runs. "
        "Zero processes every event immediately.",
    )
    stop_timeout_sec: float = Field(
        default=5.0,
        description="How long stop() waits for the watch thread to exit.",
    )
    dispatch_workers: int = Field(
        default=4,
        description="Worker threads handling file-change events.",
    )
    dispatch_queue_capacity: int = Field(
        default=1000,
        description="Max events in flight. Excess events are dropped (logged); "
        "a later full reindex restores consistency.",
    )

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, v: list[str]) -> list[str]:
        return [e if e.startswith(".") else f".{e}" for e in (x.lower() for x in v)]

    @field_validator("dispatch_workers", "dispatch_queue_capacity")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Must be at least 1, got {v}")
        return v


class SegmentationConfig(BaseModel):
    """Segmentation engine configuration.

    Env vars:
        CODERAG__SEGMENTATION__MAX_SEGMENT_LENGTH: Max chars per embedded segment
        CODERAG__SEGMENTATION__OVERLAP_CHARS: Overlap between consecutive chunks
        CODERAG__SEGMENTATION__MAX_FILE_SIZE_BYTES: Skip larger files
    """

    max_segment_length: int = Field(
        default=2000,
        description="Segments longer than this (chars) are split into overlapping chunks.",
    )
    overlap_chars: int = Field(
        default=100,
        description="Characters shared by consecutive chunks of one segment.",
    )
    max_file_size_bytes: int = Field(
        default=1024 * 1024,
        description="Files larger than this are skipped before parsing.",
    )
    preview_lines: int = Field(
        default=50,
        description="Leading lines scanned for unsupported syntax.",
    )

    @field_validator("max_segment_length")
    @classmethod
    def validate_max_length(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_segment_length must be positive, got {v}")
        return v

    @field_validator("overlap_chars")
    @classmethod
    def validate_overlap(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"overlap_chars must be non-negative, got {v}")
        return v


class IndexerConfig(BaseModel):
    """Indexing pipeline configuration.

    Env vars:
        CODERAG__INDEXER__PARSE_BATCH_SIZE: Files parsed per batch
        CODERAG__INDEXER__UPSERT_BATCH_SIZE: Entries per vector-store upsert
        CODERAG__INDEXER__PARSE_WORKERS: Parser pool size (CPU-bound)
        CODERAG__INDEXER__IO_WORKERS: Embedding/vector-store pool size (I/O-bound)
        CODERAG__INDEXER__REPLACE_ON_MODIFY: Delete a file's entries before re-upserting
    """

    parse_batch_size: int = Field(
        default=50,
        description="Files parsed per batch. Caps in-flight segment memory.",
    )
    upsert_batch_size: int = Field(
        default=200,
        description="Vector entries per upsert request. Batches commit independently.",
    )
    parse_worker_multiplier: int = Field(
        default=2,
        description="Parser pool size multiplier applied to the CPU count.",
    )
    parse_workers: int | None = Field(
        default=None,
        description="Parser pool size. Default: cpu_count * parse_worker_multiplier.",
    )
    io_workers: int = Field(
        default=4,
        description="Embedding and vector-store pool size. Keep small: the remote "
        "services are rate-limited.",
    )
    replace_on_modify: bool = Field(
        default=True,
        description="On MODIFY, delete the file's existing entries before upserting "
        "its new segments so content-addressed ids of edited segments do not linger.",
    )

    @model_validator(mode="after")
    def resolve_parse_workers(self) -> "IndexerConfig":
        if self.parse_workers is None:
            self.parse_workers = max(1, (os.cpu_count() or 1) * self.parse_worker_multiplier)
        return self

    @field_validator("parse_batch_size", "upsert_batch_size", "io_workers", "parse_worker_multiplier")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Must be at least 1, got {v}")
        return v


class EmbeddingConfig(BaseModel):
    """Embedding backend configuration.

    Env vars:
        CODERAG__EMBEDDING__BASE_URL: Ollama base URL
        CODERAG__EMBEDDING__MODEL: Embedding model identifier
    """

    base_url: str = Field(default="http://localhost:11434")
    model: str = Field(default="nomic-embed-text")
    batch_size: int = Field(
        default=16,
        description="Texts per embedding request. A failed request only empties its own items.",
    )
    connect_timeout_sec: float = Field(default=5.0)
    read_timeout_sec: float = Field(default=120.0)


class VectorStoreConfig(BaseModel):
    """Vector store backend configuration.

    Env vars:
        CODERAG__VECTOR_STORE__BACKEND: chroma or memory
        CODERAG__VECTOR_STORE__URL: Chroma base URL
        CODERAG__VECTOR_STORE__COLLECTION: Collection name
    """

    backend: Literal["chroma", "memory"] = Field(
        default="chroma",
        description="'memory' keeps entries in-process (useful for tests and dry runs).",
    )
    url: str = Field(default="http://localhost:8000")
    collection: str = Field(default="code_embeddings")
    tenant: str = Field(default="default_tenant")
    database: str = Field(default="default_database")
    distance_function: Literal["cosine", "l2", "ip"] = Field(default="cosine")
    connect_timeout_sec: float = Field(default=3.0)
    read_timeout_sec: float = Field(default=30.0)


class ChatConfig(BaseModel):
    """Chat model identifier, consumed by the downstream query layer."""

    model: str = Field(default="codellama:7b-instruct")


class SearchConfig(BaseModel):
    """Search defaults, consumed by the query path.

    Env vars:
        CODERAG__SEARCH__MIN_SCORE: Drop hits with similarity below this
        CODERAG__SEARCH__MAX_RESULTS: Default result count
    """

    min_score: float = Field(
        default=0.0,
        description="Minimum similarity (1 - distance) for a hit to be returned.",
    )
    max_results: int = Field(default=10)


class CodeRagConfig(BaseModel):
    """Root configuration for CodeRAG."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)
    segmentation: SegmentationConfig = Field(default_factory=SegmentationConfig)
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector_store: VectorStoreConfig = Field(default_factory=VectorStoreConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
