"""CodeRAG error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Parse
- 4xxx: Embedding
- 5xxx: Vector store
- 6xxx: Indexing
- 7xxx: Watch
- 9xxx: Internal

Unsupported syntax and watch overflow have no error type: the first yields an
empty segment list, the second a warning log line.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004

    # Parse (3xxx)
    PARSE_FILE_UNREADABLE = 3001

    # Embedding (4xxx)
    EMBEDDING_REQUEST_FAILED = 4001
    EMBEDDING_EMPTY_INPUT = 4002
    EMBEDDING_COUNT_MISMATCH = 4003

    # Vector store (5xxx)
    VECTOR_STORE_REQUEST_FAILED = 5001
    VECTOR_STORE_BAD_STATUS = 5002
    VECTOR_STORE_COLLECTION_NOT_FOUND = 5003
    VECTOR_STORE_EMPTY_FILTER = 5004

    # Indexing (6xxx)
    INDEXING_ALREADY_IN_PROGRESS = 6001
    INDEXING_NOT_A_DIRECTORY = 6002
    INDEXING_STAGE_FAILED = 6003

    # Watch (7xxx)
    WATCH_NOT_A_DIRECTORY = 7001
    WATCH_START_FAILED = 7002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class CodeRagError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CodeRagError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class ParseError(CodeRagError):
    """A source file could not be read. Syntax errors are not reported this way."""

    @classmethod
    def unreadable(cls, path: str, reason: str) -> "ParseError":
        return cls(
            code=ErrorCode.PARSE_FILE_UNREADABLE,
            message=f"Cannot read source file {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class EmbeddingError(CodeRagError):
    """Embedding backend errors."""

    @classmethod
    def request_failed(cls, reason: str, **details: Any) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBEDDING_REQUEST_FAILED,
            message=f"Embedding request failed: {reason}",
            retryable=True,
            details=details,
        )

    @classmethod
    def empty_input(cls) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBEDDING_EMPTY_INPUT,
            message="Cannot embed empty or blank text",
        )

    @classmethod
    def count_mismatch(cls, expected: int, actual: int) -> "EmbeddingError":
        return cls(
            code=ErrorCode.EMBEDDING_COUNT_MISMATCH,
            message=f"Embedding gateway returned {actual} vectors for {expected} inputs",
            details={"expected": expected, "actual": actual},
        )


class VectorStoreError(CodeRagError):
    """Vector store backend errors."""

    @classmethod
    def request_failed(cls, operation: str, reason: str) -> "VectorStoreError":
        return cls(
            code=ErrorCode.VECTOR_STORE_REQUEST_FAILED,
            message=f"Vector store {operation} failed: {reason}",
            retryable=True,
            details={"operation": operation, "reason": reason},
        )

    @classmethod
    def bad_status(cls, operation: str, status: int, body: str) -> "VectorStoreError":
        return cls(
            code=ErrorCode.VECTOR_STORE_BAD_STATUS,
            message=f"Vector store {operation} returned HTTP {status}",
            retryable=status >= 500,
            details={"operation": operation, "status": status, "body": body[:500]},
        )

    @classmethod
    def collection_not_found(cls, name: str) -> "VectorStoreError":
        return cls(
            code=ErrorCode.VECTOR_STORE_COLLECTION_NOT_FOUND,
            message=f"Collection not found: {name}",
            details={"collection": name},
        )

    @classmethod
    def empty_filter(cls, name: str) -> "VectorStoreError":
        return cls(
            code=ErrorCode.VECTOR_STORE_EMPTY_FILTER,
            message=f"Refusing metadata delete on '{name}' with an empty filter",
            details={"collection": name},
        )


class IndexingError(CodeRagError):
    """Full reindex errors."""

    @classmethod
    def already_in_progress(cls, path: str) -> "IndexingError":
        return cls(
            code=ErrorCode.INDEXING_ALREADY_IN_PROGRESS,
            message="Indexing is already in progress",
            retryable=True,
            details={"path": path},
        )

    @classmethod
    def not_a_directory(cls, path: str) -> "IndexingError":
        return cls(
            code=ErrorCode.INDEXING_NOT_A_DIRECTORY,
            message=f"Provided path is not a directory: {path}",
            details={"path": path},
        )

    @classmethod
    def stage_failed(cls, stage: str, cause: BaseException, stats: dict[str, Any]) -> "IndexingError":
        return cls(
            code=ErrorCode.INDEXING_STAGE_FAILED,
            message=f"Indexing stage '{stage}' failed: {cause}",
            retryable=True,
            details={"stage": stage, "cause": str(cause), "stats": stats},
        )


class WatchError(CodeRagError):
    """File watcher errors."""

    @classmethod
    def not_a_directory(cls, path: str) -> "WatchError":
        return cls(
            code=ErrorCode.WATCH_NOT_A_DIRECTORY,
            message=f"Watch root is not a directory: {path}",
            details={"path": path},
        )

    @classmethod
    def start_failed(cls, path: str, reason: str) -> "WatchError":
        return cls(
            code=ErrorCode.WATCH_START_FAILED,
            message=f"Failed to start watching {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class InternalError(CodeRagError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
