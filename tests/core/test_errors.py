"""Tests for error types and codes."""

import pytest

from coderag.core.errors import (
    CodeRagError,
    ConfigError,
    EmbeddingError,
    ErrorCode,
    IndexingError,
    ParseError,
    VectorStoreError,
    WatchError,
)


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000),
            (ErrorCode.PARSE_FILE_UNREADABLE, 3000),
            (ErrorCode.EMBEDDING_COUNT_MISMATCH, 4000),
            (ErrorCode.VECTOR_STORE_BAD_STATUS, 5000),
            (ErrorCode.INDEXING_ALREADY_IN_PROGRESS, 6000),
            (ErrorCode.WATCH_NOT_A_DIRECTORY, 7000),
            (ErrorCode.INTERNAL_ERROR, 9000),
        ],
    )
    def test_given_error_code_when_checked_then_in_correct_range(self, code: ErrorCode, expected_range: int) -> None:
        """Error codes fall within their designated numeric range."""
        assert expected_range <= code.value < expected_range + 1000


class TestCodeRagError:
    """Base error behavior tests."""

    def test_given_error_when_to_dict_then_serializes_all_fields(self) -> None:
        """Error serializes to dict with all required fields."""
        # Given
        error = CodeRagError(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message="Test message",
            retryable=True,
            details={"key": "value"},
        )

        # When
        result = error.to_dict()

        # Then
        assert result == {
            "code": 2001,
            "error": "CONFIG_PARSE_ERROR",
            "message": "Test message",
            "retryable": True,
            "details": {"key": "value"},
        }

    def test_given_error_when_str_then_human_readable(self) -> None:
        """Error string representation is human readable."""
        error = CodeRagError(code=ErrorCode.INTERNAL_ERROR, message="Something broke")
        assert str(error) == "[9001] INTERNAL_ERROR: Something broke"

    def test_errors_are_raisable(self) -> None:
        with pytest.raises(CodeRagError):
            raise ParseError.unreadable("/x/A.java", "gone")


class TestFactories:
    """Named constructors."""

    def test_config_invalid_value(self) -> None:
        error = ConfigError.invalid_value("indexer.io_workers", 0, "Must be at least 1")
        assert error.code == ErrorCode.CONFIG_INVALID_VALUE
        assert error.details == {"field": "indexer.io_workers", "value": "0", "reason": "Must be at least 1"}

    def test_embedding_count_mismatch_not_retryable(self) -> None:
        error = EmbeddingError.count_mismatch(10, 9)
        assert not error.retryable
        assert error.details == {"expected": 10, "actual": 9}

    @pytest.mark.parametrize(("status", "retryable"), [(500, True), (503, True), (400, False), (404, False)])
    def test_vector_store_bad_status_retryability(self, status: int, retryable: bool) -> None:
        assert VectorStoreError.bad_status("upsert", status, "body").retryable is retryable

    def test_bad_status_body_truncated(self) -> None:
        error = VectorStoreError.bad_status("query", 500, "x" * 2000)
        assert len(error.details["body"]) == 500

    def test_stage_failed_carries_stats(self) -> None:
        cause = RuntimeError("socket closed")
        error = IndexingError.stage_failed("upsert", cause, {"files_parsed": 3})
        assert error.details == {"stage": "upsert", "cause": "socket closed", "stats": {"files_parsed": 3}}
        assert "upsert" in error.message

    def test_watch_not_a_directory(self) -> None:
        error = WatchError.not_a_directory("/nope")
        assert error.error_name == "WATCH_NOT_A_DIRECTORY"
        assert isinstance(error, CodeRagError)
