"""Tests for error handler."""

import logging

import pytest

from kv_transfer.error_handler import ErrorHandler
from kv_transfer.types import (
    DecodeError,
    EncodeError,
    ErrorType,
    ImportOptions,
    ImportStreamError,
    KvTransferError,
    StoreError,
    StoreLimitExceeded,
)


class TestErrorHandler:
    """Tests for ErrorHandler class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.error_handler = ErrorHandler()

    def test_validate_default_options(self):
        """Test validation of default import options."""
        result = self.error_handler.validate_options(ImportOptions())

        assert result.is_valid
        assert len(result.errors) == 0
        assert len(result.warnings) == 0

    def test_validate_invalid_limits(self):
        """Test validation rejects non-positive limits."""
        result = self.error_handler.validate_options(
            ImportOptions(batch_size_limit=0, batch_count_limit=-3)
        )

        assert not result.is_valid
        assert [error.location for error in result.errors] == ["batch_size_limit", "batch_count_limit"]

    def test_warnings_are_logged(self, caplog):
        """Test that option warnings reach the log."""
        with caplog.at_level(logging.WARNING):
            result = self.error_handler.validate_options(ImportOptions(batch_count_limit=1))

        assert result.is_valid
        assert "commits every entry separately" in caplog.text

    @pytest.mark.parametrize("error,error_type,keyword", [
        (DecodeError("bad line"), ErrorType.DECODE, "json"),
        (EncodeError("bad value"), ErrorType.ENCODE, "values"),
        (StoreLimitExceeded("too big"), ErrorType.STORE_LIMIT, "limit"),
        (StoreError("unavailable"), ErrorType.STORE, "retry"),
    ])
    def test_entry_errors_are_recoverable(self, error, error_type, keyword):
        """Test that per-entry errors are classified as recoverable."""
        response = self.error_handler.handle_entry_error(error, line_number=3)

        assert error.error_type == error_type
        assert response.can_recover
        assert keyword in response.suggested_action.lower()

    def test_stream_error_is_not_recoverable(self):
        """Test that input stream failures stop the import."""
        response = self.error_handler.handle_entry_error(ImportStreamError("socket closed"))

        assert not response.can_recover
        assert "re-run" in response.suggested_action.lower()

    def test_handle_entry_error_logs_location(self, caplog):
        """Test that the failing line number is logged."""
        with caplog.at_level(logging.WARNING):
            self.error_handler.handle_entry_error(DecodeError("bad line"), line_number=7)

        assert "line 7" in caplog.text
        assert "decode" in caplog.text

    def test_error_context(self):
        """Test error type override and context on the base error."""
        error = KvTransferError("custom", ErrorType.IO, context={"path": "$"})

        assert error.error_type == ErrorType.IO
        assert error.context == {"path": "$"}
        assert str(error) == "custom"
        assert StoreError("x").error_type == ErrorType.STORE

    def test_codec_errors_are_value_errors(self):
        """Test that codec errors can be caught as ValueError."""
        assert isinstance(DecodeError("x"), ValueError)
        assert isinstance(EncodeError("x"), ValueError)
        assert isinstance(StoreLimitExceeded("x"), StoreError)
