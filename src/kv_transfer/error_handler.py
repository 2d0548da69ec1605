"""Error handling implementation for KV Transfer."""

import logging
from typing import Optional

from .types import (
    ErrorResponse,
    ErrorType,
    ImportOptions,
    KvTransferError,
    ValidationResult,
)
from .utils.validation import ValidationUtils


class ErrorHandler:
    """
    Classifies failures met while transferring entries.

    Per-entry problems (bad lines, unencodable values, rejected commits)
    are recoverable and only counted; failures of the input stream are not.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize the error handler.

        Args:
            logger: Optional logger instance for error reporting
        """
        self.logger = logger or logging.getLogger(__name__)

    def validate_options(self, options: ImportOptions) -> ValidationResult:
        """
        Validate import options.

        Args:
            options: Import options to validate

        Returns:
            ValidationResult with validation details
        """
        result = ValidationUtils.validate_import_options(options)
        for warning in result.warnings:
            self.logger.warning(warning)
        return result

    def handle_entry_error(self, error: KvTransferError,
                           line_number: Optional[int] = None) -> ErrorResponse:
        """
        Handle an error tied to a single entry or batch.

        Args:
            error: Error to handle
            line_number: Input line the error belongs to, if known

        Returns:
            ErrorResponse with recovery information
        """
        location = f"line {line_number}" if line_number is not None else "batch"
        self.logger.warning(f"Skipping entry at {location}: {error.error_type.value} - {error}")

        if error.error_type == ErrorType.DECODE:
            return ErrorResponse(
                can_recover=True,
                suggested_action="Check that the line is a JSON entry produced by an export."
            )
        elif error.error_type == ErrorType.ENCODE:
            return ErrorResponse(
                can_recover=True,
                suggested_action="Remove values the store cannot represent."
            )
        elif error.error_type == ErrorType.STORE_LIMIT:
            return ErrorResponse(
                can_recover=True,
                suggested_action="Split the value; it exceeds the store's per-operation limit."
            )
        elif error.error_type == ErrorType.STORE:
            return ErrorResponse(
                can_recover=True,
                suggested_action="Retry the import; the store rejected the commit."
            )
        else:
            return ErrorResponse(
                can_recover=False,
                suggested_action="The input stream failed. Re-run the import from the start."
            )
