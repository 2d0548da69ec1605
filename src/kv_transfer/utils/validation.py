"""Validation utilities for tagged JSON payloads and transfer options."""

import base64
import binascii
import re
from typing import Any, Dict, List, Optional

from ..types import DecodeError, ImportOptions, ValidationError, ValidationResult


_DECIMAL_RE = re.compile(r"^-?(0|[1-9][0-9]*)$")
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")

TAG_MEMBERS = frozenset(("type", "value"))

# Integers below this bound convert to and from text directly; larger ones
# are split so that no single conversion reaches the interpreter's digit limit.
_DIRECT_DIGITS = 1000
_DIRECT_LIMIT = 10 ** _DIRECT_DIGITS


def _digits_to_int(digits: str) -> int:
    if len(digits) <= _DIRECT_DIGITS:
        return int(digits)
    split = len(digits) // 2
    return _digits_to_int(digits[:-split]) * 10 ** split + _digits_to_int(digits[-split:])


def _int_to_digits(number: int) -> str:
    if number < _DIRECT_LIMIT:
        return str(number)
    split = int(number.bit_length() * 0.30103) // 2
    high, low = divmod(number, 10 ** split)
    return _int_to_digits(high) + _int_to_digits(low).zfill(split)


class ValidationUtils:
    """Utility class for validating payload text and option values."""

    @staticmethod
    def is_tagged(data: Dict[str, Any]) -> bool:
        """
        Check whether a JSON object has the shape of a tagged value.

        Args:
            data: Parsed JSON object

        Returns:
            True if `type` is a string and no member besides `type`/`value` exists
        """
        return isinstance(data.get("type"), str) and set(data) <= TAG_MEMBERS

    @staticmethod
    def parse_decimal(text: Any, path: str) -> int:
        """
        Parse a canonical decimal integer string.

        Args:
            text: Payload to parse
            path: Location used in error messages

        Returns:
            Parsed integer

        Raises:
            DecodeError: If the payload is not canonical decimal text
        """
        if not isinstance(text, str) or not _DECIMAL_RE.match(text) or text == "-0":
            shown = repr(text[:40]) if isinstance(text, str) else type(text).__name__
            raise DecodeError(f"Invalid decimal integer text {shown} at {path}",
                              context={"path": path})
        if text.startswith("-"):
            return -_digits_to_int(text[1:])
        return _digits_to_int(text)

    @staticmethod
    def format_decimal(number: int) -> str:
        """Render an integer of any size as decimal text."""
        number = int(number)
        if number < 0:
            return "-" + _int_to_digits(-number)
        return _int_to_digits(number)

    @staticmethod
    def decode_base64(text: Any, path: str) -> bytes:
        """
        Decode standard padded base64 text.

        Args:
            text: Payload to decode
            path: Location used in error messages

        Returns:
            Decoded bytes

        Raises:
            DecodeError: If the payload is not valid base64
        """
        if not isinstance(text, str) or not _BASE64_RE.match(text):
            raise DecodeError(f"Invalid base64 text at {path}", context={"path": path})
        try:
            data = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"Invalid base64 text at {path}: {e}", context={"path": path})
        # Unused padding bits must be zero so the text round-trips.
        if base64.b64encode(data).decode("ascii") != text:
            raise DecodeError(f"Non-canonical base64 text at {path}", context={"path": path})
        return data

    @staticmethod
    def encode_base64(data: bytes) -> str:
        return base64.b64encode(bytes(data)).decode("ascii")

    @staticmethod
    def require_member(data: Dict[str, Any], name: str, path: str) -> Any:
        if name not in data:
            raise DecodeError(f"Missing '{name}' at {path}", context={"path": path})
        return data[name]

    @staticmethod
    def validate_import_options(options: ImportOptions) -> ValidationResult:
        """
        Validate import options before a run starts.

        Args:
            options: Options to validate

        Returns:
            ValidationResult with validation details
        """
        errors: List[ValidationError] = []
        warnings: List[str] = []

        for name in ("batch_size_limit", "batch_count_limit"):
            limit: Optional[int] = getattr(options, name)
            if limit is None:
                continue
            if isinstance(limit, bool) or not isinstance(limit, int):
                errors.append(ValidationError(
                    message=f"{name} must be an integer, got {type(limit).__name__}",
                    location=name
                ))
            elif limit <= 0:
                errors.append(ValidationError(
                    message=f"{name} must be positive, got {limit}",
                    location=name
                ))

        if options.max_commit_retries < 0:
            errors.append(ValidationError(
                message=f"max_commit_retries must be non-negative, got {options.max_commit_retries}",
                location="max_commit_retries"
            ))

        if options.batch_count_limit == 1:
            warnings.append("batch_count_limit of 1 commits every entry separately")

        return ValidationResult(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings
        )
