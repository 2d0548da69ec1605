"""Size estimation of values in the store's binary serialization format."""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional, Sequence

from ..values import (
    SAFE_INTEGER_MAX,
    UNDEFINED,
    BigInt,
    KvMap,
    KvSet,
    KvU64,
    RegExp,
    TypedArray,
)


INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

DEDUPE_SCOPES = ("document", "path")


def varint_size(number: int) -> int:
    """Number of bytes a non-negative integer takes as a base-128 varint."""
    return max(1, (number.bit_length() + 6) // 7)


def utf8_length(text: str) -> int:
    """UTF-8 byte length of `text`, counted without encoding it."""
    if text.isascii():
        return len(text)
    length = 0
    for char in text:
        code = ord(char)
        if code < 0x80:
            length += 1
        elif code < 0x800:
            length += 2
        elif code < 0x10000:
            length += 3
        else:
            length += 4
    return length


class _Walk:
    """State of one top-level estimate: running total and seen identities."""

    def __init__(self, scope: str):
        self.scope = scope
        self.total = 0
        self.seen: Dict[int, int] = {}
        self.next_id = 0


class SizeEstimator:
    """
    Approximates the serialized size of values without serializing them.

    Costs follow the layout of the host's structured-clone style format:
    one tag byte per value, varint lengths, raw payload bytes, and a short
    back-reference for any composite object already written in the same
    document. Byte-exact parity is not a goal; estimates are meant for
    batch admission decisions.
    """

    HEADER_SIZE = 2  # format version tag + version number
    TAG_SIZE = 1
    DOUBLE_SIZE = 8
    DATE_SIZE = 9
    KV_U64_SIZE = 9
    VIEW_HEADER_SIZE = 4  # view tag, subtype, offset, flags

    def __init__(self, dedupe_scope: str = "document", logger: Optional[logging.Logger] = None):
        """
        Initialize the size estimator.

        Args:
            dedupe_scope: "document" charges a back-reference for any composite
                seen earlier in the same call; "path" only for one seen among
                its own ancestors
            logger: Optional logger instance
        """
        if dedupe_scope not in DEDUPE_SCOPES:
            raise ValueError(f"dedupe_scope must be one of {DEDUPE_SCOPES}, got {dedupe_scope!r}")
        self.dedupe_scope = dedupe_scope
        self.logger = logger or logging.getLogger(__name__)

    def estimate_size(self, value: Any) -> int:
        """
        Estimate the serialized size of a value in bytes.

        Args:
            value: Any storable value

        Returns:
            Estimated size in bytes; never raises for storable values
        """
        walk = _Walk(self.dedupe_scope)
        walk.total = self.HEADER_SIZE
        try:
            self._visit(walk, value)
        except RecursionError:
            self.logger.warning("Value nested too deeply to estimate fully; "
                                f"returning partial estimate of {walk.total} bytes")
        return walk.total

    def estimate_key_size(self, key: Sequence[Any]) -> int:
        """
        Estimate the encoded size of a key.

        Each part costs a type byte, its payload and a terminator.
        """
        total = 0
        for part in key:
            if isinstance(part, bool):
                payload = 0
            elif isinstance(part, int):
                payload = 1 + max(1, math.ceil(part.bit_length() / 8))
            elif isinstance(part, float):
                payload = self.DOUBLE_SIZE
            elif isinstance(part, str):
                payload = utf8_length(part)
            elif isinstance(part, (bytes, bytearray)):
                payload = len(part)
            else:
                payload = utf8_length(repr(part))
            total += payload + 2
        return total

    def estimate_entry_size(self, key: Sequence[Any], value: Any) -> int:
        """Estimate the size a key/value pair contributes to an atomic commit."""
        return self.estimate_key_size(key) + self.estimate_size(value)

    def will_exceed_limit(self, current_size: int, current_count: int, new_size: int,
                          max_size: int, max_count: int) -> bool:
        """
        Check if adding an item to a batch would exceed either limit.

        Args:
            current_size: Estimated size of the batch so far
            current_count: Number of items in the batch so far
            new_size: Estimated size of the item to add
            max_size: Maximum batch size in bytes
            max_count: Maximum number of items per batch

        Returns:
            True if the limit would be exceeded
        """
        return current_size + new_size > max_size or current_count + 1 > max_count

    def _string_size(self, text: str) -> int:
        length = utf8_length(text)
        return self.TAG_SIZE + varint_size(length) + length

    def _number_size(self, number: float) -> int:
        if (math.isfinite(number) and number == int(number)
                and not (number == 0 and math.copysign(1.0, number) < 0)
                and INT32_MIN <= number <= INT32_MAX):
            small = int(number)
            zigzag = (small << 1) ^ (small >> 31)
            return self.TAG_SIZE + varint_size(zigzag & 0xFFFFFFFF)
        return self.TAG_SIZE + self.DOUBLE_SIZE

    def _bigint_size(self, number: int) -> int:
        length = max(1, math.ceil(abs(number).bit_length() / 8))
        return self.TAG_SIZE + varint_size(length * 2) + length

    def _binary_size(self, length: int) -> int:
        backing = self.TAG_SIZE + varint_size(length) + length
        return backing + self.VIEW_HEADER_SIZE + varint_size(length)

    def _visit(self, walk: _Walk, value: Any) -> None:
        if value is None or value is UNDEFINED or isinstance(value, bool):
            walk.total += self.TAG_SIZE
        elif isinstance(value, BigInt):
            walk.total += self._bigint_size(value)
        elif isinstance(value, int):
            if abs(value) > SAFE_INTEGER_MAX:
                walk.total += self._bigint_size(value)
            else:
                walk.total += self._number_size(value)
        elif isinstance(value, float):
            walk.total += self._number_size(value)
        elif isinstance(value, str):
            walk.total += self._string_size(value)
        elif isinstance(value, bytes):
            walk.total += self._binary_size(len(value))
        elif isinstance(value, datetime):
            walk.total += self.DATE_SIZE
        elif isinstance(value, KvU64):
            walk.total += self.KV_U64_SIZE
        elif isinstance(value, (dict, list, tuple, KvMap, KvSet, set, frozenset,
                                bytearray, TypedArray, RegExp)):
            self._visit_object(walk, value)
        else:
            self.logger.debug(f"Estimating unsupported type {type(value).__name__} from its repr")
            walk.total += self._string_size(repr(value))

    def _visit_object(self, walk: _Walk, value: Any) -> None:
        marker = id(value)
        if marker in walk.seen:
            walk.total += self.TAG_SIZE + varint_size(walk.seen[marker])
            return
        walk.seen[marker] = walk.next_id
        walk.next_id += 1
        try:
            self._visit_object_body(walk, value)
        finally:
            if walk.scope == "path":
                del walk.seen[marker]

    def _visit_object_body(self, walk: _Walk, value: Any) -> None:
        if isinstance(value, dict):
            walk.total += self.TAG_SIZE
            for key, item in value.items():
                walk.total += self._string_size(key if isinstance(key, str) else str(key))
                self._visit(walk, item)
            walk.total += self.TAG_SIZE + varint_size(len(value))
        elif isinstance(value, (list, tuple)):
            # dense array: tag, length, elements, end tag, property count, length
            walk.total += self.TAG_SIZE + varint_size(len(value))
            for item in value:
                self._visit(walk, item)
            walk.total += self.TAG_SIZE + varint_size(0) + varint_size(len(value))
        elif isinstance(value, KvMap):
            walk.total += self.TAG_SIZE
            for key, item in value.items():
                self._visit(walk, key)
                self._visit(walk, item)
            walk.total += self.TAG_SIZE + varint_size(2 * len(value))
        elif isinstance(value, (KvSet, set, frozenset)):
            walk.total += self.TAG_SIZE
            for item in value:
                self._visit(walk, item)
            walk.total += self.TAG_SIZE + varint_size(len(value))
        elif isinstance(value, bytearray):
            walk.total += self._binary_size(len(value))
        elif isinstance(value, TypedArray):
            walk.total += self._binary_size(len(value.buffer))
        else:
            walk.total += self.TAG_SIZE + self._string_size(value.source) + varint_size(value.flag_bits)


_default_estimator = SizeEstimator()


def estimate_size(value: Any) -> int:
    """Estimate the serialized size of `value` with document-scoped dedup."""
    return _default_estimator.estimate_size(value)
