"""Pytest configuration and fixtures."""

import pytest
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from kv_transfer.store import MemoryKvStore
from kv_transfer.values import (
    UNDEFINED,
    BigInt,
    ElementEncoding,
    KvMap,
    KvSet,
    KvU64,
    RegExp,
    TypedArray,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def sample_values() -> Dict[str, Any]:
    """One value of every storable variant (NaN excluded: it never compares equal)."""
    return {
        "null": None,
        "undefined": UNDEFINED,
        "true": True,
        "integer": 42,
        "negative": -7,
        "double": 3.25,
        "infinity": float("inf"),
        "negative_infinity": float("-inf"),
        "negative_zero": -0.0,
        "bigint": BigInt(12345678901234567890),
        "small_bigint": BigInt(5),
        "text": "héllo wörld ✓",
        "bytes": b"\x00\x01\xfe\xff",
        "array": [1, "two", None, [3.5]],
        "record": {"name": "Alice", "tags": ["a", "b"], "nested": {"deep": True}},
        "tag_shaped_record": {"type": "bigint", "value": "1"},
        "map": KvMap([({"a": 1}, {"b": RegExp("234")}), ("plain", 1), (2, "two")]),
        "set": KvSet([1, "one", b"\x01", None]),
        "date": datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc),
        "regexp": RegExp("^a+b?$", "gi"),
        "int16": TypedArray.from_values(ElementEncoding.INT16, [1, -2, 300]),
        "float64_big_endian": TypedArray.from_values(ElementEncoding.FLOAT64, [1.5, -0.25],
                                                     byteorder="big"),
        "biguint64": TypedArray.from_values(ElementEncoding.BIGUINT64, [2 ** 64 - 1]),
        "counter": KvU64(2 ** 63),
    }


@pytest.fixture
def user_entries():
    """Ten user records and one setting."""
    entries = [
        (("users", f"user{i}"), {"name": f"User {i}", "age": 20 + i, "active": i % 2 == 0})
        for i in range(10)
    ]
    entries.append((("settings", "theme"), "dark"))
    return entries


@pytest.fixture
def populated_store(user_entries):
    """In-memory store loaded with the user entries."""
    return MemoryKvStore(initial=user_entries)
