"""Tests for size estimation utilities."""

from datetime import datetime, timezone

import pytest

from kv_transfer.utils.size_estimator import (
    SizeEstimator,
    estimate_size,
    utf8_length,
    varint_size,
)
from kv_transfer.values import BigInt, KvMap, KvSet, KvU64, RegExp


class TestEncodingHelpers:
    """Tests for varint and UTF-8 length helpers."""

    @pytest.mark.parametrize("number,expected", [
        (0, 1), (127, 1), (128, 2), (16383, 2), (16384, 3), (2 ** 32, 5),
    ])
    def test_varint_size(self, number, expected):
        assert varint_size(number) == expected

    def test_utf8_length(self):
        text = "é✓😀a"

        assert utf8_length(text) == len(text.encode("utf-8")) == 10


class TestSizeEstimator:
    """Tests for SizeEstimator class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.estimator = SizeEstimator()

    def test_reference_document(self):
        """Nested map with record key and regexp value matches the known size."""
        value = {"a": KvMap([({"a": 1}, {"b": RegExp("234")})]), "b": False}

        assert estimate_size(value) == 36

    @pytest.mark.parametrize("value,expected", [
        (None, 3),
        (True, 3),
        (1, 4),
        (2 ** 31 - 1, 8),
        (2 ** 31, 11),
        (1.5, 11),
        (-0.0, 11),
        ("abc", 7),
        (BigInt(255), 5),
        (b"\x00" * 10, 19),
        (datetime(2024, 1, 1, tzinfo=timezone.utc), 11),
        (KvU64(1), 11),
    ])
    def test_primitive_sizes(self, value, expected):
        assert self.estimator.estimate_size(value) == expected

    def test_unsafe_integer_is_estimated_as_bigint(self):
        assert self.estimator.estimate_size(2 ** 60) == self.estimator.estimate_size(BigInt(2 ** 60))

    def test_self_containing_list(self):
        value = []
        value.append(value)

        assert self.estimator.estimate_size(value) == 9

    def test_shared_reference_is_cheaper_in_document_scope(self):
        shared = {"payload": "x" * 100}
        value = [shared, shared]

        document = SizeEstimator(dedupe_scope="document").estimate_size(value)
        path = SizeEstimator(dedupe_scope="path").estimate_size(value)

        assert document < path
        assert path - document > 100

    def test_path_scope_still_terminates_on_cycles(self):
        value = {"self": None}
        value["self"] = value

        assert SizeEstimator(dedupe_scope="path").estimate_size(value) > 0

    def test_invalid_scope(self):
        with pytest.raises(ValueError, match="dedupe_scope"):
            SizeEstimator(dedupe_scope="global")

    def test_estimate_grows_with_content(self):
        small = self.estimator.estimate_size({"items": ["a"] * 10})
        large = self.estimator.estimate_size({"items": ["a"] * 1000})

        assert large > small
        assert self.estimator.estimate_size("é") > self.estimator.estimate_size("e")

    @pytest.mark.parametrize("element", [
        None, True, 1, -70000, 1.5, "text", "wörld", BigInt(2 ** 70), 2 ** 60, b"bytes",
        [1, 2], {"a": 1}, KvMap([("k", [1])]), KvSet(["x"]), KvU64(7),
        datetime(2024, 1, 1, tzinfo=timezone.utc), RegExp("^a+$", "g"),
    ])
    @pytest.mark.parametrize("wrap", [
        lambda e: [e],
        lambda e: {"k": e},
        lambda e: KvMap([("k", e)]),
        lambda e: KvMap([(e, "v")]),
        lambda e: KvSet([e]),
    ], ids=["list", "record", "map_value", "map_key", "set"])
    def test_container_is_larger_than_its_element(self, element, wrap):
        container = wrap(element)

        assert self.estimator.estimate_size(container) > self.estimator.estimate_size(element)
        assert estimate_size(container) > estimate_size(element)

    def test_collections(self):
        assert self.estimator.estimate_size(KvSet([1, 2])) == 2 + 1 + 2 + 2 + 2
        assert self.estimator.estimate_size(KvMap([("k", 1)])) == 2 + 1 + 3 + 2 + 2

    def test_deep_nesting_returns_partial_estimate(self):
        value = []
        for _ in range(100000):
            value = [value]

        assert self.estimator.estimate_size(value) > 2

    def test_unknown_type_is_estimated(self):
        class Opaque:
            pass

        assert self.estimator.estimate_size(Opaque()) > 2

    def test_key_size(self):
        assert self.estimator.estimate_key_size(("a", 1)) == 7
        assert self.estimator.estimate_key_size(("a", True, 1.5, b"xy")) == 3 + 2 + 10 + 4

    def test_entry_size(self):
        key = ("users", "alice")
        value = {"name": "Alice"}

        assert self.estimator.estimate_entry_size(key, value) == (
            self.estimator.estimate_key_size(key) + self.estimator.estimate_size(value)
        )

    def test_will_exceed_limit(self):
        assert self.estimator.will_exceed_limit(90, 1, 20, max_size=100, max_count=10)
        assert not self.estimator.will_exceed_limit(80, 1, 20, max_size=100, max_count=10)
        assert self.estimator.will_exceed_limit(0, 10, 1, max_size=100, max_count=10)
