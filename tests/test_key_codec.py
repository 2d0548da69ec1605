"""Tests for key and key part conversion."""

import pytest

from kv_transfer.codec.key_codec import (
    key_fingerprint,
    key_part_to_json,
    key_to_json,
    to_key,
    to_key_part,
)
from kv_transfer.types import DecodeError, EncodeError


class TestKeyPartConversion:
    """Tests for single key parts."""

    def test_strings_and_bools_pass_through(self):
        assert key_part_to_json("users") == "users"
        assert key_part_to_json(True) is True
        assert to_key_part(False) is False

    def test_integers_are_tagged(self):
        assert key_part_to_json(7) == {"type": "bigint", "value": "7"}
        assert key_part_to_json(-2 ** 70) == {"type": "bigint", "value": str(-2 ** 70)}
        assert to_key_part({"type": "bigint", "value": "7"}) == 7

    def test_huge_integer_part(self):
        part = -(10 ** 6000) + 1

        data = key_part_to_json(part)

        assert data["type"] == "bigint"
        assert data["value"] == "-" + "9" * 6000
        assert to_key_part(data) == part

    def test_json_number_beyond_double_range(self):
        with pytest.raises(DecodeError, match="finite"):
            to_key_part(10 ** 400)

    def test_json_numbers_become_floats(self):
        part = to_key_part(2)

        assert part == 2.0
        assert isinstance(part, float)

    def test_bytes(self):
        assert key_part_to_json(b"\x01\x02\x03") == {"type": "Uint8Array", "value": "AQID"}
        assert to_key_part({"type": "Uint8Array", "value": "AQID"}) == b"\x01\x02\x03"

    def test_rejects_non_finite_float(self):
        with pytest.raises(EncodeError, match="finite"):
            key_part_to_json(float("nan"))

    def test_rejects_unsupported_types(self):
        with pytest.raises(EncodeError, match="NoneType"):
            key_part_to_json(None)
        with pytest.raises(DecodeError, match="Invalid key part"):
            to_key_part(None)

    def test_rejects_value_only_tags(self):
        with pytest.raises(DecodeError, match="Unknown key part type 'Date'"):
            to_key_part({"type": "Date", "value": "2024-01-01T00:00:00.000Z"})


class TestKeyConversion:
    """Tests for whole keys."""

    def test_round_trip_keeps_order_and_types(self):
        key = ("users", 1, 1.5, True, b"\x01")

        data = key_to_json(key)

        assert data == [
            "users",
            {"type": "bigint", "value": "1"},
            1.5,
            True,
            {"type": "Uint8Array", "value": "AQ=="},
        ]
        assert to_key(data) == key

    def test_decoded_key_is_tuple(self):
        assert to_key(["a", "b"]) == ("a", "b")

    def test_empty_key(self):
        with pytest.raises(EncodeError):
            key_to_json(())
        with pytest.raises(DecodeError):
            to_key([])

    def test_non_sequence_key(self):
        with pytest.raises(EncodeError):
            key_to_json("users")
        with pytest.raises(DecodeError, match="JSON array"):
            to_key({"key": "users"})

    def test_error_names_part_position(self):
        with pytest.raises(EncodeError, match=r"\$\[1\]"):
            key_to_json(("a", None))

    def test_fingerprint_keeps_bool_and_int_apart(self):
        assert key_fingerprint(("a", True)) != key_fingerprint(("a", 1))
        assert key_fingerprint(["a", 1]) == key_fingerprint(("a", 1))
