"""Codecs between native store values and their JSON-safe tagged form."""

from .key_codec import key_fingerprint, key_part_to_json, key_to_json, to_key, to_key_part
from .value_codec import to_value, value_to_json
from .entry_codec import (
    entry_maybe_to_json,
    entry_to_json,
    entry_to_line,
    line_to_entry,
    to_entry,
    to_entry_maybe,
)

__all__ = [
    "key_part_to_json",
    "to_key_part",
    "key_to_json",
    "to_key",
    "key_fingerprint",
    "value_to_json",
    "to_value",
    "entry_to_json",
    "to_entry",
    "entry_maybe_to_json",
    "to_entry_maybe",
    "entry_to_line",
    "line_to_entry",
]
