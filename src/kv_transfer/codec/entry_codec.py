"""Conversion of whole store entries to and from JSON and NDJSON lines."""

import json
from typing import Any, Dict, Union

from ..types import DecodeError, EncodeError, Entry, EntryMaybe
from .key_codec import key_to_json, to_key
from .value_codec import to_value, value_to_json


def _reject_constant(name: str) -> Any:
    raise DecodeError(f"Non-standard JSON constant {name} is not allowed")


def entry_to_json(entry: Entry) -> Dict[str, Any]:
    """Convert an entry to `{"key": [...], "value": ..., "versionstamp": "..."}`."""
    return {
        "key": key_to_json(entry.key),
        "value": value_to_json(entry.value),
        "versionstamp": entry.versionstamp,
    }


def to_entry(data: Any) -> Entry:
    """
    Convert the JSON form of an entry back to an `Entry`.

    Raises:
        DecodeError: If the object is not a well-formed entry
    """
    if not isinstance(data, dict):
        raise DecodeError(f"Entry must be a JSON object, got {type(data).__name__}")
    for member in ("key", "value", "versionstamp"):
        if member not in data:
            raise DecodeError(f"Entry is missing '{member}'")
    versionstamp = data["versionstamp"]
    if not isinstance(versionstamp, str):
        raise DecodeError("Entry versionstamp must be a string")
    return Entry(to_key(data["key"]), to_value(data["value"]), versionstamp)


def entry_maybe_to_json(entry: Union[Entry, EntryMaybe]) -> Dict[str, Any]:
    """Like `entry_to_json`, with misses rendered as null value and versionstamp."""
    if entry.versionstamp is None:
        return {"key": key_to_json(entry.key), "value": None, "versionstamp": None}
    return {
        "key": key_to_json(entry.key),
        "value": value_to_json(entry.value),
        "versionstamp": entry.versionstamp,
    }


def to_entry_maybe(data: Any) -> EntryMaybe:
    """
    Convert the JSON form of a lookup result back to an `EntryMaybe`.

    Raises:
        DecodeError: If the object is not a well-formed entry or miss
    """
    if isinstance(data, dict) and data.get("versionstamp", ...) is None:
        if data.get("value", ...) is not None:
            raise DecodeError("A missing entry must have a null value")
        return EntryMaybe(to_key(data.get("key")))
    entry = to_entry(data)
    return EntryMaybe(entry.key, entry.value, entry.versionstamp)


def entry_to_line(entry: Entry) -> str:
    """Serialize an entry as one newline-terminated NDJSON line."""
    data = entry_to_json(entry)
    try:
        text = json.dumps(data, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    except RecursionError:
        raise EncodeError("Entry value is nested too deeply to serialize")
    return text + "\n"


def line_to_entry(line: Union[str, bytes]) -> Entry:
    """
    Parse one NDJSON line into an entry.

    Raises:
        DecodeError: If the line is not UTF-8, not JSON, or not an entry
    """
    if isinstance(line, (bytes, bytearray)):
        try:
            line = bytes(line).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Line is not valid UTF-8: {e}")
    try:
        data = json.loads(line, parse_constant=_reject_constant)
    except DecodeError:
        raise
    except json.JSONDecodeError as e:
        raise DecodeError(f"JSON parsing failed: {e.msg} at column {e.colno}")
    except ValueError as e:
        # integer literals past the interpreter's digit limit
        raise DecodeError(f"JSON parsing failed: {e}")
    except RecursionError:
        raise DecodeError("JSON parsing failed: value is nested too deeply")
    return to_entry(data)
