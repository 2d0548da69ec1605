"""Conversion of store keys and key parts to and from JSON-safe form."""

import json
import math
from typing import Any, List, Sequence

from ..types import DecodeError, EncodeError, Key, KeyPart
from ..utils.validation import ValidationUtils


def key_part_to_json(part: KeyPart, path: str = "$") -> Any:
    """
    Convert one key part to its JSON-safe form.

    Integers become tagged bigints so that they stay distinct from
    floating point parts, which pass through as JSON numbers.

    Raises:
        EncodeError: If the part is not a supported key part type
    """
    if isinstance(part, bool) or isinstance(part, str):
        return part
    if isinstance(part, int):
        return {"type": "bigint", "value": ValidationUtils.format_decimal(part)}
    if isinstance(part, float):
        if not math.isfinite(part):
            raise EncodeError(f"Key part at {path} must be a finite number, got {part!r}",
                              context={"path": path})
        return part
    if isinstance(part, (bytes, bytearray)):
        return {"type": "Uint8Array", "value": ValidationUtils.encode_base64(part)}
    raise EncodeError(f"Unsupported key part type {type(part).__name__} at {path}",
                      context={"path": path})


def to_key_part(data: Any, path: str = "$") -> KeyPart:
    """
    Convert the JSON-safe form of a key part back to the key part.

    Raises:
        DecodeError: If the JSON is not a valid key part representation
    """
    if isinstance(data, (bool, str)):
        return data
    if isinstance(data, (int, float)):
        try:
            number = float(data)
        except OverflowError:
            number = math.inf
        if not math.isfinite(number):
            raise DecodeError(f"Key part at {path} must be a finite number",
                              context={"path": path})
        return number
    if isinstance(data, dict) and ValidationUtils.is_tagged(data):
        tag = data["type"]
        payload = ValidationUtils.require_member(data, "value", path)
        if tag == "bigint":
            return ValidationUtils.parse_decimal(payload, path)
        if tag == "Uint8Array":
            return ValidationUtils.decode_base64(payload, path)
        raise DecodeError(f"Unknown key part type {tag!r} at {path}", context={"path": path})
    raise DecodeError(f"Invalid key part of type {type(data).__name__} at {path}",
                      context={"path": path})


def key_to_json(key: Sequence[KeyPart]) -> List[Any]:
    """
    Convert a key to a JSON array, preserving part order.

    Raises:
        EncodeError: If the key is empty or any part fails to encode
    """
    if isinstance(key, (str, bytes)) or not isinstance(key, (list, tuple)):
        raise EncodeError(f"Key must be a sequence of key parts, got {type(key).__name__}")
    if not key:
        raise EncodeError("Key must contain at least one part")
    return [key_part_to_json(part, f"$[{i}]") for i, part in enumerate(key)]


def to_key(data: Any) -> Key:
    """
    Convert a JSON array back to a key tuple.

    Raises:
        DecodeError: If the array is empty, not an array, or any part fails
    """
    if not isinstance(data, list):
        raise DecodeError(f"Key must be a JSON array, got {type(data).__name__}")
    if not data:
        raise DecodeError("Key must contain at least one part")
    return tuple(to_key_part(part, f"$[{i}]") for i, part in enumerate(data))


def key_fingerprint(key: Sequence[KeyPart]) -> str:
    """Stable text identity of a key that keeps `True` and `1` apart."""
    return json.dumps(key_to_json(key), separators=(",", ":"))
