"""Conversion of storable values to and from tagged JSON."""

import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Set

from ..types import DecodeError, EncodeError
from ..utils.validation import ValidationUtils
from ..values import (
    KV_U64_MAX,
    SAFE_INTEGER_MAX,
    UNDEFINED,
    BigInt,
    ElementEncoding,
    KvMap,
    KvSet,
    KvU64,
    RegExp,
    TypedArray,
)


_NUMBER_SPECIALS = {
    "NaN": math.nan,
    "Infinity": math.inf,
    "-Infinity": -math.inf,
    "-0": -0.0,
}

_DATE_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})\.(\d{3})Z$"
)

_TYPED_ARRAY_TAGS = {encoding.value: encoding for encoding in ElementEncoding}


def _child(path: str, member: Any) -> str:
    if isinstance(member, int):
        return f"{path}[{member}]"
    return f"{path}.{member}"


def format_instant(value: datetime) -> str:
    """Render a datetime as an ISO-8601 UTC string with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}T"
        f"{value.hour:02d}:{value.minute:02d}:{value.second:02d}."
        f"{value.microsecond // 1000:03d}Z"
    )


def parse_instant(text: Any, path: str = "$") -> datetime:
    match = _DATE_RE.match(text) if isinstance(text, str) else None
    if not match:
        raise DecodeError(f"Invalid date text {text!r} at {path}", context={"path": path})
    year, month, day, hour, minute, second, millis = (int(g) for g in match.groups())
    try:
        return datetime(year, month, day, hour, minute, second, millis * 1000,
                        tzinfo=timezone.utc)
    except ValueError as e:
        raise DecodeError(f"Invalid date {text!r} at {path}: {e}", context={"path": path})


class _Encoder:
    """Depth-first encoder tracking the composites on the current path."""

    def __init__(self):
        self._on_path: Set[int] = set()

    def encode(self, value: Any, path: str) -> Any:
        if value is None or isinstance(value, str):
            return value
        if value is UNDEFINED:
            return {"type": "undefined"}
        if isinstance(value, bool):
            return value
        if isinstance(value, BigInt):
            return {"type": "bigint", "value": ValidationUtils.format_decimal(value)}
        if isinstance(value, int):
            if abs(value) > SAFE_INTEGER_MAX:
                return {"type": "bigint", "value": ValidationUtils.format_decimal(value)}
            return value
        if isinstance(value, float):
            return self._encode_float(value)
        if isinstance(value, (bytes, bytearray)):
            return {"type": "Uint8Array", "value": ValidationUtils.encode_base64(value)}
        if isinstance(value, KvU64):
            return {"type": "KvU64", "value": str(value.value)}
        if isinstance(value, datetime):
            return {"type": "Date", "value": format_instant(value)}
        if isinstance(value, RegExp):
            return {"type": "RegExp", "value": {"source": value.source, "flags": value.flags}}
        if isinstance(value, TypedArray):
            return {
                "type": value.encoding.value,
                "value": ValidationUtils.encode_base64(value.canonical_bytes()),
            }
        if isinstance(value, (list, dict, KvMap, KvSet)):
            return self._encode_composite(value, path)
        raise EncodeError(f"Unsupported value type {type(value).__name__} at {path}",
                          context={"path": path})

    def _encode_float(self, value: float) -> Any:
        if math.isnan(value):
            return {"type": "number", "value": "NaN"}
        if math.isinf(value):
            return {"type": "number", "value": "Infinity" if value > 0 else "-Infinity"}
        if value == 0 and math.copysign(1.0, value) < 0:
            return {"type": "number", "value": "-0"}
        return value

    def _encode_composite(self, value: Any, path: str) -> Any:
        marker = id(value)
        if marker in self._on_path:
            raise EncodeError(f"Circular reference at {path}", context={"path": path})
        self._on_path.add(marker)
        try:
            if isinstance(value, list):
                return [self.encode(item, _child(path, i)) for i, item in enumerate(value)]
            if isinstance(value, dict):
                return self._encode_record(value, path)
            if isinstance(value, KvMap):
                return {
                    "type": "Map",
                    "value": [
                        [self.encode(k, f"{path}<key {i}>"), self.encode(v, _child(path, i))]
                        for i, (k, v) in enumerate(value.items())
                    ],
                }
            return {
                "type": "Set",
                "value": [self.encode(item, _child(path, i)) for i, item in enumerate(value)],
            }
        finally:
            self._on_path.discard(marker)

    def _encode_record(self, value: Dict[Any, Any], path: str) -> Dict[str, Any]:
        record: Dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise EncodeError(
                    f"Record keys must be strings, got {type(key).__name__} at {path}",
                    context={"path": path}
                )
            record[key] = self.encode(item, _child(path, key))
        if ValidationUtils.is_tagged(record):
            # A plain record that reads like a tag is escaped.
            return {"type": "object", "value": record}
        return record


def value_to_json(value: Any) -> Any:
    """
    Convert a storable value to its JSON-safe tagged form.

    Args:
        value: Value to convert

    Returns:
        JSON-compatible structure

    Raises:
        EncodeError: If the value, or anything inside it, cannot be represented
    """
    try:
        return _Encoder().encode(value, "$")
    except RecursionError:
        raise EncodeError("Value is nested too deeply to encode", context={"path": "$"})


def _decode_number(payload: Any, path: str) -> float:
    if not isinstance(payload, str) or payload not in _NUMBER_SPECIALS:
        shown = repr(payload) if isinstance(payload, str) else type(payload).__name__
        raise DecodeError(f"Invalid number payload {shown} at {path}", context={"path": path})
    return _NUMBER_SPECIALS[payload]


def _decode_bigint(payload: Any, path: str) -> BigInt:
    return BigInt(ValidationUtils.parse_decimal(payload, path))


def _decode_bytes(payload: Any, path: str) -> bytes:
    return ValidationUtils.decode_base64(payload, path)


def _decode_kv_u64(payload: Any, path: str) -> KvU64:
    number = ValidationUtils.parse_decimal(payload, path)
    if not 0 <= number <= KV_U64_MAX:
        raise DecodeError(f"KvU64 out of range at {path}", context={"path": path})
    return KvU64(number)


def _decode_regexp(payload: Any, path: str) -> RegExp:
    if not isinstance(payload, dict) or set(payload) != {"source", "flags"}:
        raise DecodeError(f"RegExp payload must be {{source, flags}} at {path}",
                          context={"path": path})
    try:
        return RegExp(payload["source"], payload["flags"])
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Invalid RegExp at {path}: {e}", context={"path": path})


def _decode_map(payload: Any, path: str) -> KvMap:
    if not isinstance(payload, list):
        raise DecodeError(f"Map payload must be an array at {path}", context={"path": path})
    result = KvMap()
    for i, pair in enumerate(payload):
        if not isinstance(pair, list) or len(pair) != 2:
            raise DecodeError(f"Map entry must be a [key, value] pair at {_child(path, i)}",
                              context={"path": _child(path, i)})
        result.set(_decode(pair[0], f"{path}<key {i}>"), _decode(pair[1], _child(path, i)))
    if len(result) != len(payload):
        raise DecodeError(f"Duplicate Map keys at {path}", context={"path": path})
    return result


def _decode_set(payload: Any, path: str) -> KvSet:
    if not isinstance(payload, list):
        raise DecodeError(f"Set payload must be an array at {path}", context={"path": path})
    result = KvSet(_decode(item, _child(path, i)) for i, item in enumerate(payload))
    if len(result) != len(payload):
        raise DecodeError(f"Duplicate Set members at {path}", context={"path": path})
    return result


def _decode_object(payload: Any, path: str) -> Dict[str, Any]:
    if not isinstance(payload, dict) or not ValidationUtils.is_tagged(payload):
        raise DecodeError(f"'object' tag may only wrap a tag-shaped record at {path}",
                          context={"path": path})
    return {key: _decode(item, _child(path, key)) for key, item in payload.items()}


def _decode_typed_array(tag: str, payload: Any, path: str) -> TypedArray:
    raw = ValidationUtils.decode_base64(payload, path)
    try:
        return TypedArray(_TYPED_ARRAY_TAGS[tag], raw)
    except ValueError as e:
        raise DecodeError(f"Invalid {tag} at {path}: {e}", context={"path": path})


_TAG_DECODERS: Dict[str, Callable[[Any, str], Any]] = {
    "number": _decode_number,
    "bigint": _decode_bigint,
    "Uint8Array": _decode_bytes,
    "KvU64": _decode_kv_u64,
    "Date": parse_instant,
    "RegExp": _decode_regexp,
    "Map": _decode_map,
    "Set": _decode_set,
    "object": _decode_object,
}


def _decode_tagged(data: Dict[str, Any], path: str) -> Any:
    tag = data["type"]
    if tag == "undefined":
        if "value" in data:
            raise DecodeError(f"'undefined' carries no value at {path}", context={"path": path})
        return UNDEFINED
    payload = ValidationUtils.require_member(data, "value", path)
    if tag in _TYPED_ARRAY_TAGS:
        return _decode_typed_array(tag, payload, path)
    decoder = _TAG_DECODERS.get(tag)
    if decoder is None:
        raise DecodeError(f"Unknown value type {tag!r} at {path}", context={"path": path})
    return decoder(payload, path)


def _decode(data: Any, path: str) -> Any:
    if data is None or isinstance(data, (bool, str)):
        return data
    if isinstance(data, int):
        # Plain JSON integers are host doubles.
        if abs(data) <= SAFE_INTEGER_MAX:
            return data
        try:
            return float(data)
        except OverflowError:
            raise DecodeError(f"Integer at {path} is out of double range; tag it as a bigint",
                              context={"path": path})
    if isinstance(data, float):
        if not math.isfinite(data) or (data == 0 and math.copysign(1.0, data) < 0):
            raise DecodeError(f"Non-JSON number {data!r} must be tagged at {path}",
                              context={"path": path})
        return data
    if isinstance(data, list):
        return [_decode(item, _child(path, i)) for i, item in enumerate(data)]
    if isinstance(data, dict):
        if ValidationUtils.is_tagged(data):
            return _decode_tagged(data, path)
        return {key: _decode(item, _child(path, key)) for key, item in data.items()}
    raise DecodeError(f"Not a JSON value: {type(data).__name__} at {path}",
                      context={"path": path})


def to_value(data: Any) -> Any:
    """
    Convert tagged JSON back to the storable value it represents.

    Args:
        data: Parsed JSON

    Returns:
        The native value

    Raises:
        DecodeError: On unknown tags, wrong payload shapes or malformed text
    """
    try:
        return _decode(data, "$")
    except RecursionError:
        raise DecodeError("Value is nested too deeply to decode", context={"path": "$"})
