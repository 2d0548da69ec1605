"""Native Python types for value variants that neither JSON nor Python model directly."""

import copy
import math
import re
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Optional, Tuple, Union


# Largest integer a host double represents exactly (Number.MAX_SAFE_INTEGER).
SAFE_INTEGER_MAX = 2 ** 53 - 1

KV_U64_MAX = 2 ** 64 - 1


class Undefined:
    """Singleton type for the host's `undefined`, distinct from `None` (null)."""

    _instance: Optional["Undefined"] = None

    def __new__(cls) -> "Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self):
        return (Undefined, ())


UNDEFINED = Undefined()


class BigInt(int):
    """An integer that is always stored as a host bigint, never as a double."""

    def __repr__(self) -> str:
        return f"BigInt({int(self)})"


@dataclass(frozen=True)
class KvU64:
    """
    Unsigned 64-bit counter value.

    The store applies atomic sum/min/max semantics to these; here the wrapper
    only keeps the tag and magnitude apart from a plain bigint.
    """

    value: int

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError("KvU64 value must be an int")
        if not 0 <= self.value <= KV_U64_MAX:
            raise ValueError(f"KvU64 value out of range: {self.value}")

    def __int__(self) -> int:
        return self.value


# Bit positions follow the host's regular expression flag field.
REGEXP_FLAG_BITS: Dict[str, int] = {
    "g": 1,
    "i": 2,
    "m": 4,
    "y": 8,
    "u": 16,
    "s": 32,
    "d": 128,
    "v": 256,
}


@dataclass(frozen=True, eq=True)
class RegExp:
    """A host regular expression: pattern source plus flag letters."""

    source: str
    flags: str = ""

    def __post_init__(self):
        if not isinstance(self.source, str) or not isinstance(self.flags, str):
            raise TypeError("RegExp source and flags must be strings")
        for flag in self.flags:
            if flag not in REGEXP_FLAG_BITS:
                raise ValueError(f"Unknown regular expression flag: {flag!r}")
        if len(set(self.flags)) != len(self.flags):
            raise ValueError(f"Duplicate regular expression flags: {self.flags!r}")

    @property
    def flag_bits(self) -> int:
        bits = 0
        for flag in self.flags:
            bits |= REGEXP_FLAG_BITS[flag]
        return bits

    def compile(self) -> "re.Pattern[str]":
        """Compile to a Python pattern, mapping the flags Python understands."""
        py_flags = 0
        if "i" in self.flags:
            py_flags |= re.IGNORECASE
        if "m" in self.flags:
            py_flags |= re.MULTILINE
        if "s" in self.flags:
            py_flags |= re.DOTALL
        return re.compile(self.source, py_flags)


class ElementEncoding(Enum):
    """Element encodings of typed binary views, named after the host types."""

    INT8 = "Int8Array"
    UINT8_CLAMPED = "Uint8ClampedArray"
    INT16 = "Int16Array"
    UINT16 = "Uint16Array"
    INT32 = "Int32Array"
    UINT32 = "Uint32Array"
    BIGINT64 = "BigInt64Array"
    BIGUINT64 = "BigUint64Array"
    FLOAT32 = "Float32Array"
    FLOAT64 = "Float64Array"

    @property
    def struct_code(self) -> str:
        return _STRUCT_CODES[self]

    @property
    def itemsize(self) -> int:
        return struct.calcsize(self.struct_code)

    @classmethod
    def from_name(cls, name: str) -> "ElementEncoding":
        return cls(name)


_STRUCT_CODES = {
    ElementEncoding.INT8: "b",
    ElementEncoding.UINT8_CLAMPED: "B",
    ElementEncoding.INT16: "h",
    ElementEncoding.UINT16: "H",
    ElementEncoding.INT32: "i",
    ElementEncoding.UINT32: "I",
    ElementEncoding.BIGINT64: "q",
    ElementEncoding.BIGUINT64: "Q",
    ElementEncoding.FLOAT32: "f",
    ElementEncoding.FLOAT64: "d",
}

_BYTE_ORDER_PREFIX = {"little": "<", "big": ">"}


@dataclass(eq=False)
class TypedArray:
    """
    A byte buffer read under a fixed element encoding and byte order.

    Two views are equal when they share an encoding and hold the same
    elements, whatever byte order each one was built with.
    """

    encoding: ElementEncoding
    buffer: bytes
    byteorder: str = "little"

    def __post_init__(self):
        if not isinstance(self.encoding, ElementEncoding):
            raise TypeError("encoding must be an ElementEncoding")
        if self.byteorder not in _BYTE_ORDER_PREFIX:
            raise ValueError(f"byteorder must be 'little' or 'big', got {self.byteorder!r}")
        self.buffer = bytes(self.buffer)
        if len(self.buffer) % self.encoding.itemsize:
            raise ValueError(
                f"{self.encoding.value} buffer length {len(self.buffer)} is not a "
                f"multiple of {self.encoding.itemsize}"
            )

    @classmethod
    def from_values(cls, encoding: ElementEncoding, values: Iterable[Union[int, float]],
                    byteorder: str = "little") -> "TypedArray":
        items = list(values)
        if encoding is ElementEncoding.UINT8_CLAMPED:
            items = [min(255, max(0, int(round(v)))) for v in items]
        fmt = f"{_BYTE_ORDER_PREFIX[byteorder]}{len(items)}{encoding.struct_code}"
        return cls(encoding, struct.pack(fmt, *items), byteorder)

    def __len__(self) -> int:
        return len(self.buffer) // self.encoding.itemsize

    def to_list(self) -> List[Union[int, float]]:
        fmt = f"{_BYTE_ORDER_PREFIX[self.byteorder]}{len(self)}{self.encoding.struct_code}"
        return list(struct.unpack(fmt, self.buffer))

    def canonical_bytes(self) -> bytes:
        """Raw bytes in little-endian element order."""
        if self.byteorder == "little" or self.encoding.itemsize == 1:
            return self.buffer
        size = self.encoding.itemsize
        return b"".join(
            self.buffer[i:i + size][::-1] for i in range(0, len(self.buffer), size)
        )

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, TypedArray):
            return NotImplemented
        return self.encoding is other.encoding and self.canonical_bytes() == other.canonical_bytes()

    __hash__ = None  # type: ignore[assignment]


_IDENTITY_TYPES = (list, dict, bytearray, TypedArray)


def _same_value_token(value: Any) -> Hashable:
    """
    Hashable token implementing the host's SameValueZero key equality.

    Composite values compare by identity; primitives by type and value, with
    `NaN` equal to itself and `0.0` equal to `-0.0`.
    """
    if isinstance(value, (_IDENTITY_TYPES, KvMap, KvSet)):
        return ("ref", id(value))
    if isinstance(value, bool):
        return ("bool", value)
    if isinstance(value, BigInt):
        return ("bigint", int(value))
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return ("number", "NaN")
        if isinstance(value, int) and abs(value) > SAFE_INTEGER_MAX:
            return ("bigint", value)
        return ("number", value + 0.0 if isinstance(value, float) else value)
    try:
        hash(value)
    except TypeError:
        return ("ref", id(value))
    return (type(value).__name__, value)


class KvMap:
    """
    Insertion-ordered map whose keys may be any value, including records.

    Mirrors the host `Map`: primitive keys match by value, composite keys
    by identity.
    """

    def __init__(self, items: Optional[Union[Dict[Any, Any], Iterable[Tuple[Any, Any]]]] = None):
        self._entries: List[Tuple[Any, Any]] = []
        self._index: Dict[Hashable, int] = {}
        if items is not None:
            pairs = items.items() if isinstance(items, dict) else items
            for key, value in pairs:
                self.set(key, value)

    def set(self, key: Any, value: Any) -> "KvMap":
        token = _same_value_token(key)
        position = self._index.get(token)
        if position is None:
            self._index[token] = len(self._entries)
            self._entries.append((key, value))
        else:
            self._entries[position] = (self._entries[position][0], value)
        return self

    def get(self, key: Any, default: Any = None) -> Any:
        position = self._index.get(_same_value_token(key))
        return default if position is None else self._entries[position][1]

    def delete(self, key: Any) -> bool:
        token = _same_value_token(key)
        if token not in self._index:
            return False
        del self._entries[self._index.pop(token)]
        self._index = {_same_value_token(k): i for i, (k, _) in enumerate(self._entries)}
        return True

    def __contains__(self, key: Any) -> bool:
        return _same_value_token(key) in self._index

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Any]:
        return (key for key, _ in self._entries)

    def keys(self) -> List[Any]:
        return [key for key, _ in self._entries]

    def values(self) -> List[Any]:
        return [value for _, value in self._entries]

    def items(self) -> List[Tuple[Any, Any]]:
        return list(self._entries)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, KvMap):
            return NotImplemented
        return self._entries == other._entries

    __hash__ = None  # type: ignore[assignment]

    def __deepcopy__(self, memo: Dict[int, Any]) -> "KvMap":
        clone = KvMap()
        memo[id(self)] = clone
        for key, value in self._entries:
            clone.set(copy.deepcopy(key, memo), copy.deepcopy(value, memo))
        return clone

    def __repr__(self) -> str:
        return f"KvMap({self._entries!r})"


class KvSet:
    """Insertion-ordered set of values with host `Set` membership rules."""

    def __init__(self, values: Optional[Iterable[Any]] = None):
        self._values: List[Any] = []
        self._index: Dict[Hashable, int] = {}
        if values is not None:
            for value in values:
                self.add(value)

    def add(self, value: Any) -> "KvSet":
        token = _same_value_token(value)
        if token not in self._index:
            self._index[token] = len(self._values)
            self._values.append(value)
        return self

    def discard(self, value: Any) -> bool:
        token = _same_value_token(value)
        if token not in self._index:
            return False
        del self._values[self._index.pop(token)]
        self._index = {_same_value_token(v): i for i, v in enumerate(self._values)}
        return True

    def __contains__(self, value: Any) -> bool:
        return _same_value_token(value) in self._index

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._values))

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, KvSet):
            return NotImplemented
        return self._values == other._values

    __hash__ = None  # type: ignore[assignment]

    def __deepcopy__(self, memo: Dict[int, Any]) -> "KvSet":
        clone = KvSet()
        memo[id(self)] = clone
        for value in self._values:
            clone.add(copy.deepcopy(value, memo))
        return clone

    def __repr__(self) -> str:
        return f"KvSet({self._values!r})"
