"""
KV Transfer - JSON-safe codec, size estimation and bulk NDJSON transfer.

Converts store values to and from a tagged JSON representation, estimates
their stored size without serializing them, and streams store contents in
and out as newline-delimited JSON.
"""

from .kv_transfer import KvTransfer
from .codec import (
    entry_maybe_to_json,
    entry_to_json,
    key_part_to_json,
    key_to_json,
    to_entry,
    to_entry_maybe,
    to_key,
    to_key_part,
    to_value,
    value_to_json,
)
from .streaming import ExportResponse, export_entries, import_entries
from .store import MemoryKvStore
from .types import (
    DecodeError,
    EncodeError,
    Entry,
    EntryMaybe,
    ExportOptions,
    ImportOptions,
    ImportResult,
    ImportStreamError,
    KvStoreInterface,
    OutputMode,
    Selector,
    StoreLimitExceeded,
)
from .utils.size_estimator import SizeEstimator, estimate_size
from .values import UNDEFINED, BigInt, ElementEncoding, KvMap, KvSet, KvU64, RegExp, TypedArray

__version__ = "1.0.0"
__all__ = [
    "KvTransfer",
    "key_part_to_json",
    "to_key_part",
    "key_to_json",
    "to_key",
    "value_to_json",
    "to_value",
    "entry_to_json",
    "to_entry",
    "entry_maybe_to_json",
    "to_entry_maybe",
    "estimate_size",
    "SizeEstimator",
    "export_entries",
    "import_entries",
    "ExportResponse",
    "MemoryKvStore",
    "KvStoreInterface",
    "Entry",
    "EntryMaybe",
    "Selector",
    "ExportOptions",
    "ImportOptions",
    "ImportResult",
    "OutputMode",
    "DecodeError",
    "EncodeError",
    "StoreLimitExceeded",
    "ImportStreamError",
    "UNDEFINED",
    "BigInt",
    "KvU64",
    "KvMap",
    "KvSet",
    "RegExp",
    "TypedArray",
    "ElementEncoding",
]
