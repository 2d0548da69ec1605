"""Core type definitions for KV Transfer."""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Union


KeyPart = Union[str, int, float, bool, bytes]
Key = Tuple[KeyPart, ...]


class ErrorType(Enum):
    """Enumeration of error types."""
    DECODE = "decode"
    ENCODE = "encode"
    STORE_LIMIT = "store_limit"
    STORE = "store"
    IO = "io"


class ImportState(Enum):
    """States of a streaming import."""
    READING = "reading"
    BATCHING = "batching"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class OutputMode(Enum):
    """Shapes an export can be returned in."""
    CHUNKS = "chunks"
    RESPONSE = "response"


class KvTransferError(Exception):
    """Base exception for codec, store and stream failures."""

    error_type = ErrorType.STORE

    def __init__(self, message: str, error_type: Optional[ErrorType] = None,
                 context: Optional[Any] = None):
        super().__init__(message)
        if error_type is not None:
            self.error_type = error_type
        self.context = context


class DecodeError(KvTransferError, ValueError):
    """Malformed JSON-safe representation: unknown tag, wrong shape, bad text."""
    error_type = ErrorType.DECODE


class EncodeError(KvTransferError, ValueError):
    """A native value that has no JSON-safe representation."""
    error_type = ErrorType.ENCODE


class StoreError(KvTransferError):
    """A store operation failed."""
    error_type = ErrorType.STORE


class StoreLimitExceeded(StoreError):
    """An operation exceeded one of the store's per-operation limits."""
    error_type = ErrorType.STORE_LIMIT


class ImportStreamError(KvTransferError):
    """
    The import input stream itself failed.

    The counts accumulated before the failure travel with the exception
    as `result`.
    """
    error_type = ErrorType.IO

    def __init__(self, message: str, result: Optional["ImportResult"] = None,
                 context: Optional[Any] = None):
        super().__init__(message, ErrorType.IO, context)
        self.result = result


@dataclass(frozen=True)
class Entry:
    """One stored record."""
    key: Key
    value: Any
    versionstamp: str


@dataclass(frozen=True)
class EntryMaybe:
    """Result of a lookup; `versionstamp is None` marks a miss."""
    key: Key
    value: Any = None
    versionstamp: Optional[str] = None

    @property
    def exists(self) -> bool:
        return self.versionstamp is not None


@dataclass(frozen=True)
class Selector:
    """
    Restricts a listing to a key prefix and/or a key range.

    `prefix` matches keys strictly longer than the prefix. `start` is
    inclusive, `end` exclusive.
    """
    prefix: Key = ()
    start: Optional[Key] = None
    end: Optional[Key] = None


@dataclass(frozen=True)
class ListPage:
    """One page of a cursor-driven listing; `cursor is None` at the end."""
    entries: List[Entry]
    cursor: Optional[str] = None


@dataclass(frozen=True)
class Mutation:
    """
    A single write inside an atomic commit.

    With `check=True` the write only applies when the key's current
    versionstamp equals `expected_versionstamp` (`None` meaning absent).
    """
    key: Key
    value: Any
    expected_versionstamp: Optional[str] = None
    check: bool = False


@dataclass(frozen=True)
class CommitResult:
    """Outcome of an atomic commit."""
    ok: bool
    collided_keys: List[Key] = field(default_factory=list)
    versionstamp: Optional[str] = None


@dataclass
class ExportOptions:
    """Options for a streaming export."""
    page_size: int = 100
    output_mode: OutputMode = OutputMode.CHUNKS
    filename: Optional[str] = None


@dataclass
class ImportOptions:
    """Options for a streaming import; unset limits fall back to the store's."""
    overwrite: bool = True
    batch_size_limit: Optional[int] = None
    batch_count_limit: Optional[int] = None
    stop_on_error: bool = False
    abort_signal: Optional[asyncio.Event] = None
    max_commit_retries: int = 3


@dataclass(frozen=True)
class ImportResult:
    """Summary of an import; callers treat `errors > 0` as a partial import."""
    read: int = 0
    collisions: int = 0
    errors: int = 0
    committed: int = 0
    batches: int = 0
    aborted: bool = False


@dataclass
class ImportProgress:
    """Mutable accumulator threaded through one import call."""
    read: int = 0
    collisions: int = 0
    errors: int = 0
    committed: int = 0
    batches: int = 0
    aborted: bool = False

    def to_result(self) -> ImportResult:
        return ImportResult(
            read=self.read,
            collisions=self.collisions,
            errors=self.errors,
            committed=self.committed,
            batches=self.batches,
            aborted=self.aborted
        )


@dataclass
class ValidationError:
    """Validation error details."""
    message: str
    location: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of options validation."""
    is_valid: bool
    errors: List[ValidationError]
    warnings: List[str]


@dataclass
class ErrorResponse:
    """Response for error handling."""
    can_recover: bool
    suggested_action: str


# Abstract base classes for interfaces

class KvStoreInterface(ABC):
    """
    Abstract capability of the key-value store being exported or imported.

    Implementations expose their per-operation limits as attributes.
    """

    max_batch_bytes: int = 819200
    max_batch_count: int = 1000
    max_value_bytes: int = 65536

    @abstractmethod
    async def get(self, key: Key) -> EntryMaybe:
        """Fetch the entry stored under `key`."""
        pass

    @abstractmethod
    async def list(self, selector: Selector, cursor: Optional[str] = None,
                   limit: int = 100) -> ListPage:
        """List entries in key order, resuming after `cursor`."""
        pass

    @abstractmethod
    async def atomic_commit(self, mutations: Sequence[Mutation]) -> CommitResult:
        """Apply all mutations or none of them."""
        pass
