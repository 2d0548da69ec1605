"""In-memory implementation of the key-value store capability."""

import base64
import bisect
import copy
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..codec.key_codec import key_fingerprint, key_to_json, to_key
from ..types import (
    CommitResult,
    DecodeError,
    Entry,
    EntryMaybe,
    Key,
    KvStoreInterface,
    ListPage,
    Mutation,
    Selector,
    StoreError,
    StoreLimitExceeded,
)
from ..utils.size_estimator import SizeEstimator


# Type order of key parts: bytes < str < float < int < bool.
_TYPE_RANK = {bytes: 0, str: 1, float: 2, int: 3, bool: 4}

SortKey = Tuple[Tuple[int, Any], ...]


def key_sort_key(key: Sequence[Any]) -> SortKey:
    """Map a key to a tuple that sorts in the store's key order."""
    parts = []
    for part in key:
        if isinstance(part, bytearray):
            part = bytes(part)
        rank = _TYPE_RANK.get(type(part))
        if rank is None:
            if isinstance(part, bool):
                rank = 4
            elif isinstance(part, int):
                rank = 3
            else:
                raise StoreError(f"Unsupported key part type {type(part).__name__}")
        parts.append((rank, part))
    return tuple(parts)


@dataclass(frozen=True)
class CommitRecord:
    """A committed atomic operation, kept for inspection."""
    versionstamp: str
    count: int
    estimated_size: int


class MemoryKvStore(KvStoreInterface):
    """
    Ordered in-memory key-value store with versionstamps and atomic commits.

    Values are deep-copied on the way in and out so stored state cannot be
    mutated through references held by callers.
    """

    def __init__(self, initial: Optional[Iterable[Tuple[Key, Any]]] = None,
                 max_batch_bytes: int = 819200,
                 max_batch_count: int = 1000,
                 max_value_bytes: int = 65536,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the store.

        Args:
            initial: Optional (key, value) pairs to load, committed one by one
            max_batch_bytes: Maximum estimated bytes per atomic commit
            max_batch_count: Maximum mutations per atomic commit
            max_value_bytes: Maximum estimated bytes of a single value
            logger: Optional logger instance
        """
        self.max_batch_bytes = max_batch_bytes
        self.max_batch_count = max_batch_count
        self.max_value_bytes = max_value_bytes
        self.logger = logger or logging.getLogger(__name__)
        self.estimator = SizeEstimator(logger=self.logger)
        self.commits: List[CommitRecord] = []

        self._sort_keys: List[SortKey] = []
        self._records: Dict[SortKey, Entry] = {}
        self._version = 0
        self._injected_collisions: Dict[str, int] = {}

        for key, value in initial or ():
            self._write([Mutation(tuple(key), value)], [copy.deepcopy(value)])

    def __len__(self) -> int:
        return len(self._records)

    def entries(self) -> List[Entry]:
        """Snapshot of every entry in key order."""
        return [copy.deepcopy(self._records[sort_key]) for sort_key in self._sort_keys]

    def inject_collision(self, key: Sequence[Any], times: int = 1) -> None:
        """Make the next `times` commits touching `key` report it as collided."""
        self._injected_collisions[key_fingerprint(key)] = times

    async def get(self, key: Key) -> EntryMaybe:
        record = self._records.get(key_sort_key(key))
        if record is None:
            return EntryMaybe(tuple(key))
        return EntryMaybe(record.key, copy.deepcopy(record.value), record.versionstamp)

    async def set(self, key: Key, value: Any) -> CommitResult:
        return await self.atomic_commit([Mutation(tuple(key), value)])

    async def list(self, selector: Selector, cursor: Optional[str] = None,
                   limit: int = 100) -> ListPage:
        if limit <= 0:
            raise StoreError(f"List limit must be positive, got {limit}")

        prefix = key_sort_key(selector.prefix)
        lower = prefix
        if selector.start is not None:
            lower = max(lower, key_sort_key(selector.start))
        position = bisect.bisect_left(self._sort_keys, lower)
        if cursor is not None:
            position = max(position, bisect.bisect_right(self._sort_keys, self._decode_cursor(cursor)))
        upper = key_sort_key(selector.end) if selector.end is not None else None

        entries: List[Entry] = []
        last: Optional[SortKey] = None
        while position < len(self._sort_keys):
            sort_key = self._sort_keys[position]
            if sort_key[:len(prefix)] != prefix or (upper is not None and sort_key >= upper):
                break
            position += 1
            if len(sort_key) == len(prefix):
                continue
            if len(entries) == limit:
                return ListPage(entries, self._encode_cursor(last))
            entries.append(copy.deepcopy(self._records[sort_key]))
            last = sort_key
        return ListPage(entries, None)

    async def atomic_commit(self, mutations: Sequence[Mutation]) -> CommitResult:
        if len(mutations) > self.max_batch_count:
            raise StoreLimitExceeded(
                f"Too many mutations: {len(mutations)} > {self.max_batch_count}",
                context={"count": len(mutations)}
            )
        total = 0
        for mutation in mutations:
            value_size = self.estimator.estimate_size(mutation.value)
            if value_size > self.max_value_bytes:
                raise StoreLimitExceeded(
                    f"Value too large: {value_size} > {self.max_value_bytes} bytes",
                    context={"key": mutation.key}
                )
            total += self.estimator.estimate_key_size(mutation.key) + value_size
        if total > self.max_batch_bytes:
            raise StoreLimitExceeded(
                f"Atomic operation too large: {total} > {self.max_batch_bytes} bytes",
                context={"size": total}
            )

        collided = self._collisions(mutations)
        if collided:
            self.logger.debug(f"Commit rejected: {len(collided)} collided keys")
            return CommitResult(ok=False, collided_keys=collided)

        try:
            values = [copy.deepcopy(mutation.value) for mutation in mutations]
        except RecursionError:
            raise StoreError("Value is nested too deeply to store")
        versionstamp = self._write(mutations, values)
        self.commits.append(CommitRecord(versionstamp, len(mutations), total))
        return CommitResult(ok=True, versionstamp=versionstamp)

    def _collisions(self, mutations: Sequence[Mutation]) -> List[Key]:
        collided: List[Key] = []
        for mutation in mutations:
            fingerprint = key_fingerprint(mutation.key)
            remaining = self._injected_collisions.get(fingerprint, 0)
            if remaining > 0:
                self._injected_collisions[fingerprint] = remaining - 1
                collided.append(tuple(mutation.key))
                continue
            if mutation.check:
                current = self._records.get(key_sort_key(mutation.key))
                current_stamp = current.versionstamp if current else None
                if current_stamp != mutation.expected_versionstamp:
                    collided.append(tuple(mutation.key))
        return collided

    def _write(self, mutations: Sequence[Mutation], values: Sequence[Any]) -> str:
        self._version += 1
        versionstamp = f"{self._version:020x}"
        for mutation, value in zip(mutations, values):
            sort_key = key_sort_key(mutation.key)
            if sort_key not in self._records:
                bisect.insort(self._sort_keys, sort_key)
            self._records[sort_key] = Entry(
                tuple(mutation.key), value, versionstamp
            )
        return versionstamp

    def _encode_cursor(self, sort_key: Optional[SortKey]) -> str:
        key = tuple(part for _, part in sort_key or ())
        text = json.dumps(key_to_json(key), separators=(",", ":"))
        return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")

    def _decode_cursor(self, cursor: str) -> SortKey:
        try:
            text = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8")
            return key_sort_key(to_key(json.loads(text)))
        except (ValueError, DecodeError) as e:
            raise StoreError(f"Invalid cursor: {e}")
