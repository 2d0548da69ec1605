"""Store capability implementations."""

from .memory_store import CommitRecord, MemoryKvStore, key_sort_key

__all__ = ["MemoryKvStore", "CommitRecord", "key_sort_key"]
