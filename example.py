#!/usr/bin/env python3
"""
Example usage of KV Transfer.

This script fills an in-memory store with values of several kinds, exports
it as newline-delimited JSON, and imports the export into a second store.
"""

import asyncio
import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from kv_transfer import (
    BigInt,
    KvMap,
    KvSet,
    KvTransfer,
    MemoryKvStore,
    RegExp,
    value_to_json,
)


async def main():
    """Main example function."""
    print("KV Transfer Example")
    print("=" * 50)

    store = MemoryKvStore(initial=[
        (("users", "alice"), {
            "name": "Alice Johnson",
            "email": "alice@example.com",
            "joined": datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc),
            "tags": KvSet(["reading", "hiking"]),
        }),
        (("users", "bob"), {
            "name": "Bob Smith",
            "email": "bob@example.com",
            "joined": datetime(2024, 1, 2, 14, 30, tzinfo=timezone.utc),
            "tags": KvSet(["coding"]),
        }),
        (("counters", "visits"), BigInt(2 ** 64 + 1)),
        (("config", "routes"), KvMap([("home", RegExp("^/$")), ("post", RegExp("^/p/\\d+$", "i"))])),
        (("config", "avatar"), b"\x89PNG\r\n"),
    ])

    transfer = KvTransfer(default_page_size=2, enable_profiling=True)

    for entry in store.entries():
        size = transfer.estimate_size(entry.value)
        print(f"   {entry.key!r:<28} ~{size} bytes")
        print(f"      {json.dumps(value_to_json(entry.value))[:100]}")

    with tempfile.TemporaryDirectory() as temp_dir:
        path = Path(temp_dir) / "store.ndjson"

        print("\nExporting...")
        written = await transfer.export_to_file(store, path)
        print(f"✅ Wrote {written} entries ({path.stat().st_size} bytes)")

        print("\nImporting into an empty store...")
        target = MemoryKvStore()
        result = await transfer.import_file(target, path, batch_count_limit=2)
        print(f"   Read: {result.read}")
        print(f"   Committed: {result.committed} in {result.batches} batches")
        print(f"   Errors: {result.errors}")

        print("\nImporting again without overwrite...")
        result = await transfer.import_file(target, path, overwrite=False)
        print(f"   Collisions: {result.collisions}")

        users = transfer.export_entries(target, ("users",))
        async for chunk in users:
            print(f"\nExported users:\n{chunk.decode('utf-8')}")

    summary = transfer.profiler.get_performance_summary()
    print(f"Profiled {summary['total_operations']} operations, "
          f"peak memory {summary['max_memory_peak_mb']:.1f} MB")


if __name__ == "__main__":
    asyncio.run(main())
