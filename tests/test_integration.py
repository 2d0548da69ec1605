"""Integration tests for the KV Transfer facade."""

import asyncio

import pytest

from kv_transfer import KvTransfer, KvMap, MemoryKvStore, OutputMode, RegExp
from kv_transfer.codec.entry_codec import line_to_entry


class TestKvTransferIntegration:
    """Integration tests for the complete export/import path."""

    def setup_method(self):
        """Set up test fixtures."""
        self.transfer = KvTransfer(default_page_size=4)

    def test_estimate_size(self):
        """Test size estimation through the facade."""
        value = {"a": KvMap([({"a": 1}, {"b": RegExp("234")})]), "b": False}

        assert self.transfer.estimate_size(value) == 36

    @pytest.mark.asyncio
    async def test_file_round_trip(self, populated_store, temp_dir):
        """Test exporting a store to a file and importing it elsewhere."""
        path = temp_dir / "exports" / "store.ndjson"

        written = await self.transfer.export_to_file(populated_store, path)
        target = MemoryKvStore()
        result = await self.transfer.import_file(target, path, chunk_size=64)

        assert written == 11
        assert path.read_text(encoding="utf-8").count("\n") == 11
        assert result.read == 11
        assert result.committed == 11
        assert result.errors == 0
        assert [(e.key, e.value) for e in target.entries()] == \
            [(e.key, e.value) for e in populated_store.entries()]

    @pytest.mark.asyncio
    async def test_prefix_export_to_file(self, populated_store, temp_dir):
        """Test that a key prefix narrows the exported entries."""
        path = temp_dir / "settings.ndjson"

        written = await self.transfer.export_to_file(populated_store, path, ("settings",))

        entries = [line_to_entry(line) for line in path.read_bytes().splitlines()]
        assert written == 1
        assert entries[0].key == ("settings", "theme")
        assert entries[0].value == "dark"

    @pytest.mark.asyncio
    async def test_response_export(self, populated_store):
        """Test streamed response output."""
        response = self.transfer.export_entries(populated_store, ("users",),
                                                output_mode=OutputMode.RESPONSE,
                                                filename="users.ndjson")

        body = await response.read()

        assert response.status == 200
        assert body.count(b"\n") == 10

    @pytest.mark.asyncio
    async def test_default_batch_limits(self, populated_store, temp_dir):
        """Test that facade defaults bound every commit."""
        path = temp_dir / "store.ndjson"
        await self.transfer.export_to_file(populated_store, path)
        transfer = KvTransfer(default_batch_count_limit=2)
        target = MemoryKvStore()

        result = await transfer.import_file(target, path)

        assert result.batches == 6
        assert max(record.count for record in target.commits) == 2

    @pytest.mark.asyncio
    async def test_import_without_overwrite(self, populated_store, temp_dir):
        """Test that existing keys are reported as collisions."""
        path = temp_dir / "store.ndjson"
        await self.transfer.export_to_file(populated_store, path)

        result = await self.transfer.import_file(populated_store, path, overwrite=False)

        assert result.collisions == 11
        assert result.committed == 0

    @pytest.mark.asyncio
    async def test_profiling(self, populated_store, temp_dir):
        """Test that profiling records export and import runs."""
        transfer = KvTransfer(enable_profiling=True)
        path = temp_dir / "store.ndjson"

        await transfer.export_to_file(populated_store, path)
        result = await transfer.import_file(MemoryKvStore(), path)

        export_metrics, import_metrics = transfer.profiler.metrics_history
        assert export_metrics.operation_name == "export_entries"
        assert export_metrics.entries_processed == 11
        assert import_metrics.operation_name == "import_entries"
        assert import_metrics.entries_processed == result.read
        assert import_metrics.bytes_processed == path.stat().st_size
        assert transfer.profiler.get_performance_summary()["total_operations"] == 2

    def test_profiling_disabled_by_default(self):
        """Test that no profiler exists unless requested."""
        assert self.transfer.profiler is None

    @pytest.mark.asyncio
    async def test_concurrent_profiled_imports(self, populated_store):
        """Test that overlapping profiled imports keep separate sessions."""
        transfer = KvTransfer(enable_profiling=True)
        lines = [chunk async for chunk in self.transfer.export_entries(populated_store)]

        async def slow_stream(chunks):
            for chunk in chunks:
                await asyncio.sleep(0)
                yield chunk

        first, second = await asyncio.gather(
            transfer.import_entries(MemoryKvStore(), slow_stream(lines)),
            transfer.import_entries(MemoryKvStore(), slow_stream(lines[:1])),
        )

        history = transfer.profiler.metrics_history
        assert len(history) == 2
        assert (first.read, second.read) == (11, 4)
        assert sorted(m.entries_processed for m in history) == [4, 11]
        assert all(m.operation_name == "import_entries" for m in history)

    @pytest.mark.asyncio
    async def test_abandoned_export_does_not_block_profiling(self, populated_store):
        """Test that an unfinished export leaves other runs unaffected."""
        transfer = KvTransfer(default_page_size=2, enable_profiling=True)
        chunks = transfer.export_entries(populated_store)
        first_chunk = await chunks.__anext__()

        result = await transfer.import_entries(MemoryKvStore(), [first_chunk])

        assert result.committed == first_chunk.count(b"\n")
        assert [m.operation_name for m in transfer.profiler.metrics_history] == ["import_entries"]

        await chunks.aclose()

        export_metrics = transfer.profiler.metrics_history[-1]
        assert export_metrics.operation_name == "export_entries"
        assert export_metrics.entries_processed == first_chunk.count(b"\n")
