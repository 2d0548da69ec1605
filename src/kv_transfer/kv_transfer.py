"""Main KV Transfer entry point."""

import asyncio
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Iterator, Optional, Union

from .profiler import ProfilingSession, TransferProfiler
from .streaming import (
    ByteStream,
    ExportResponse,
    SelectorLike,
    StreamingImporter,
    as_selector,
    export_entries,
)
from .types import (
    ExportOptions,
    ImportOptions,
    ImportResult,
    KvStoreInterface,
    OutputMode,
)
from .utils.size_estimator import SizeEstimator


def _read_chunks(path: Path, chunk_size: int) -> Iterator[bytes]:
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(chunk_size)
            if not chunk:
                break
            yield chunk


class KvTransfer:
    """
    Bulk export and import of store entries with shared defaults.

    Wraps the streaming exporter and importer, applying default page and
    batch limits and optionally profiling each run.
    """

    def __init__(self, default_page_size: int = 100,
                 default_batch_size_limit: Optional[int] = None,
                 default_batch_count_limit: Optional[int] = None,
                 dedupe_scope: str = "document",
                 enable_profiling: bool = False,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize KV Transfer.

        Args:
            default_page_size: Entries per listing call during export
            default_batch_size_limit: Estimated bytes per import commit (store limit if None)
            default_batch_count_limit: Entries per import commit (store limit if None)
            dedupe_scope: Shared-reference scope of the size estimator
            enable_profiling: Record memory and throughput of every run
            logger: Optional logger instance
        """
        self.default_page_size = default_page_size
        self.default_batch_size_limit = default_batch_size_limit
        self.default_batch_count_limit = default_batch_count_limit
        self.logger = logger or logging.getLogger(__name__)
        self.estimator = SizeEstimator(dedupe_scope=dedupe_scope, logger=self.logger)
        self.profiler = TransferProfiler(self.logger) if enable_profiling else None

    def estimate_size(self, value: Any) -> int:
        """Estimate the stored size of a value in bytes."""
        return self.estimator.estimate_size(value)

    def export_entries(self, store: KvStoreInterface, selector: SelectorLike = None,
                       output_mode: OutputMode = OutputMode.CHUNKS,
                       page_size: Optional[int] = None,
                       filename: Optional[str] = None
                       ) -> Union[AsyncIterator[bytes], ExportResponse]:
        """
        Export entries as NDJSON.

        Args:
            store: Store to export from
            selector: Selector or key prefix restricting the export
            output_mode: Return raw chunks or a streamed response
            page_size: Entries per listing call (defaults to `default_page_size`)
            filename: Download name advertised by a streamed response

        Returns:
            Async iterator of byte chunks or an `ExportResponse`
        """
        options = ExportOptions(page_size=self.default_page_size if page_size is None else page_size)
        chunks = export_entries(store, as_selector(selector), options, logger=self.logger)
        if self.profiler is not None:
            chunks = self._profile_export(chunks)
        if OutputMode(output_mode) is OutputMode.RESPONSE:
            return ExportResponse(chunks, filename=filename)
        return chunks

    async def export_to_file(self, store: KvStoreInterface, path: Union[str, Path],
                             selector: SelectorLike = None) -> int:
        """
        Export entries into an NDJSON file.

        Returns:
            Number of entries written
        """
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        chunks = self.export_entries(store, selector)
        with output_path.open("wb") as handle:
            async for chunk in chunks:
                handle.write(chunk)
                written += chunk.count(b"\n")
        self.logger.info(f"Wrote {written} entries to {output_path}")
        return written

    async def import_entries(self, store: KvStoreInterface, stream: ByteStream,
                             overwrite: bool = True,
                             stop_on_error: bool = False,
                             abort_signal: Optional[asyncio.Event] = None,
                             batch_size_limit: Optional[int] = None,
                             batch_count_limit: Optional[int] = None) -> ImportResult:
        """
        Import an NDJSON stream into a store.

        Args:
            store: Store to write into
            stream: Async or sync iterable of `bytes`/`str` chunks
            overwrite: Replace existing keys; if False they count as collisions
            stop_on_error: Stop reading at the first failed entry
            abort_signal: Event that stops the import when set
            batch_size_limit: Estimated bytes per commit (defaults apply if None)
            batch_count_limit: Entries per commit (defaults apply if None)

        Returns:
            ImportResult with read, collision and error counts
        """
        options = ImportOptions(
            overwrite=overwrite,
            batch_size_limit=(self.default_batch_size_limit if batch_size_limit is None
                              else batch_size_limit),
            batch_count_limit=(self.default_batch_count_limit if batch_count_limit is None
                               else batch_count_limit),
            stop_on_error=stop_on_error,
            abort_signal=abort_signal
        )
        importer = StreamingImporter(store, options, estimator=self.estimator, logger=self.logger)

        if self.profiler is None:
            return await importer.run(stream)

        with self.profiler.profile_operation("import_entries") as session:
            result = await importer.run(self._profile_stream(stream, session))
            session.record(entries_processed=result.read)
        return result

    async def import_file(self, store: KvStoreInterface, path: Union[str, Path],
                          chunk_size: int = 65536, **kwargs: Any) -> ImportResult:
        """Import an NDJSON file; keyword arguments are passed to `import_entries`."""
        return await self.import_entries(store, _read_chunks(Path(path), chunk_size), **kwargs)

    async def _profile_export(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        # The session is finished when the consumer closes the iterator, even mid-export.
        session = self.profiler.start_profiling("export_entries")
        try:
            async for chunk in chunks:
                session.record(bytes_processed=len(chunk), entries_processed=chunk.count(b"\n"))
                yield chunk
        finally:
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()
            self.profiler.stop_profiling(session)

    @staticmethod
    async def _profile_stream(stream: ByteStream,
                              session: ProfilingSession) -> AsyncIterator[Union[bytes, str]]:
        if hasattr(stream, "__aiter__"):
            async for chunk in stream:
                session.record(bytes_processed=len(chunk))
                yield chunk
        else:
            for chunk in stream:
                session.record(bytes_processed=len(chunk))
                yield chunk
