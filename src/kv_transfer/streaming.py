"""Streaming export and import of store entries as newline-delimited JSON."""

import asyncio
import logging
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

from .codec.entry_codec import entry_to_line, line_to_entry
from .codec.key_codec import key_fingerprint
from .error_handler import ErrorHandler
from .types import (
    DecodeError,
    Entry,
    ExportOptions,
    ImportOptions,
    ImportProgress,
    ImportResult,
    ImportState,
    ImportStreamError,
    KvStoreInterface,
    KvTransferError,
    Mutation,
    OutputMode,
    Selector,
    StoreError,
    StoreLimitExceeded,
)
from .utils.size_estimator import SizeEstimator


NDJSON_CONTENT_TYPE = "application/x-ndjson"

ByteStream = Union[AsyncIterable[Union[bytes, str]], Iterable[Union[bytes, str]]]
SelectorLike = Union[Selector, Sequence[Any], None]


def as_selector(selector: SelectorLike) -> Selector:
    """Accept a `Selector`, a bare key prefix, or `None` for everything."""
    if selector is None:
        return Selector()
    if isinstance(selector, Selector):
        return selector
    return Selector(prefix=tuple(selector))


class ExportResponse:
    """
    Streamed response wrapping an export's chunk sequence.

    Iterating the response pulls chunks from the store lazily; it can be
    consumed once.
    """

    def __init__(self, chunks: AsyncIterator[bytes], filename: Optional[str] = None):
        self._chunks = chunks
        self.status = 200
        self.headers: Dict[str, str] = {"content-type": NDJSON_CONTENT_TYPE}
        if filename:
            self.headers["content-disposition"] = f'attachment; filename="{filename}"'

    @property
    def content_type(self) -> str:
        return self.headers["content-type"]

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._chunks

    async def read(self) -> bytes:
        """Collect the whole body."""
        return b"".join([chunk async for chunk in self._chunks])

    async def aclose(self) -> None:
        await self._chunks.aclose()


class StreamingExporter:
    """
    Pull-driven exporter paging through a store.

    Holds at most one page of entries at a time; when the consumer stops
    pulling, no further pages are requested.
    """

    def __init__(self, store: KvStoreInterface, page_size: int = 100,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the exporter.

        Args:
            store: Store to export from
            page_size: Entries requested per listing call
            logger: Optional logger instance
        """
        if page_size <= 0:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self.store = store
        self.page_size = page_size
        self.logger = logger or logging.getLogger(__name__)

    async def iter_chunks(self, selector: Selector) -> AsyncIterator[bytes]:
        """
        Stream matching entries as UTF-8 NDJSON, one chunk per page.

        Raises:
            EncodeError: If a stored value cannot be represented as JSON
        """
        cursor: Optional[str] = None
        exported = 0
        while True:
            page = await self.store.list(selector, cursor=cursor, limit=self.page_size)
            if page.entries:
                exported += len(page.entries)
                yield "".join(entry_to_line(entry) for entry in page.entries).encode("utf-8")
            if page.cursor is None:
                break
            cursor = page.cursor
        self.logger.info(f"Exported {exported} entries")


def export_entries(store: KvStoreInterface, selector: SelectorLike = None,
                   options: Optional[ExportOptions] = None,
                   logger: Optional[logging.Logger] = None
                   ) -> Union[AsyncIterator[bytes], ExportResponse]:
    """
    Export entries from a store as newline-delimited JSON.

    Args:
        store: Store to export from
        selector: Selector or key prefix restricting the export
        options: Export options
        logger: Optional logger instance

    Returns:
        An async iterator of byte chunks, or an `ExportResponse` when
        `options.output_mode` is `OutputMode.RESPONSE`
    """
    options = options or ExportOptions()
    exporter = StreamingExporter(store, page_size=options.page_size, logger=logger)
    chunks = exporter.iter_chunks(as_selector(selector))
    if OutputMode(options.output_mode) is OutputMode.RESPONSE:
        return ExportResponse(chunks, filename=options.filename)
    return chunks


class _Aborted(Exception):
    """Raised internally when the abort signal fires while awaiting input."""


class _Batch:
    """Pending entries waiting for one atomic commit."""

    def __init__(self):
        self.entries: List[Entry] = []
        self.keys: Set[str] = set()
        self.size = 0

    def __len__(self) -> int:
        return len(self.entries)

    def add(self, entry: Entry, size: int, fingerprint: str) -> None:
        self.entries.append(entry)
        self.keys.add(fingerprint)
        self.size += size

    def take(self) -> List[Entry]:
        entries = self.entries
        self.entries = []
        self.keys = set()
        self.size = 0
        return entries


async def _iterate_sync(stream: Iterable[Union[bytes, str]]) -> AsyncIterator[Union[bytes, str]]:
    for chunk in stream:
        yield chunk


class StreamingImporter:
    """
    Imports an NDJSON byte stream into a store in bounded atomic batches.

    Decode and commit problems are counted in the result and never abort
    the run; only a failure of the input stream itself does.
    """

    def __init__(self, store: KvStoreInterface, options: Optional[ImportOptions] = None,
                 estimator: Optional[SizeEstimator] = None,
                 error_handler: Optional[ErrorHandler] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize the importer.

        Args:
            store: Store to write into
            options: Import options
            estimator: Size estimator used for batch admission
            error_handler: Error handler classifying per-entry failures
            logger: Optional logger instance

        Raises:
            ValueError: If the options are invalid
        """
        self.store = store
        self.options = options or ImportOptions()
        self.logger = logger or logging.getLogger(__name__)
        self.estimator = estimator or SizeEstimator(logger=self.logger)
        self.error_handler = error_handler or ErrorHandler(self.logger)
        self.state = ImportState.READING

        validation = self.error_handler.validate_options(self.options)
        if not validation.is_valid:
            raise ValueError("; ".join(error.message for error in validation.errors))

        self.batch_size_limit = self._effective_limit(self.options.batch_size_limit,
                                                      store.max_batch_bytes)
        self.batch_count_limit = self._effective_limit(self.options.batch_count_limit,
                                                       store.max_batch_count)

    @staticmethod
    def _effective_limit(requested: Optional[int], store_limit: int) -> int:
        return store_limit if requested is None else min(requested, store_limit)

    async def run(self, stream: ByteStream) -> ImportResult:
        """
        Consume the stream and commit its entries.

        Args:
            stream: Async or sync iterable of `bytes`/`str` chunks

        Returns:
            ImportResult with read, collision and error counts

        Raises:
            ImportStreamError: If reading the stream fails; its `result`
                holds the counts reached before the failure
        """
        progress = ImportProgress()
        batch = _Batch()
        line_number = 0
        self.state = ImportState.READING

        lines = self._iter_lines(stream)
        try:
            async for line in lines:
                line_number += 1
                if not line.strip():
                    continue
                progress.read += 1
                self.state = ImportState.BATCHING
                stop = await self._process_line(line, line_number, batch, progress)
                self.state = ImportState.READING
                if stop:
                    break
        except _Aborted:
            progress.aborted = True
        except ImportStreamError as e:
            await self._commit(batch, progress)
            self.state = ImportState.FAILED
            e.result = progress.to_result()
            self.logger.error(f"Import failed after {progress.read} entries: {e}")
            raise
        finally:
            await lines.aclose()

        if not progress.aborted and self.options.abort_signal is not None:
            progress.aborted = self.options.abort_signal.is_set()
        await self._commit(batch, progress)
        self.state = ImportState.DONE

        result = progress.to_result()
        self.logger.info(f"Import finished: read={result.read} committed={result.committed} "
                         f"collisions={result.collisions} errors={result.errors} "
                         f"batches={result.batches}")
        return result

    async def _process_line(self, line: bytes, line_number: int, batch: _Batch,
                            progress: ImportProgress) -> bool:
        """Decode one line and admit it to the batch; returns True to stop reading."""
        try:
            entry = line_to_entry(line)
        except DecodeError as e:
            return self._record_error(e, progress, line_number)

        try:
            value_size = self.estimator.estimate_size(entry.value)
            size = self.estimator.estimate_key_size(entry.key) + value_size
            if value_size > self.store.max_value_bytes or size > self.batch_size_limit:
                raise StoreLimitExceeded(
                    f"Entry of {size} estimated bytes exceeds the store limits",
                    context={"key": entry.key, "size": size}
                )
        except StoreLimitExceeded as e:
            return self._record_error(e, progress, line_number)

        fingerprint = key_fingerprint(entry.key)
        # Without overwrite a repeated key must reach the store in a later
        # commit, where its version check reports the collision.
        repeated = not self.options.overwrite and fingerprint in batch.keys
        full = self.estimator.will_exceed_limit(batch.size, len(batch), size,
                                                self.batch_size_limit, self.batch_count_limit)
        if batch and (repeated or full):
            errors_before = progress.errors
            await self._commit(batch, progress)
            self.state = ImportState.BATCHING
            if progress.errors > errors_before and self.options.stop_on_error:
                return True
        batch.add(entry, size, fingerprint)
        return False

    def _record_error(self, error: KvTransferError, progress: ImportProgress,
                      line_number: Optional[int] = None, count: int = 1) -> bool:
        progress.errors += count
        response = self.error_handler.handle_entry_error(error, line_number)
        return self.options.stop_on_error or not response.can_recover

    async def _commit(self, batch: _Batch, progress: ImportProgress) -> None:
        """Commit the pending batch, absorbing collisions and store failures."""
        if not batch:
            return
        previous_state = self.state
        self.state = ImportState.COMMITTING
        entries = batch.take()
        self.logger.debug(f"Committing batch of {len(entries)} entries")
        check = not self.options.overwrite
        mutations = [Mutation(entry.key, entry.value, None, check) for entry in entries]
        await self._commit_mutations(mutations, progress, split_on_limit=True)
        self.state = previous_state

    async def _commit_mutations(self, mutations: List[Mutation], progress: ImportProgress,
                                split_on_limit: bool) -> None:
        pending = list(mutations)
        retries = 0

        while pending:
            try:
                outcome = await self.store.atomic_commit(pending)
            except StoreLimitExceeded as e:
                if split_on_limit and len(pending) > 1:
                    self.logger.warning(f"Batch of {len(pending)} rejected by store limits, "
                                        "committing entries one at a time")
                    for mutation in pending:
                        await self._commit_mutations([mutation], progress, split_on_limit=False)
                    return
                self._record_error(e, progress, count=len(pending))
                return
            except StoreError as e:
                self._record_error(e, progress, count=len(pending))
                return

            if outcome.ok:
                progress.committed += len(pending)
                progress.batches += 1
                return

            collided = {key_fingerprint(key) for key in outcome.collided_keys}
            rejected = [m for m in pending if key_fingerprint(m.key) in collided]
            if not rejected:
                self._record_error(
                    StoreError("Commit failed without naming collided keys"),
                    progress, count=len(pending)
                )
                return

            if not self.options.overwrite:
                progress.collisions += len(rejected)
                self.logger.debug(f"{len(rejected)} entries already exist, skipping them")
                pending = [m for m in pending if key_fingerprint(m.key) not in collided]
                continue

            retries += 1
            if retries > self.options.max_commit_retries:
                self._record_error(
                    StoreError(f"{len(rejected)} entries kept colliding after "
                               f"{self.options.max_commit_retries} retries"),
                    progress, count=len(rejected)
                )
                pending = [m for m in pending if key_fingerprint(m.key) not in collided]
                retries = 0
                continue
            self.logger.debug(f"Retrying batch after {len(rejected)} collisions "
                              f"(attempt {retries})")

    async def _iter_lines(self, stream: ByteStream) -> AsyncIterator[bytes]:
        """Split the stream on newlines, yielding raw lines without terminators."""
        if hasattr(stream, "__aiter__"):
            iterator = stream.__aiter__()
        else:
            iterator = _iterate_sync(stream)

        buffer = bytearray()
        while True:
            if self.options.abort_signal is not None and self.options.abort_signal.is_set():
                raise _Aborted()
            has_chunk, chunk = await self._next_chunk(iterator)
            if not has_chunk:
                break
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            buffer.extend(chunk)
            start = 0
            while True:
                newline = buffer.find(b"\n", start)
                if newline < 0:
                    break
                yield self._strip_cr(bytes(buffer[start:newline]))
                start = newline + 1
            del buffer[:start]

        if buffer:
            yield self._strip_cr(bytes(buffer))

    @staticmethod
    def _strip_cr(line: bytes) -> bytes:
        return line[:-1] if line.endswith(b"\r") else line

    async def _next_chunk(self, iterator: AsyncIterator[Any]) -> Tuple[bool, Any]:
        """Await the next input chunk, giving up early if the abort signal fires."""

        async def pull() -> Tuple[bool, Any]:
            try:
                return True, await iterator.__anext__()
            except StopAsyncIteration:
                return False, None
            except Exception as e:
                raise ImportStreamError(f"Input stream failed: {e}") from e

        signal = self.options.abort_signal
        if signal is None:
            return await pull()

        pull_task = asyncio.ensure_future(pull())
        abort_task = asyncio.ensure_future(signal.wait())
        try:
            await asyncio.wait({pull_task, abort_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            abort_task.cancel()
            await asyncio.gather(abort_task, return_exceptions=True)
        if pull_task.done():
            return pull_task.result()
        pull_task.cancel()
        await asyncio.gather(pull_task, return_exceptions=True)
        raise _Aborted()


async def import_entries(store: KvStoreInterface, stream: ByteStream,
                         options: Optional[ImportOptions] = None,
                         logger: Optional[logging.Logger] = None) -> ImportResult:
    """
    Import newline-delimited JSON entries into a store.

    Args:
        store: Store to write into
        stream: Async or sync iterable of `bytes`/`str` chunks
        options: Import options
        logger: Optional logger instance

    Returns:
        ImportResult with read, collision and error counts

    Raises:
        ImportStreamError: If reading the stream fails, carrying the partial result
    """
    importer = StreamingImporter(store, options, logger=logger)
    return await importer.run(stream)
