"""Command-line interface for KV Transfer."""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Tuple

import click

from .codec.entry_codec import line_to_entry
from .codec.key_codec import to_key_part
from .kv_transfer import KvTransfer
from .store import MemoryKvStore
from .types import DecodeError, ImportResult, KvTransferError


def _print_result(result: ImportResult) -> None:
    click.echo(f"📥 Read: {result.read}")
    click.echo(f"✅ Committed: {result.committed} in {result.batches} batches")
    if result.collisions:
        click.echo(f"⚠️  Collisions: {result.collisions}")
    if result.errors:
        click.echo(f"❌ Errors: {result.errors}")


@click.group()
@click.version_option(version="1.0.0")
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
def main(verbose: bool):
    """KV Transfer - Inspect, validate and filter NDJSON store exports."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING)


@main.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--top', '-t', default=5, help='Number of largest entries to list (default: 5)')
def estimate(input_file: Path, top: int):
    """Estimate the stored size of every entry in an NDJSON export."""
    transfer = KvTransfer()
    sizes: List[Tuple[int, str]] = []
    errors = 0

    with input_file.open("rb") as handle:
        for line_number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            try:
                entry = line_to_entry(line)
            except DecodeError as e:
                errors += 1
                click.echo(f"   • line {line_number}: {e}")
                continue
            size = transfer.estimator.estimate_entry_size(entry.key, entry.value)
            sizes.append((size, repr(entry.key)))

    total = sum(size for size, _ in sizes)
    click.echo(f"📊 {len(sizes)} entries, {total} estimated bytes ({total/1024:.1f}KB)")
    if errors:
        click.echo(f"❌ {errors} lines could not be decoded")
    for size, key in sorted(sizes, reverse=True)[:top]:
        click.echo(f"   {size:>10}  {key}")


@main.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--batch-size', default=None, type=int, help='Estimated bytes per atomic commit')
@click.option('--batch-count', default=None, type=int, help='Entries per atomic commit')
@click.option('--stop-on-error', is_flag=True, help='Stop at the first failed entry')
def validate(input_file: Path, batch_size: int, batch_count: int, stop_on_error: bool):
    """Dry-run an import of an NDJSON export into an in-memory store."""
    click.echo(f"Validating {input_file}...")

    try:
        transfer = KvTransfer(default_batch_size_limit=batch_size,
                              default_batch_count_limit=batch_count)
        store = MemoryKvStore()
        result = asyncio.run(transfer.import_file(store, input_file, stop_on_error=stop_on_error))
        _print_result(result)
        if result.errors:
            raise SystemExit(1)
    except (KvTransferError, ValueError, OSError) as e:
        click.echo(f"❌ Error: {e}")
        raise SystemExit(2)


@main.command(name="filter")
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument('output_file', type=click.Path(dir_okay=False, path_type=Path))
@click.option('--prefix', '-p', default='[]', help='Key prefix as a JSON array (default: [])')
@click.option('--page-size', default=100, help='Entries per listing page (default: 100)')
def filter_entries(input_file: Path, output_file: Path, prefix: str, page_size: int):
    """Copy the entries under a key prefix into a new NDJSON file."""
    try:
        parts = json.loads(prefix)
        if not isinstance(parts, list):
            raise click.BadParameter("prefix must be a JSON array", param_hint="--prefix")
        key_prefix = tuple(to_key_part(part, f"$[{i}]") for i, part in enumerate(parts))
    except (ValueError, DecodeError) as e:
        raise click.BadParameter(str(e), param_hint="--prefix")

    async def run() -> Tuple[ImportResult, int]:
        transfer = KvTransfer(default_page_size=page_size)
        store = MemoryKvStore()
        result = await transfer.import_file(store, input_file)
        written = await transfer.export_to_file(store, output_file, key_prefix)
        return result, written

    try:
        result, written = asyncio.run(run())
    except (KvTransferError, ValueError, OSError) as e:
        click.echo(f"❌ Error: {e}")
        raise SystemExit(2)

    _print_result(result)
    click.echo(f"✅ Wrote {written} entries to {output_file}")


if __name__ == '__main__':
    main()
