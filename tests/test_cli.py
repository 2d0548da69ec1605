"""Tests for the command-line interface."""

import pytest
from click.testing import CliRunner

from kv_transfer.cli import main
from kv_transfer.codec.entry_codec import entry_to_line, line_to_entry
from kv_transfer.types import Entry


@pytest.fixture
def export_file(temp_dir, user_entries):
    """NDJSON export of the user entries."""
    path = temp_dir / "export.ndjson"
    path.write_text("".join(entry_to_line(Entry(key, value, "0" * 20))
                            for key, value in user_entries), encoding="utf-8")
    return path


class TestCli:
    """Tests for the kv-transfer commands."""

    def setup_method(self):
        """Set up test fixtures."""
        self.runner = CliRunner()

    def test_estimate(self, export_file):
        result = self.runner.invoke(main, ["estimate", str(export_file), "--top", "2"])

        assert result.exit_code == 0
        assert "11 entries" in result.output
        assert "('users'," in result.output

    def test_estimate_reports_bad_lines(self, export_file):
        with export_file.open("a", encoding="utf-8") as handle:
            handle.write("not json\n")

        result = self.runner.invoke(main, ["estimate", str(export_file)])

        assert result.exit_code == 0
        assert "line 12" in result.output
        assert "1 lines could not be decoded" in result.output

    def test_validate(self, export_file):
        result = self.runner.invoke(main, ["validate", str(export_file), "--batch-count", "5"])

        assert result.exit_code == 0
        assert "Committed: 11 in 3 batches" in result.output

    def test_validate_with_errors(self, export_file):
        with export_file.open("a", encoding="utf-8") as handle:
            handle.write('{"key": [], "value": 1, "versionstamp": "1"}\n')

        result = self.runner.invoke(main, ["validate", str(export_file)])

        assert result.exit_code == 1
        assert "Errors: 1" in result.output

    def test_validate_invalid_options(self, export_file):
        result = self.runner.invoke(main, ["validate", str(export_file), "--batch-count", "0"])

        assert result.exit_code == 2
        assert "batch_count_limit" in result.output

    def test_filter(self, export_file, temp_dir):
        output = temp_dir / "settings.ndjson"

        result = self.runner.invoke(main, ["filter", str(export_file), str(output),
                                           "--prefix", '["settings"]'])

        assert result.exit_code == 0
        assert "Wrote 1 entries" in result.output
        entries = [line_to_entry(line) for line in output.read_bytes().splitlines()]
        assert [entry.key for entry in entries] == [("settings", "theme")]

    def test_filter_rejects_bad_prefix(self, export_file, temp_dir):
        result = self.runner.invoke(main, ["filter", str(export_file),
                                           str(temp_dir / "out.ndjson"), "--prefix", '{"a": 1}'])

        assert result.exit_code == 2
        assert "JSON array" in result.output

    def test_missing_input(self, temp_dir):
        result = self.runner.invoke(main, ["estimate", str(temp_dir / "missing.ndjson")])

        assert result.exit_code != 0
