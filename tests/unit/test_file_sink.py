"""
Unit tests for NDJSON export files.
"""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from tsbridge.core.errors import ErrorCode, FileWriteError
from tsbridge.pipeline.file_sink import ExportFileWriter, create_file_path, to_json_line
from tsbridge.schemas.records import CostRecord

T = datetime(2024, 1, 15, 12, 30, 5, tzinfo=timezone.utc)


def cost_record(value=89.9):
    return CostRecord(
        measurement="costs",
        timestamp=T,
        cost_date=T.date(),
        cost_type="monthly",
        category="energy",
        fields={"value": value},
        tags={"cost_type": "monthly", "currency": "EUR"},
    )


class TestCreateFilePath:
    """Tests for export file naming."""

    @pytest.mark.unit
    def test_prefix_and_timestamp(self):
        """Test the path carries prefix and timestamp."""
        path = create_file_path("exports", "humidity", T)
        assert path.name == "humidity_20240115_123005.json"
        assert path.parent.name == "exports"

    @pytest.mark.unit
    def test_custom_extension(self):
        """Test a custom extension is used."""
        assert create_file_path("out", "costs", T, ".ndjson").suffix == ".ndjson"


class TestToJsonLine:
    """Tests for single-record serialization."""

    @pytest.mark.unit
    def test_model_is_one_line(self):
        """Test a model serializes to one line."""
        line = to_json_line(cost_record())
        assert "\n" not in line
        assert json.loads(line)["measurement"] == "costs"

    @pytest.mark.unit
    def test_mapping(self):
        """Test mappings serialize."""
        assert json.loads(to_json_line({"a": 1})) == {"a": 1}

    @pytest.mark.unit
    def test_unsupported_type(self):
        """Test unsupported types are rejected."""
        with pytest.raises(TypeError):
            to_json_line(object())


class TestExportFileWriter:
    """Tests for writing and reading export files."""

    @pytest.mark.unit
    def test_round_trip_keeps_record(self, tmp_path):
        """Test a written record reads back unchanged."""
        writer = ExportFileWriter()
        path = tmp_path / "nested" / "costs_20240115_123005.json"
        original = cost_record()

        count = writer.write_file(path, [original, cost_record(12.0)])
        restored = writer.read_file(path, CostRecord)

        assert count == 2
        assert len(path.read_text(encoding="utf-8").splitlines()) == 2
        assert restored[0].measurement == original.measurement
        assert restored[0].fields == original.fields
        assert restored[0].tags == original.tags
        assert restored[0].timestamp == original.timestamp
        assert restored[1].primary_cost_value == 12.0

    @pytest.mark.unit
    def test_empty_export_writes_empty_file(self, tmp_path):
        """Test an empty export writes an empty file."""
        path = tmp_path / "empty.json"
        assert ExportFileWriter().write_file(path, []) == 0
        assert path.read_text(encoding="utf-8") == ""

    @pytest.mark.unit
    def test_serialization_error(self, tmp_path):
        """Test serialization errors become file errors."""
        with pytest.raises(FileWriteError) as exc_info:
            ExportFileWriter().write_file(tmp_path / "bad.json", [cost_record(), object()])
        assert exc_info.value.code == ErrorCode.JSON_SERIALIZATION_FAILED
        assert exc_info.value.details["line"] == 1

    @pytest.mark.unit
    def test_os_error(self, tmp_path):
        """Test OS errors become file errors."""
        with patch("pathlib.Path.open", side_effect=PermissionError("denied")):
            with pytest.raises(FileWriteError) as exc_info:
                ExportFileWriter().write_file(tmp_path / "x.json", [cost_record()])
        assert exc_info.value.code == ErrorCode.FILE_WRITE_FAILED

    @pytest.mark.unit
    def test_failed_write_leaves_no_file(self, tmp_path):
        """Test a failed write leaves nothing behind."""
        path = tmp_path / "costs_20240115_123005.json"
        with pytest.raises(FileWriteError):
            ExportFileWriter().write_file(path, [{"a": 1}, object()])
        assert not path.exists()
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.unit
    def test_failed_write_keeps_previous_file(self, tmp_path):
        """Test a failed write keeps the previous file."""
        path = tmp_path / "costs.json"
        path.write_text('{"old": true}\n', encoding="utf-8")
        with pytest.raises(FileWriteError):
            ExportFileWriter().write_file(path, [object()])
        assert path.read_text(encoding="utf-8") == '{"old": true}\n'
