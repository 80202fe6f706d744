"""
Unit Tests for newline-split record repair
"""

from datetime import datetime

import pytest

from ops_sync.errors import MalformedRecordError
from ops_sync.utils.record_repair import RecordRepairEngine, cleaned_path_for

TIMESTAMP = "2024-05-01 08:30:00"


@pytest.fixture
def repair_engine():
    return RecordRepairEngine(load_timestamp=datetime(2024, 5, 1, 8, 30, 0))


class TestRepairLines:
    """Tests for RecordRepairEngine.repair_lines()"""

    def test_well_formed_file_has_no_audit(self, repair_engine):
        result = repair_engine.repair_lines(["Id|Name", "1|Alice", "2|Bob"], "x.csv")
        assert result.audit == []
        assert result.rows_cleaned == 0
        assert result.records == [
            ["1", "Alice", "x.csv", TIMESTAMP],
            ["2", "Bob", "x.csv", TIMESTAMP],
        ]
        assert result.header == ["Id", "Name", "FileName", "FileLoadDate"]

    def test_single_split_record_is_merged(self, repair_engine):
        lines = ["Id|Name|City", "1|Alice|Oslo", "2|Bo", "b|Rome"]
        result = repair_engine.repair_lines(lines, "x.csv")

        assert result.records[1] == ["2", "Bob", "Rome", "x.csv", TIMESTAMP]
        assert len(result.records) == 2
        assert result.rows_cleaned == 1
        assert len(result.audit) == 1
        audit = result.audit[0]
        assert audit.row_number == 4
        assert audit.original_value == "Bo"
        assert audit.repaired_value == "Bob"
        assert str(audit) == "Row 4: 'Bo' -> 'Bob'"

    def test_record_split_over_three_lines(self, repair_engine):
        lines = ["Id|Note|Flag", "7|first", " second", " third|Y"]
        result = repair_engine.repair_lines(lines, "x.csv")

        assert result.records == [["7", "first second third", "Y", "x.csv", TIMESTAMP]]
        assert result.rows_cleaned == 2
        assert result.audit[0].original_value == "first"
        assert result.audit[0].repaired_value == "first second third"

    def test_stats(self, repair_engine):
        result = repair_engine.repair_lines(["A|B|C", "1|x|y", "2|x", "|y"], "x.csv")
        stats = result.to_stats()
        assert stats == {
            'columns': 5,
            'total_rows_processed': 4,
            'rows_cleaned': 1,
            'records_repaired': 1,
            'final_row_count': 3,
        }

    def test_input_ending_inside_record_raises(self, repair_engine):
        with pytest.raises(MalformedRecordError) as exc:
            repair_engine.repair_lines(["A|B|C", "1|x|y", "2|short"], "x.csv")
        assert exc.value.row_number == 3

    def test_empty_input_raises(self, repair_engine):
        with pytest.raises(MalformedRecordError):
            repair_engine.repair_lines([], "x.csv")

    def test_without_provenance(self):
        engine = RecordRepairEngine(append_provenance=False)
        result = engine.repair_lines(["A|B|C", "1|he", "llo|z"], "x.csv")
        assert result.header == ["A", "B", "C"]
        assert result.records == [["1", "hello", "z"]]


class TestRepairFile:
    """Tests for RecordRepairEngine.repair_file()"""

    def test_cleaned_file_written_with_bom(self, tmp_path, repair_engine):
        source = tmp_path / "Export_2532_utf8.csv"
        source.write_text("Id|Note|Flag\r\n1|said \"hi\"|Y\r\n2|a\r\nb|N\r\n", encoding="utf-8-sig")

        stats = repair_engine.repair_file(source)

        output = cleaned_path_for(source)
        assert stats['output_path'] == str(output)
        assert output.name == "Export_2532_utf8_cleaned.csv"
        raw = output.read_bytes()
        assert raw.startswith(b"\xef\xbb\xbf")
        lines = raw.decode("utf-8-sig").split("\n")
        assert lines[0] == "Id|Note|Flag|FileName|FileLoadDate"
        assert lines[1] == f'1|"said ""hi"""|Y|Export_2532_utf8.csv|{TIMESTAMP}'
        assert lines[2] == f"2|ab|N|Export_2532_utf8.csv|{TIMESTAMP}"
        assert stats['records_repaired'] == 1
        assert stats['final_row_count'] == 3
