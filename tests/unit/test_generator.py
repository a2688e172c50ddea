"""
Unit tests for synthetic file generation and modification
"""

from datetime import datetime

import pytest
from hypothesis import given
from hypothesis import strategies as st

from mandate_sync.batch.readers import MandateFileReader, MandateRecordParser
from mandate_sync.generator import (
    FIELD_INDEX,
    MandateDataGenerator,
    MandateDataModifier,
    format_record_count,
    header_line,
    parse_record_count,
)

NEXT_NIGHT = datetime(2030, 1, 1, 2, 0, 0)


@pytest.mark.unit
class TestRecordCount:
    """Tests for record count parsing and formatting"""

    @pytest.mark.parametrize(
        "text,expected",
        [("500", 500), ("10k", 10_000), ("10K", 10_000), ("1.5M", 1_500_000), (" 2m ", 2_000_000)],
    )
    def test_parse(self, text, expected):
        assert parse_record_count(text) == expected

    @pytest.mark.parametrize("text", ["", "abc", "10G", "-5", "0", "1.5.2k"])
    def test_parse_rejects(self, text):
        with pytest.raises(ValueError):
            parse_record_count(text)

    @pytest.mark.parametrize(
        "count,expected", [(500, "500"), (10_000, "10.0K"), (1_500_000, "1.5M")]
    )
    def test_format(self, count, expected):
        assert format_record_count(count) == expected


@pytest.mark.unit
class TestMandateDataGenerator:
    """Tests for MandateDataGenerator"""

    def test_same_seed_same_output(self):
        first = [MandateDataGenerator(seed=42).generate_line(i) for i in range(1, 4)]
        second = [MandateDataGenerator(seed=42).generate_line(i) for i in range(1, 4)]
        assert first == second

    @given(st.integers(min_value=0, max_value=2**32), st.integers(min_value=1, max_value=10**9))
    def test_generated_lines_parse(self, seed, index):
        """Property: every generated line is a valid record with the sequential id"""
        record = MandateRecordParser().parse_line(MandateDataGenerator(seed=seed).generate_line(index))

        assert record.mandate_id == f"MND-{index:010d}"
        assert record.debtor_id is not None
        assert record.effective_date > record.signature_date
        assert record.expiry_date > record.effective_date

    def test_generate_file(self, tmp_path):
        """Test a generated file has a camelCase header and reads cleanly"""
        path = MandateDataGenerator(seed=1).generate_file(
            25, tmp_path / "out", now=datetime(2025, 11, 17, 2, 0, 0)
        )

        assert path.name == "mandates_2025-11-17_02-00-00_25.txt"
        assert path.read_text().splitlines()[0] == header_line()

        with MandateFileReader(path) as reader:
            records = [r for batch in reader.iter_batches(10) for r in batch]

        assert len(records) == 25
        assert reader.parse_errors == 0
        assert records[-1].mandate_id == "MND-0000000025"

    def test_generate_file_rejects_zero(self, tmp_path):
        with pytest.raises(ValueError):
            MandateDataGenerator().generate_file(0, tmp_path)


@pytest.mark.unit
class TestMandateDataModifier:
    """Tests for MandateDataModifier"""

    @pytest.fixture
    def source_file(self, tmp_path):
        return MandateDataGenerator(seed=3).generate_file(
            50, tmp_path, now=datetime(2025, 11, 17, 2, 0, 0)
        )

    def make_modifier(self, percentage: float) -> MandateDataModifier:
        return MandateDataModifier(percentage, seed=9, clock=lambda: NEXT_NIGHT)

    @pytest.mark.parametrize("percentage", [-1, 100.5])
    def test_rejects_bad_percentage(self, percentage):
        with pytest.raises(ValueError):
            MandateDataModifier(percentage)

    def test_zero_percent_copies_records(self, source_file):
        result = self.make_modifier(0).modify_file(source_file)

        assert result.modified_records == 0
        assert result.unchanged_records == 50
        assert result.output_path.read_text() == source_file.read_text()

    def test_hundred_percent_restamps_every_record(self, source_file):
        result = self.make_modifier(100).modify_file(source_file)

        assert result.modified_records == 50
        assert result.output_path.name == (
            "mandates_2025-11-17_02-00-00_50_modified_2030-01-01_02-00-00_100pct.txt"
        )
        with MandateFileReader(result.output_path) as reader:
            records = [r for batch in reader.iter_batches(100) for r in batch]
        assert reader.parse_errors == 0
        assert all(r.last_update_date == NEXT_NIGHT for r in records)

    def test_ids_and_order_preserved(self, source_file):
        result = self.make_modifier(50).modify_file(source_file)

        original = source_file.read_text().splitlines()
        modified = result.output_path.read_text().splitlines()

        assert len(original) == len(modified)
        assert [line.split("|")[0] for line in original] == [line.split("|")[0] for line in modified]
        changed = sum(1 for a, b in zip(original[1:], modified[1:]) if a != b)
        assert changed == result.modified_records

    def test_modify_line_touches_only_editable_fields(self):
        line = MandateDataGenerator(seed=5).generate_line(7)
        edited = self.make_modifier(100).modify_line(line).split("|")
        fields = line.split("|")

        editable = {
            "last_update_date", "status", "frequency", "max_amount_per_transaction",
            "max_amount_per_month", "max_transactions_per_month", "description",
            "debtor_email", "debtor_phone",
        }
        for name, index in FIELD_INDEX.items():
            if name not in editable:
                assert edited[index] == fields[index], name
        assert edited[FIELD_INDEX["last_update_date"]] == "2030-01-01 02:00:00"

    def test_malformed_line_passes_through(self):
        assert self.make_modifier(100).modify_line("MND-1|broken") == "MND-1|broken"

    def test_output_dir(self, source_file, tmp_path):
        result = self.make_modifier(10).modify_file(source_file, tmp_path / "next")
        assert result.output_path.parent == tmp_path / "next"
