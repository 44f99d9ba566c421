"""Tests for CSV / JSON parsing."""

import pytest

from pharma_kg.errors import ParseError, UnsupportedFormatError
from pharma_kg.ingest import parse, parse_file


class TestCsv:
    def test_header_defines_fields(self, trials_csv):
        records = parse(trials_csv)
        assert len(records) == 2
        assert records[0]["nctId"] == "NCT0001"
        assert records[1]["sponsor"] == "ACME PHARMA"

    def test_values_stay_strings(self):
        records = parse(b"name,count\nAspirin,42\n", "csv")
        assert records == [{"name": "Aspirin", "count": "42"}]

    def test_empty_cells_are_missing(self):
        records = parse(b"a,b,c\n1,,3\n", "csv")
        assert records == [{"a": "1", "c": "3"}]

    def test_header_only(self):
        assert parse(b"a,b\n", "csv") == []

    def test_empty_content(self):
        assert parse(b"", "csv") == []


class TestJson:
    def test_array_of_objects(self, patents_json):
        records = parse_file(patents_json)
        assert [r["patentNumber"] for r in records] == ["US1234567", "US7654321"]

    def test_single_object_is_one_record(self):
        assert parse(b'{"id": 1}', "json") == [{"id": 1}]

    def test_utf8_bom(self):
        assert parse('\ufeff[{"name": "Zürich"}]'.encode("utf-8"), "json") == [{"name": "Zürich"}]

    def test_invalid_json(self):
        with pytest.raises(ParseError):
            parse(b"[{", "json")

    def test_scalar_payload_rejected(self):
        with pytest.raises(ParseError):
            parse(b"42", "json")

    def test_non_object_items_rejected(self):
        with pytest.raises(ParseError):
            parse(b'[{"a": 1}, 2]', "json")


class TestFormats:
    def test_unknown_extension(self, write_file):
        path = write_file("data.xml", "<xml/>")
        with pytest.raises(UnsupportedFormatError):
            parse(path)

    def test_bytes_need_format(self):
        with pytest.raises(UnsupportedFormatError):
            parse(b"a,b\n1,2\n")

    def test_unknown_explicit_format(self):
        with pytest.raises(UnsupportedFormatError) as exc_info:
            parse(b"", "parquet")
        assert isinstance(exc_info.value, ValueError)

    def test_format_is_case_insensitive(self):
        assert parse(b"a\n1\n", "CSV") == [{"a": "1"}]
