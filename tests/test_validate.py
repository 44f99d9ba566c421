"""Tests for schema validation and type coercion."""

import pytest

from pharma_kg.ingest import validate
from pharma_kg.ingest.validate import CoercionError, coerce
from pharma_kg.models import FieldSpec, FieldType


def schema(**fields):
    return {name: FieldSpec.model_validate(spec) for name, spec in fields.items()}


class TestCoerce:
    @pytest.mark.parametrize(
        "value,expected",
        [("42", 42), ("1,234", 1234), ("3.5", 3.5), (7, 7), (2.0, 2.0)],
    )
    def test_number(self, value, expected):
        result = coerce(value, FieldType.NUMBER)
        assert result == expected
        assert type(result) is type(expected)

    def test_integer_rejects_fraction(self):
        assert coerce("4.0", FieldType.INTEGER) == 4
        with pytest.raises(CoercionError):
            coerce("4.5", FieldType.INTEGER)

    def test_number_rejects_text_and_booleans(self):
        with pytest.raises(CoercionError):
            coerce("n/a", FieldType.NUMBER)
        with pytest.raises(CoercionError):
            coerce(True, FieldType.NUMBER)
        with pytest.raises(CoercionError):
            coerce("nan", FieldType.NUMBER)

    def test_boolean(self):
        assert coerce("Yes", FieldType.BOOLEAN) is True
        assert coerce("0", FieldType.BOOLEAN) is False
        with pytest.raises(CoercionError):
            coerce("maybe", FieldType.BOOLEAN)

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-03-15", "2024-03-15"),
            ("03/15/2024", "2024-03-15"),
            ("March 15, 2024", "2024-03-15"),
            ("2024-03-15T10:00:00Z", "2024-03-15T10:00:00+00:00"),
        ],
    )
    def test_date_to_iso(self, value, expected):
        assert coerce(value, FieldType.DATE) == expected

    def test_unparseable_date(self):
        with pytest.raises(CoercionError):
            coerce("sometime soon", FieldType.DATE)

    def test_array_and_object(self):
        assert coerce([1], FieldType.ARRAY) == [1]
        assert coerce({"a": 1}, FieldType.OBJECT) == {"a": 1}
        with pytest.raises(CoercionError):
            coerce("x", FieldType.ARRAY)
        with pytest.raises(CoercionError):
            coerce([], FieldType.OBJECT)


class TestValidate:
    def test_empty_schema_accepts_all(self):
        records = [{"a": 1}, {"b": None}]
        report = validate(records, {})
        assert report.accepted == records
        assert report.rejected == 0

    def test_required_missing_or_blank_rejected(self):
        records = [{"name": "Aspirin"}, {"name": "  "}, {"name": None}, {}]
        report = validate(records, schema(name={"type": "string", "required": True}))
        assert [r["name"] for r in report.accepted] == ["Aspirin"]
        assert report.rejected == 3
        assert report.reasons == {"missing:name": 3}

    def test_optional_missing_accepted(self):
        report = validate([{"name": "A"}], schema(dose={"type": "number"}))
        assert report.accepted == [{"name": "A"}]

    def test_type_failure_rejected(self):
        records = [{"cap": "100"}, {"cap": "lots"}]
        report = validate(records, schema(cap={"type": "number"}))
        assert report.accepted == [{"cap": 100}]
        assert report.reasons == {"type:cap": 1}

    def test_coerces_and_keeps_other_fields(self):
        records = [{"startDate": "01/02/2023", "enrollment": "120", "extra": "kept"}]
        report = validate(
            records,
            schema(startDate={"type": "date"}, enrollment={"type": "integer", "required": True}),
        )
        assert report.accepted == [{"startDate": "2023-01-02", "enrollment": 120, "extra": "kept"}]

    def test_input_not_mutated(self):
        records = [{"info": {"count": "3"}}]
        validate(records, schema(**{"info.count": {"type": "integer"}}))
        assert records == [{"info": {"count": "3"}}]

    def test_dotted_paths(self):
        records = [
            {"companyInfo": {"name": "Acme", "ticker": "ACM"}},
            {"companyInfo": {"ticker": "XYZ"}},
            {"companyInfo.name": "Flat Header Co"},
        ]
        report = validate(records, schema(**{"companyInfo.name": {"type": "string", "required": True}}))
        assert report.total == 3
        assert report.rejected == 1
        assert len(report.accepted) == 2
