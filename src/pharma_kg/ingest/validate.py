"""
Schema validation with type coercion.

Invalid records are excluded and counted, never raised: graph quality is
favored over completeness.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any

from pharma_kg.ingest.records import MISSING, assign, copy_record, is_blank, lookup
from pharma_kg.models import FieldSpec, FieldType, Record

logger = logging.getLogger(__name__)

DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%Y%m%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%B %Y",
    "%Y-%m",
)

TRUE_VALUES = {"true", "yes", "y", "1"}
FALSE_VALUES = {"false", "no", "n", "0"}


class CoercionError(ValueError):
    """Value cannot be read as the declared type."""


@dataclass
class ValidationReport:
    """Outcome of validating one batch."""
    accepted: list[Record] = field(default_factory=list)
    rejected: int = 0
    reasons: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.accepted) + self.rejected

    def reject(self, reason: str) -> None:
        self.rejected += 1
        self.reasons[reason] = self.reasons.get(reason, 0) + 1


def parse_date(value: Any) -> datetime | date:
    """Parse a date/datetime from common representations."""
    if isinstance(value, datetime | date):
        return value
    if not isinstance(value, str):
        raise CoercionError(f"not a date: {value!r}")
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise CoercionError(f"not a date: {value!r}")


def format_date(value: datetime | date) -> str:
    """ISO-8601 text; naive midnight datetimes collapse to a plain date."""
    if isinstance(value, datetime) and value.tzinfo is None and value.time() == time(0):
        return value.date().isoformat()
    return value.isoformat()


def coerce(value: Any, field_type: FieldType) -> Any:
    """
    Coerce a raw value to a schema type.

    Raises:
        CoercionError: Value is not coercible
    """
    match field_type:
        case FieldType.STRING:
            if isinstance(value, dict | list):
                raise CoercionError("expected a scalar")
            return value if isinstance(value, str) else str(value)
        case FieldType.NUMBER | FieldType.INTEGER:
            if isinstance(value, bool):
                raise CoercionError("boolean is not a number")
            if isinstance(value, int | float):
                number = value
            else:
                try:
                    number = float(str(value).replace(",", "").strip())
                except ValueError as e:
                    raise CoercionError(f"not a number: {value!r}") from e
            if number != number or number in (float("inf"), float("-inf")):
                raise CoercionError(f"not a finite number: {value!r}")
            if field_type is FieldType.INTEGER:
                if float(number) != int(number):
                    raise CoercionError(f"not an integer: {value!r}")
                return int(number)
            if isinstance(number, float) and number.is_integer() and not isinstance(value, float):
                return int(number)
            return number
        case FieldType.BOOLEAN:
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in TRUE_VALUES:
                return True
            if text in FALSE_VALUES:
                return False
            raise CoercionError(f"not a boolean: {value!r}")
        case FieldType.DATE:
            return format_date(parse_date(value))
        case FieldType.ARRAY:
            if not isinstance(value, list):
                raise CoercionError("expected an array")
            return value
        case FieldType.OBJECT:
            if not isinstance(value, dict):
                raise CoercionError("expected an object")
            return value
    raise CoercionError(f"unknown type: {field_type}")


def validate(records: list[Record], schema: dict[str, FieldSpec] | None) -> ValidationReport:
    """
    Validate records against a per-source schema.

    A record is dropped when a required field is missing or blank, or when any
    present schema field fails coercion. Accepted records are copies with the
    schema fields coerced; fields outside the schema are kept as-is.

    Args:
        records: Parsed records
        schema: Field name (dotted paths allowed) → FieldSpec

    Returns:
        ValidationReport with accepted records and rejection counts
    """
    report = ValidationReport()
    if not schema:
        report.accepted = [dict(r) for r in records]
        return report

    for record in records:
        candidate = copy_record(record)
        reason = None
        for name, spec in schema.items():
            value = lookup(candidate, name, MISSING)
            if value is MISSING or is_blank(value):
                if spec.required:
                    reason = f"missing:{name}"
                    break
                continue
            try:
                assign(candidate, name, coerce(value, spec.type))
            except CoercionError:
                reason = f"type:{name}"
                break

        if reason:
            report.reject(reason)
        else:
            report.accepted.append(candidate)

    if report.rejected:
        logger.info(
            "Validation rejected %d of %d records: %s",
            report.rejected,
            report.total,
            report.reasons,
        )
    return report

