"""
Ordered record transformations.

Rules run in declaration order. Each rule is pure and total: a missing input
leaves the target field absent rather than raising. Derived fields come from
a closed set of named functions; nothing is evaluated as code.
"""

import logging
from collections.abc import Callable
from typing import Any

from pharma_kg.ingest.records import MISSING, assign, copy_record, is_blank, lookup
from pharma_kg.ingest.validate import CoercionError, format_date, parse_date
from pharma_kg.models import DeriveRule, FormatRule, Record, RenameRule

logger = logging.getLogger(__name__)


def _numbers(values: list[Any]) -> list[float] | None:
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError):
        return None


def _sum(values: list[Any], _: DeriveRule) -> Any:
    nums = _numbers(values)
    return sum(nums) if nums is not None else MISSING


def _difference(values: list[Any], _: DeriveRule) -> Any:
    nums = _numbers(values)
    if nums is None:
        return MISSING
    result = nums[0]
    for n in nums[1:]:
        result -= n
    return result


def _product(values: list[Any], _: DeriveRule) -> Any:
    nums = _numbers(values)
    if nums is None:
        return MISSING
    result = 1.0
    for n in nums:
        result *= n
    return result


def _ratio(values: list[Any], _: DeriveRule) -> Any:
    nums = _numbers(values)
    if nums is None or len(nums) != 2 or nums[1] == 0:
        return MISSING
    return nums[0] / nums[1]


def _concat(values: list[Any], rule: DeriveRule) -> Any:
    return rule.separator.join(str(v) for v in values)


def _copy(values: list[Any], _: DeriveRule) -> Any:
    return values[0]


def _year(values: list[Any], _: DeriveRule) -> Any:
    try:
        return parse_date(values[0]).year
    except CoercionError:
        return MISSING


DERIVATIONS: dict[str, Callable[[list[Any], DeriveRule], Any]] = {
    "sum": _sum,
    "difference": _difference,
    "product": _product,
    "ratio": _ratio,
    "concat": _concat,
    "copy": _copy,
    "year": _year,
}


def apply_rename(record: Record, rule: RenameRule) -> None:
    value = lookup(record, rule.from_, MISSING)
    if value is MISSING:
        return
    record.pop(rule.from_, None)
    record[rule.to] = value


def apply_format(record: Record, rule: FormatRule) -> None:
    value = lookup(record, rule.field, MISSING)
    if value is MISSING or is_blank(value):
        return
    if rule.format == "uppercase":
        assign(record, rule.field, str(value).upper())
    elif rule.format == "lowercase":
        assign(record, rule.field, str(value).lower())
    elif rule.format == "date":
        try:
            assign(record, rule.field, format_date(parse_date(value)))
        except CoercionError:
            logger.debug("Cannot format %r as date in field %s", value, rule.field)


def apply_derive(record: Record, rule: DeriveRule) -> None:
    values = [lookup(record, name, MISSING) for name in rule.args]

    if rule.function == "coalesce":
        present = [v for v in values if v is not MISSING and not is_blank(v)]
        if present:
            assign(record, rule.field, present[0])
        return

    if any(v is MISSING or is_blank(v) for v in values):
        return
    result = DERIVATIONS[rule.function](values, rule)
    if result is not MISSING:
        assign(record, rule.field, result)


APPLY = {
    "rename": apply_rename,
    "format": apply_format,
    "derive": apply_derive,
}


def transform(records: list[Record], rules: list[RenameRule | FormatRule | DeriveRule] | None) -> list[Record]:
    """
    Apply transformation rules to every record.

    Args:
        records: Validated records (not modified)
        rules: Ordered rules

    Returns:
        Transformed copies of the records
    """
    if not rules:
        return [copy_record(r) for r in records]

    transformed = []
    for record in records:
        out = copy_record(record)
        for rule in rules:
            APPLY[rule.type](out, rule)
        transformed.append(out)
    return transformed
