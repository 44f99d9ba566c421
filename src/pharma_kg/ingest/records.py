"""
Helpers shared by the validator, transformer and agents.
"""

import hashlib
import json
from datetime import datetime
from typing import Any

from pharma_kg.models import Record, utcnow

MISSING = object()


def lookup(record: Record, path: str, default: Any = None) -> Any:
    """
    Read a field, following dotted paths into nested objects.

    A literal key containing dots (as produced by CSV headers such as
    ``companyInfo.name``) wins over the nested walk.

    Args:
        record: Record to read
        path: Field name or dotted path
        default: Returned when the field is absent

    Returns:
        Field value or default
    """
    if path in record:
        return record[path]
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def assign(record: Record, path: str, value: Any) -> None:
    """Write a field in place, honoring the same lookup rules as :func:`lookup`."""
    if path in record or "." not in path:
        record[path] = value
        return
    head, _, rest = path.partition(".")
    child = record.get(head)
    if not isinstance(child, dict):
        record[path] = value
        return
    assign(child, rest, value)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def record_id(record: Record, source_id: str, primary_key: str | None = None) -> str:
    """Stable id for a record: primary key when configured, else a content hash."""
    if primary_key:
        key = lookup(record, primary_key)
        if not is_blank(key):
            return f"{source_id}_{key}"
    payload = json.dumps(
        {k: v for k, v in record.items() if k != "_provenance"},
        sort_keys=True,
        default=str,
    )
    return f"{source_id}_{hashlib.sha256(payload.encode()).hexdigest()[:16]}"


def annotate_provenance(
    records: list[Record],
    source_id: str,
    primary_key: str | None = None,
    ingested_at: datetime | None = None,
) -> list[Record]:
    """Return copies of ``records`` tagged with ``_provenance``."""
    stamp = (ingested_at or utcnow()).isoformat()
    annotated = []
    for record in records:
        copy = dict(record)
        copy["_provenance"] = {
            "sourceId": source_id,
            "ingestedAt": stamp,
            "recordId": record_id(record, source_id, primary_key),
        }
        annotated.append(copy)
    return annotated


def copy_record(record: Record) -> Record:
    """Copy a record, including nested objects, so writes never reach the input."""
    return {k: copy_record(v) if isinstance(v, dict) else v for k, v in record.items()}
