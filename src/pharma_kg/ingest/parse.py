"""
File parsing: raw CSV / JSON content → list of records.

CSV is read with polars (header row defines the fields, every column kept
as a string so the validator decides on types). JSON must be an array of
objects; a lone object is treated as a one-record batch.
"""

import io
import json
from pathlib import Path

import polars as pl

from pharma_kg.errors import ParseError, UnsupportedFormatError
from pharma_kg.models import Record

SUPPORTED_FORMATS = ("csv", "json")


def detect_format(path: str | Path) -> str:
    """Infer the format from a file extension."""
    suffix = Path(path).suffix.lower().lstrip(".")
    if suffix not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(suffix or str(path), SUPPORTED_FORMATS)
    return suffix


def parse(source: str | Path | bytes, fmt: str | None = None) -> list[Record]:
    """
    Parse raw content into records.

    Args:
        source: File path or raw bytes
        fmt: "csv" or "json"; inferred from the path when omitted

    Returns:
        List of records (field name → value)

    Raises:
        UnsupportedFormatError: Unknown format, or bytes without a format
        ParseError: Content is not valid for the format
    """
    if isinstance(source, bytes):
        if fmt is None:
            raise UnsupportedFormatError("<bytes>", SUPPORTED_FORMATS)
        data = source
    else:
        fmt = fmt or detect_format(source)
        data = Path(source).read_bytes()

    fmt = fmt.lower()
    if fmt == "csv":
        return _parse_csv(data)
    if fmt == "json":
        return _parse_json(data)
    raise UnsupportedFormatError(fmt, SUPPORTED_FORMATS)


def parse_file(path: str | Path) -> list[Record]:
    """Parse a file, inferring the format from its extension."""
    return parse(Path(path))


def _parse_csv(data: bytes) -> list[Record]:
    if not data.strip():
        return []
    try:
        # infer_schema_length=0 keeps every column as a string
        df = pl.read_csv(io.BytesIO(data), infer_schema_length=0, truncate_ragged_lines=True)
    except pl.exceptions.PolarsError as e:
        raise ParseError(f"Invalid CSV: {e}") from e

    records = []
    for row in df.iter_rows(named=True):
        # Empty cells are missing fields, not empty strings
        records.append({k.strip(): v for k, v in row.items() if v is not None and v != ""})
    return records


def _parse_json(data: bytes) -> list[Record]:
    try:
        payload = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ParseError(f"Invalid JSON: {e}") from e

    if isinstance(payload, dict):
        payload = [payload]
    if not isinstance(payload, list):
        raise ParseError(f"Expected a JSON array of objects, got {type(payload).__name__}")

    records = [item for item in payload if isinstance(item, dict)]
    if len(records) != len(payload):
        raise ParseError("JSON array contains non-object items")
    return records
