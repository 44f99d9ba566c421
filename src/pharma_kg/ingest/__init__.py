"""
Record ingestion: raw bytes → validated, transformed records.

Flow for every batch, whether uploaded or fetched:
1. parse.py: CSV/JSON → list of records (API payloads go through normalize.py)
2. validate.py: per-source schema check + type coercion (invalid records dropped)
3. transform.py: ordered rename / format / derive rules
4. records.py: ``_provenance`` annotation
"""

from pharma_kg.ingest.normalize import normalize_payload
from pharma_kg.ingest.parse import SUPPORTED_FORMATS, parse, parse_file
from pharma_kg.ingest.records import annotate_provenance, lookup
from pharma_kg.ingest.transform import transform
from pharma_kg.ingest.validate import ValidationReport, validate

__all__ = [
    "SUPPORTED_FORMATS",
    "ValidationReport",
    "annotate_provenance",
    "lookup",
    "normalize_payload",
    "parse",
    "parse_file",
    "transform",
    "validate",
]
