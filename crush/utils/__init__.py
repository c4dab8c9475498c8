"""Shared helpers for the crush engine."""
from .serialization import to_ndjson, from_ndjson, provenance_record
from .time import utc_timestamp_ms

__all__ = [
    "to_ndjson",
    "from_ndjson",
    "provenance_record",
    "utc_timestamp_ms",
]
