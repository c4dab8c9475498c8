"""Tests for time and serialization utilities."""
from datetime import datetime, timezone
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from crush.utils import (
    utc_timestamp_ms,
    to_ndjson,
    from_ndjson,
    provenance_record,
)


def test_utc_timestamp_ms():
    """Test UTC timestamp in milliseconds."""
    ts = utc_timestamp_ms()
    assert isinstance(ts, int)
    assert ts > 1_600_000_000_000


def test_ndjson_round_trip():
    line = to_ndjson({"bucket": "/logs/a-0", "partition": 3})
    assert line == '{"bucket":"/logs/a-0","partition":3}\n'
    assert from_ndjson(line) == {"bucket": "/logs/a-0", "partition": 3}


def test_ndjson_non_serializable_values():
    dt = datetime(2025, 1, 1, tzinfo=timezone.utc)
    assert from_ndjson(to_ndjson({"at": dt})) == {"at": str(dt)}


def test_provenance_record():
    assert provenance_record("/logs/a/1", "out/crush/logs/a/x-0", "/logs/a-0") == {
        "source": "/logs/a/1",
        "output": "out/crush/logs/a/x-0",
        "bucket": "/logs/a-0",
    }
