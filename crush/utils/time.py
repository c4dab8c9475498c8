"""Time utilities for run timestamps."""
import time


def utc_timestamp_ms() -> int:
    """Get current UTC timestamp in milliseconds."""
    return int(time.time() * 1000)
