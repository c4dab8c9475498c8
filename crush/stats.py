"""Counters produced by merge tasks and aggregated by the orchestrator."""
from dataclasses import dataclass, fields


@dataclass
class CrushStats:
    """
    Counters for one merge task, one worker or a whole run.

    Values are returned by the task that produced them and summed by the
    caller, never incremented through shared state.
    """
    files_crushed: int = 0
    records_crushed: int = 0
    buckets_crushed: int = 0
    buckets_failed: int = 0
    bytes_in: int = 0

    def merge(self, other: "CrushStats") -> "CrushStats":
        """Add other's counters into this instance and return it."""
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))
        return self

    def __str__(self) -> str:
        return (
            f"CrushStats(buckets={self.buckets_crushed}, failed={self.buckets_failed}, "
            f"files={self.files_crushed}, records={self.records_crushed}, "
            f"bytes_in={self.bytes_in / (1024 * 1024):.2f}MB)"
        )
