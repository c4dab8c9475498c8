"""FileCrush: merge many small files into few large ones."""
from crush.bucketer import Bucket, Bucketer, WeightedItem
from crush.errors import (
    BucketerStateError,
    ConfigurationError,
    CrushError,
    CrushJobError,
    HeterogeneousRecordsError,
)
from crush.job import CrushJob
from crush.merger import BucketMerger, MergeResult, MergeTask
from crush.naming import CrushSpec, OutputNamer, find_spec
from crush.partitioning import PartitionRouter, assign_partitions
from crush.planner import CrushPlan, CrushPlanner
from crush.stats import CrushStats
from crush.worker import CrushWorker, WorkerResult

__all__ = [
    "Bucket",
    "Bucketer",
    "WeightedItem",
    "BucketerStateError",
    "ConfigurationError",
    "CrushError",
    "CrushJobError",
    "HeterogeneousRecordsError",
    "CrushJob",
    "BucketMerger",
    "MergeResult",
    "MergeTask",
    "CrushSpec",
    "OutputNamer",
    "find_spec",
    "PartitionRouter",
    "assign_partitions",
    "CrushPlan",
    "CrushPlanner",
    "CrushStats",
    "CrushWorker",
    "WorkerResult",
]
