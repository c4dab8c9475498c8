"""
Crush planning: find small files and bucket them per directory.

Eligibility is deliberately simple. A file is considered when it is
smaller than ``threshold * bucket_size``, lies outside the job's output
tree, does not match ``ignore_regex`` and sits in a directory that some
crush spec matches. Everything after that is the Bucketer's job.
"""
import logging
import posixpath
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, TYPE_CHECKING

from crush.bucketer import Bucket, Bucketer, WeightedItem
from crush.naming import CrushSpec

if TYPE_CHECKING:
    from storage.base import StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class PlanStats:
    directories_scanned: int = 0
    directories_skipped: int = 0
    files_eligible: int = 0
    files_skipped: int = 0
    bytes_eligible: int = 0


@dataclass
class CrushPlan:
    buckets: List[Bucket] = field(default_factory=list)
    stats: PlanStats = field(default_factory=PlanStats)

    @property
    def total_bytes(self) -> int:
        return sum(b.bytes for b in self.buckets)


class CrushPlanner:
    """
    Scans a storage tree and produces the run's buckets.

    Example:
        planner = CrushPlanner(
            storage=storage,
            specs=specs,
            bucket_size=64 * 1024 * 1024,
            max_buckets_per_dir=100,
            exclude_dirs=["crushed"],
        )
        plan = planner.plan("logs")
    """

    def __init__(
        self,
        storage: "StorageBackend",
        specs: Sequence[CrushSpec],
        bucket_size: int,
        max_buckets_per_dir: int = 100,
        threshold: float = 0.75,
        ignore_regex: Optional[str] = None,
        exclude_dirs: Optional[Sequence[str]] = None,
    ):
        """
        Initialize planner.

        Args:
            storage: Storage holding the small files
            specs: Ordered crush specs; unmatched directories are skipped
            bucket_size: Target bytes per crushed file
            max_buckets_per_dir: Cap on buckets created for one directory
            threshold: Files of at least threshold * bucket_size bytes are left alone
            ignore_regex: Files whose path matches are left alone
            exclude_dirs: Directory trees never scanned (job output, partition map)
        """
        self.storage = storage
        self.specs = list(specs)
        self.bucket_size = bucket_size
        self.max_size = int(threshold * bucket_size)
        self.ignore_pattern = re.compile(ignore_regex) if ignore_regex else None
        self.exclude_dirs = ["/" + d.strip("/") for d in (exclude_dirs or []) if d.strip("/")]
        self.bucketer = Bucketer(max_buckets_per_dir, bucket_size, exclude_single_item_buckets=True)

    def plan(self, input_dir: str = "") -> CrushPlan:
        """Scan input_dir and bucket every eligible directory."""
        plan = CrushPlan()
        directories = self._scan(input_dir, plan.stats)

        for directory, files in directories.items():
            self.bucketer.reset(directory)
            for item in files:
                self.bucketer.add(item)

            buckets = self.bucketer.create_buckets()
            if buckets:
                logger.debug(f"[CrushPlanner] {directory}: {len(files)} files -> {len(buckets)} buckets")
            plan.buckets.extend(buckets)

        logger.info(
            f"[CrushPlanner] Planned {len(plan.buckets)} buckets "
            f"({plan.total_bytes / (1024 * 1024):.1f} MB) from "
            f"{plan.stats.directories_scanned} directories, "
            f"{plan.stats.files_eligible} eligible files"
        )
        return plan

    def _scan(self, input_dir: str, plan_stats: PlanStats) -> Dict[str, List[WeightedItem]]:
        by_directory: Dict[str, List[WeightedItem]] = defaultdict(list)

        for info in self.storage.list_files(input_dir, recursive=True):
            path = "/" + info["path"].lstrip("/")

            if self._excluded(path):
                continue

            if info["size"] >= self.max_size or (
                self.ignore_pattern is not None and self.ignore_pattern.search(path)
            ):
                plan_stats.files_skipped += 1
                continue

            by_directory[posixpath.dirname(path)].append(WeightedItem(path, info["size"]))

        eligible: Dict[str, List[WeightedItem]] = {}
        for directory in sorted(by_directory):
            plan_stats.directories_scanned += 1
            files = by_directory[directory]

            if not any(spec.matches(directory) for spec in self.specs):
                logger.debug(f"[CrushPlanner] No crush spec matches {directory}, skipping")
                plan_stats.directories_skipped += 1
                plan_stats.files_skipped += len(files)
                continue

            eligible[directory] = sorted(files, key=lambda item: item.id)
            plan_stats.files_eligible += len(files)
            plan_stats.bytes_eligible += sum(item.size for item in files)

        return eligible

    def _excluded(self, path: str) -> bool:
        return any(path == d or path.startswith(d + "/") for d in self.exclude_dirs)
