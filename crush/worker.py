"""Per-partition merge worker."""
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple, TYPE_CHECKING

from crush.merger import BucketMerger, MergeResult, MergeTask
from crush.naming import CrushSpec
from crush.stats import CrushStats

if TYPE_CHECKING:
    from storage.base import StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class WorkerResult:
    """Everything one partition produced."""
    partition: int
    results: List[MergeResult] = field(default_factory=list)
    stats: CrushStats = field(default_factory=CrushStats)
    duration_seconds: float = 0.0

    @property
    def provenance(self) -> List[Tuple[str, str]]:
        return [pair for result in self.results for pair in result.provenance]


class CrushWorker:
    """
    Merges the buckets routed to one partition.

    Buckets are processed strictly one at a time, in the order given. The
    first bucket that fails aborts the worker; the orchestrator decides
    whether to run the whole partition again.
    """

    def __init__(
        self,
        partition: int,
        specs: Sequence[CrushSpec],
        input_storage: "StorageBackend",
        output_storage: "StorageBackend",
        output_dir: str,
        timestamp: int,
        crush_subdir: str = "crush",
        report_every: int = 100,
    ):
        self.partition = partition
        self.merger = BucketMerger(
            specs=specs,
            input_storage=input_storage,
            output_storage=output_storage,
            output_dir=output_dir,
            task_num=partition,
            timestamp=timestamp,
            crush_subdir=crush_subdir,
            report_every=report_every,
            status_callback=self._status,
        )

    def run(self, tasks: Iterable[MergeTask]) -> WorkerResult:
        start_time = time.time()
        worker_result = WorkerResult(partition=self.partition)

        for task in tasks:
            try:
                result = self.merger.merge(task)
            except Exception as e:
                logger.error(
                    f"[CrushWorker {self.partition}] Bucket {task.bucket_name} failed: {e}"
                )
                raise

            worker_result.results.append(result)
            worker_result.stats.merge(result.stats)

        worker_result.duration_seconds = time.time() - start_time

        logger.info(
            f"[CrushWorker {self.partition}] Done in {worker_result.duration_seconds:.1f}s: "
            f"{worker_result.stats}"
        )
        return worker_result

    def _status(self, status: str) -> None:
        logger.info(f"[CrushWorker {self.partition}] {status}")
