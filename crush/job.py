"""Crush job runner - plans, partitions and merges small files."""
import logging
import time
from dataclasses import replace
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Optional, TYPE_CHECKING

from crush.bucketer import Bucket
from crush.codecs import get_codec
from crush.errors import CrushJobError
from crush.merger import MergeTask
from crush.naming import CrushSpec
from crush.partitioning import (
    PartitionRouter,
    assign_partitions,
    group_by_partition,
    write_partition_map,
)
from crush.planner import CrushPlan, CrushPlanner
from crush.stats import CrushStats
from crush.utils import provenance_record, to_ndjson, utc_timestamp_ms
from crush.worker import CrushWorker, WorkerResult

if TYPE_CHECKING:
    from config import FileCrushConfig
    from storage.base import StorageBackend

logger = logging.getLogger(__name__)


class CrushJob:
    """
    Crush job that turns many small files into few large ones.

    Workflow:
    1. Scan the input tree and bucket every eligible directory
    2. Pack all buckets into num_workers partitions, persist the partition map
    3. Reload the map through PartitionRouter (validated) and group buckets
    4. Merge each partition on its own thread, one bucket at a time
    5. Write provenance (source -> crushed file) per partition
    6. Optionally delete the source files that were merged
    """

    def __init__(
        self,
        config: "FileCrushConfig",
        input_storage: "StorageBackend",
        output_storage: "StorageBackend",
        timestamp: Optional[int] = None,
    ):
        """
        Initialize crush job.

        Args:
            config: FileCrush configuration
            input_storage: Storage backend holding the small files
            output_storage: Storage backend for crushed files, partition map and provenance
            timestamp: Run timestamp in ms, fills ${crush.timestamp}.
                       Defaults to config.crush.timestamp, then now.
        """
        self.config = config
        self.crush_config = config.crush
        self.paths = config.storage.paths
        self.input_storage = input_storage
        self.output_storage = output_storage

        if timestamp is None:
            timestamp = self.crush_config.timestamp
        self.timestamp = timestamp if timestamp is not None else utc_timestamp_ms()

        self.num_partitions = self.crush_config.num_workers
        self.specs = [self._spec_from_config(s) for s in self.crush_config.specs]

        logger.info(
            f"[CrushJob] Initialized: "
            f"input={input_storage.backend_type}:{input_storage.base_path}, "
            f"output={output_storage.backend_type}:{output_storage.base_path}, "
            f"partitions={self.num_partitions}, timestamp={self.timestamp}"
        )

    def _spec_from_config(self, spec_config) -> CrushSpec:
        spec = CrushSpec.from_config(spec_config)
        if "compression" not in spec.output_options:
            options = dict(spec.output_options, compression=self.crush_config.compression)
            spec = replace(spec, output_options=options)
        # Unsupported output options fail here, before anything is written
        get_codec(spec.output_format, **spec.output_options)
        return spec

    def plan(self, input_dir: Optional[str] = None) -> CrushPlan:
        """Scan the input tree and bucket it, without writing anything."""
        if input_dir is None:
            input_dir = self.paths.input_dir

        planner = CrushPlanner(
            storage=self.input_storage,
            specs=self.specs,
            bucket_size=self.crush_config.bucket_size,
            max_buckets_per_dir=self.crush_config.max_buckets_per_dir,
            threshold=self.crush_config.threshold,
            ignore_regex=self.crush_config.ignore_regex,
            exclude_dirs=[self.paths.output_dir],
        )
        return planner.plan(input_dir)

    def run(self, input_dir: Optional[str] = None, dry_run: bool = False) -> CrushStats:
        """
        Run the crush job.

        Args:
            input_dir: Tree to crush (default: config paths.input_dir)
            dry_run: Only plan and log the buckets

        Returns:
            Aggregated CrushStats

        Raises:
            ConfigurationError: Invalid partition map or specs
            CrushJobError: One or more partitions failed after all attempts
        """
        start_time = time.time()
        plan = self.plan(input_dir)

        if not plan.buckets:
            logger.info("[CrushJob] Nothing to crush")
            return CrushStats()

        if dry_run:
            logger.info("[CrushJob] DRY RUN - no files will be written")
            for bucket in plan.buckets:
                logger.info(f"  Would crush {bucket.name}: {len(bucket.contents)} files, {bucket.bytes} bytes")
            return CrushStats()

        map_path = self.output_storage.join_path(self.paths.output_dir, self.paths.partition_map)
        assignments = assign_partitions(plan.buckets, self.num_partitions)
        write_partition_map(self.output_storage, map_path, assignments)

        # Workers only ever see the persisted map
        router = PartitionRouter.load(self.output_storage, map_path, self.num_partitions)
        partitions = group_by_partition(router, plan.buckets)

        stats = CrushStats()
        failed: Dict[int, str] = {}

        with ThreadPoolExecutor(max_workers=self.num_partitions) as executor:
            futures = {
                executor.submit(self._run_partition, partition, buckets): partition
                for partition, buckets in partitions.items()
            }

            for future in as_completed(futures):
                partition = futures[future]
                try:
                    worker_result = future.result()
                except Exception as e:
                    failed[partition] = str(e)
                    stats.buckets_failed += len(partitions[partition])
                    continue

                self._write_provenance(worker_result)
                if self.crush_config.delete_source_files:
                    self._delete_sources(worker_result)
                stats.merge(worker_result.stats)

        self._log_summary(stats, plan, failed, time.time() - start_time)

        if failed:
            raise CrushJobError(
                f"{len(failed)} of {len(partitions)} partitions failed: "
                f"{', '.join(str(p) for p in sorted(failed))}",
                failed_partitions=failed,
            )

        return stats

    def _run_partition(self, partition: int, buckets: List[Bucket]) -> WorkerResult:
        tasks = [MergeTask.from_bucket(b) for b in buckets]
        max_attempts = self.crush_config.max_task_attempts

        for attempt in range(1, max_attempts + 1):
            # New worker per attempt so file numbering starts over
            worker = CrushWorker(
                partition=partition,
                specs=self.specs,
                input_storage=self.input_storage,
                output_storage=self.output_storage,
                output_dir=self.paths.output_dir,
                timestamp=self.timestamp,
                crush_subdir=self.paths.crush_subdir,
                report_every=self.crush_config.report_every,
            )
            try:
                return worker.run(tasks)
            except Exception as e:
                if attempt == max_attempts:
                    logger.error(
                        f"[CrushJob] Partition {partition} failed after {attempt} attempt(s): {e}",
                        exc_info=True,
                    )
                    raise
                logger.warning(
                    f"[CrushJob] Partition {partition} attempt {attempt}/{max_attempts} failed: {e}, retrying"
                )

    def _write_provenance(self, worker_result: WorkerResult) -> str:
        path = self.output_storage.join_path(
            self.paths.output_dir,
            self.paths.provenance_subdir,
            f"part-{worker_result.partition:05d}.ndjson",
        )
        data = "".join(
            to_ndjson(provenance_record(source, result.output_path, result.bucket_name))
            for result in worker_result.results
            for source, _ in result.provenance
        )
        full_path = self.output_storage.write_bytes(data.encode("utf-8"), path)
        logger.debug(f"[CrushJob] Wrote provenance for partition {worker_result.partition} to {full_path}")
        return full_path

    def _delete_sources(self, worker_result: WorkerResult) -> int:
        deleted = 0
        for source, _ in worker_result.provenance:
            if self.input_storage.delete(source):
                deleted += 1
            else:
                logger.warning(f"[CrushJob] Could not delete source file {source}")

        logger.info(f"[CrushJob] Partition {worker_result.partition}: deleted {deleted} source files")
        return deleted

    def _log_summary(
        self,
        stats: CrushStats,
        plan: CrushPlan,
        failed: Dict[int, str],
        duration: float,
    ) -> None:
        logger.info("=" * 80)
        logger.info("[CrushJob] Crush complete" if not failed else "[CrushJob] Crush finished with failures")
        logger.info(f"  Directories scanned: {plan.stats.directories_scanned}")
        logger.info(f"  Buckets planned:     {len(plan.buckets)}")
        logger.info(f"  Buckets crushed:     {stats.buckets_crushed}")
        logger.info(f"  Buckets failed:      {stats.buckets_failed}")
        logger.info(f"  Files crushed:       {stats.files_crushed}")
        logger.info(f"  Records crushed:     {stats.records_crushed:,}")
        logger.info(f"  Input size:          {stats.bytes_in / (1024 * 1024):.2f} MB")
        logger.info(f"  Duration:            {duration:.1f}s")
        for partition, error in sorted(failed.items()):
            logger.info(f"  Partition {partition} failed: {error}")
        logger.info("=" * 80)
